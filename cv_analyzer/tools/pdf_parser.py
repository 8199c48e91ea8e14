"""
PDF text extraction for CV analysis.

Extracts text content from stored PDF files using pypdf, then cleans and
quality-checks it before it is sent to the language model.
"""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, TypeVar

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from cv_analyzer.config import settings
from cv_analyzer.errors import ExtractionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PDF_HEADER = b"%PDF-"

# Order matters: the bare "â€" prefix must be replaced last
ENCODING_ARTIFACTS = [
    ("â€™", "'"),
    ("â€˜", "'"),
    ("â€œ", '"'),
    ("â€¢", "•"),
    ("â€“", "-"),
    ("â€”", "-"),
    ("â€", '"'),
    ("Â ", " "),
]

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
PAGE_NUMBER_LINE = re.compile(r"^(?:page\s+\d+(?:\s*(?:of|/)\s*\d+)?|\d+|-\s*\d+\s*-)$", re.IGNORECASE)
ALL_CAPS_LINE = re.compile(r"^[A-Z\s]{2,}$")
MAX_CAPS_HEADER_LENGTH = 30

PLAUSIBLE_WORD = re.compile(r"^[\w@.+#&/'-]{2,49}$")
TOKEN_PUNCTUATION = ".,;:!?()[]{}\"'“”‘’•·|*"

CV_INDICATORS = (
    "experience", "education", "skills", "work", "resume", "curriculum",
    "vitae", "contact", "email", "phone", "address", "university",
    "college", "degree", "certification", "project",
)


@dataclass
class ExtractionResult:
    """Cleaned CV text plus extraction metadata."""

    text: str
    word_count: int
    character_count: int
    page_count: int
    processing_time_ms: int
    total_pages: int = 0


def _run_with_timeout(fn: Callable[[], T], timeout: float, what: str) -> T:
    """Run `fn` on a worker thread, raising TimeoutError past `timeout` seconds."""
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pdf-extract")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        raise TimeoutError(f"{what} timed out after {timeout:g}s") from None
    finally:
        executor.shutdown(wait=False)


def clean_text(raw_text: str) -> str:
    """Normalize whitespace, strip artifacts and drop header/footer noise."""
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    text = CONTROL_CHARS.sub("", text)
    for artifact, replacement in ENCODING_ARTIFACTS:
        text = text.replace(artifact, replacement)
    text = text.replace("\xa0", " ")
    text = re.sub(r"[ \t]{2,}", " ", text)

    kept = []
    for line in text.split("\n"):
        stripped = line.strip()
        if PAGE_NUMBER_LINE.match(stripped):
            continue
        if len(stripped) < MAX_CAPS_HEADER_LENGTH and ALL_CAPS_LINE.match(stripped):
            continue
        kept.append(stripped)

    text = "\n".join(kept)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def count_words(text: str) -> int:
    return len(text.split())


def word_quality_ratio(text: str) -> float:
    """Share of whitespace-separated tokens that look like real words."""
    tokens = text.split()
    if not tokens:
        return 0.0
    plausible = sum(1 for token in tokens if PLAUSIBLE_WORD.match(token.strip(TOKEN_PUNCTUATION)))
    return plausible / len(tokens)


class PDFTextExtractor:
    """Read a stored PDF and return validated, cleaned text."""

    def __init__(
        self,
        timeout: float | None = None,
        max_pages: int | None = None,
        max_text_length: int | None = None,
        min_text_length: int | None = None,
        min_word_ratio: float | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.extraction_timeout
        self.max_pages = max_pages or settings.max_pdf_pages
        self.max_text_length = max_text_length or settings.max_text_length
        self.min_text_length = min_text_length if min_text_length is not None else settings.min_text_length
        self.min_word_ratio = min_word_ratio if min_word_ratio is not None else settings.min_word_ratio

    def extract(self, file_path: str | Path) -> ExtractionResult:
        """
        Extract text from a PDF file path.

        Raises:
            ExtractionError: unreadable, not a PDF, or too little usable text
            TimeoutError: reading or parsing exceeded the configured bound
        """
        started = time.monotonic()
        path = Path(file_path)

        try:
            data = _run_with_timeout(path.read_bytes, self.timeout, "File read")
        except OSError as e:
            raise ExtractionError(f"CV file is not accessible: {e.strerror or e}") from e

        if not data:
            raise ExtractionError("CV file is empty")
        if not data.startswith(PDF_HEADER):
            raise ExtractionError("File is not a valid PDF (missing %PDF header)")

        raw_text, page_count, total_pages = _run_with_timeout(lambda: self._parse(data), self.timeout, "PDF parsing")
        if total_pages > page_count:
            logger.info(f"Read the first {page_count} of {total_pages} pages of {path.name}")

        text = clean_text(raw_text)
        if len(text) > self.max_text_length:
            logger.info(f"Truncating extracted text from {len(text)} to {self.max_text_length} chars")
            text = text[: self.max_text_length].rstrip()

        self.validate(text)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Extracted {len(text)} chars from {page_count} page(s) of {path.name} in {elapsed_ms}ms")
        return ExtractionResult(
            text=text,
            word_count=count_words(text),
            character_count=len(text),
            page_count=page_count,
            processing_time_ms=elapsed_ms,
            total_pages=total_pages,
        )

    def _parse(self, data: bytes) -> tuple[str, int, int]:
        """(text, pages read, pages in the document)."""
        try:
            reader = PdfReader(BytesIO(data))
            if reader.is_encrypted:
                raise ExtractionError("PDF is encrypted and cannot be read")

            total_pages = len(reader.pages)
            pages_read = min(total_pages, self.max_pages)
            text_parts = []
            for index in range(pages_read):
                page_text = reader.pages[index].extract_text()
                if page_text:
                    text_parts.append(page_text)

            return "\n\n".join(text_parts), pages_read, total_pages
        except ExtractionError:
            raise
        except PyPdfError as e:
            raise ExtractionError(f"Failed to parse PDF: {e}") from e
        except Exception as e:
            # pypdf raises assorted builtin errors on malformed structure
            raise ExtractionError(f"Failed to parse PDF: {type(e).__name__}: {e}") from e

    def validate(self, text: str) -> None:
        """Reject missing, short or gibberish text."""
        if not text:
            raise ExtractionError(
                "Insufficient text extracted from the CV: no extractable text found "
                "(scanned or image-only PDFs are not supported)"
            )
        if len(text) < self.min_text_length:
            raise ExtractionError(
                f"Insufficient text extracted from the CV ({len(text)} characters, "
                f"minimum {self.min_text_length})"
            )

        ratio = word_quality_ratio(text)
        if ratio < self.min_word_ratio:
            raise ExtractionError(
                f"Low quality text extraction ({ratio:.0%} readable words); the PDF may be corrupted or scanned"
            )

        lowered = text.lower()
        found = [word for word in CV_INDICATORS if word in lowered]
        if len(found) < 2:
            logger.warning("Extracted document may not be a typical CV/resume")
