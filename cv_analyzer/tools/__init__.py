"""File handling tools: PDF text extraction and upload storage."""

from cv_analyzer.tools.pdf_parser import ExtractionResult, PDFTextExtractor
from cv_analyzer.tools.storage import LocalFileStorage, StoredFile

__all__ = ["ExtractionResult", "PDFTextExtractor", "LocalFileStorage", "StoredFile"]
