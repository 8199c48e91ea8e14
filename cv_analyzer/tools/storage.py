"""
Stored-file abstraction for uploaded CVs.

Local disk implementation. Files are addressed by a generated reference
(never by user-supplied names) that must resolve inside the storage root.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from cv_analyzer.config import settings

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    reference: str
    size: int


class LocalFileStorage:
    """Write-once file store rooted at a directory."""

    kind = "local"

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or settings.upload_dir).resolve()

    def _ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_reference(extension: str = ".pdf") -> str:
        """Collision-resistant name: cv_<epoch-ms>_<16 hex chars><ext>."""
        return f"cv_{int(time.time() * 1000)}_{secrets.token_hex(8)}{extension}"

    def path(self, reference: str) -> Path:
        """Resolve a reference, refusing anything outside the root."""
        candidate = (self.root / reference).resolve()
        if candidate.parent != self.root:
            raise ValueError(f"Invalid file reference: {reference!r}")
        return candidate

    def save(self, content: bytes, extension: str = ".pdf") -> StoredFile:
        self._ensure_root()
        reference = self.generate_reference(extension)
        target = self.path(reference)
        # "xb" fails rather than overwrite an existing file
        with open(target, "xb") as f:
            f.write(content)
        logger.info(f"Stored upload as {reference} ({len(content)} bytes)")
        return StoredFile(reference=reference, size=len(content))

    def read(self, reference: str) -> bytes:
        return self.path(reference).read_bytes()

    def exists(self, reference: str) -> bool:
        try:
            return self.path(reference).is_file()
        except ValueError:
            return False

    def delete(self, reference: str) -> bool:
        """Remove a stored file; returns False if it was already gone."""
        try:
            self.path(reference).unlink()
        except FileNotFoundError:
            logger.warning(f"Stored file {reference} already removed")
            return False
        return True
