"""Local file storage for textbook PDFs.

Files are kept in a single directory and addressed by a random 32-character
hex storage id. Writes go to a temporary file first and are moved into place
with ``os.replace`` so a reader never sees a partial PDF.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from pathlib import Path
from typing import Optional

from textbook_lending.config.settings import FILES_BASE_URL, STORAGE_DIR

logger = logging.getLogger(__name__)

_STORAGE_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def is_valid_storage_id(storage_id: str) -> bool:
    return bool(storage_id) and _STORAGE_ID_RE.match(storage_id) is not None


class PdfStorage:
    """Directory-backed PDF store."""

    def __init__(self, root: Path, base_url: str = FILES_BASE_URL) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def path_for(self, storage_id: str) -> Path:
        """Return the on-disk path of a stored file.

        Raises ``ValueError`` for ids that were not issued by :meth:`save`.
        """
        if not is_valid_storage_id(storage_id):
            raise ValueError(f"Invalid storage id: {storage_id!r}")
        return self.root / f"{storage_id}.pdf"

    def save(self, data: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        storage_id = uuid.uuid4().hex
        path = self.path_for(storage_id)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        logger.info("Stored PDF storage_id=%s bytes=%d", storage_id, len(data))
        return storage_id

    def exists(self, storage_id: str) -> bool:
        if not is_valid_storage_id(storage_id):
            return False
        return self.path_for(storage_id).is_file()

    def get_url(self, storage_id: str) -> Optional[str]:
        """Retrieval URL for a stored file, or None when the file is gone."""
        if not self.exists(storage_id):
            return None
        return f"{self.base_url}/{storage_id}"


_storage = PdfStorage(STORAGE_DIR)


def get_storage() -> PdfStorage:
    """FastAPI dependency returning the configured store."""
    return _storage
