"""Filesystem-backed blob storage."""

from __future__ import annotations

import logging
from pathlib import Path

from cardwise.errors import ExternalServiceError, StoredFileNotFoundError, ValidationError
from cardwise.storage.base import BlobStorage

logger = logging.getLogger(__name__)


class LocalStorage(BlobStorage):
    """Stores files under a root directory.

    Local files are not reachable from outside, so presigned URLs are
    unsupported and the URL-based extraction strategy is skipped.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValidationError(f"Storage key escapes storage root: {key}")
        return path

    def save(self, key: str, data: bytes) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), path)
        return key

    def read(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise StoredFileNotFoundError(key)
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def presigned_url(self, key: str, expires_in: int = 300) -> str:
        raise ExternalServiceError("Local storage cannot produce presigned URLs")
