"""Blob storage interface for raw invoice files.

Files are addressed by a relative key such as
``<user_id>/<uuid>.pdf``. The processing pipeline only reads; uploads write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BlobStorage(ABC):
    """Where uploaded invoice files live."""

    @abstractmethod
    def save(self, key: str, data: bytes) -> str:
        """Store data under key and return the key."""

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Return the stored bytes.

        Raises:
            StoredFileNotFoundError: If nothing is stored under key.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def presigned_url(self, key: str, expires_in: int = 300) -> str:
        """Short-lived URL an external service can fetch the file from.

        Raises:
            ExternalServiceError: If the backend cannot produce one.
        """
