"""Domain exceptions for Cardwise.

Every error raised on purpose by the package derives from CardwiseError so
the CLI can report it with a plain message and a non-zero exit code.
"""

from __future__ import annotations


class CardwiseError(Exception):
    """Base class for all Cardwise errors."""


# ── Lookup ───────────────────────────────────────────────


class NotFoundError(CardwiseError):
    """A referenced record does not exist."""

    entity = "record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.entity.capitalize()} not found: {record_id}")


class InvoiceNotFoundError(NotFoundError):
    entity = "invoice"


class CardNotFoundError(NotFoundError):
    entity = "card"


class UserNotFoundError(NotFoundError):
    entity = "user"


# ── Input ────────────────────────────────────────────────


class ValidationError(CardwiseError):
    """Input rejected before any side effect happened."""


class UnsupportedFormatError(ValidationError):
    """File extension is not one the extractor understands."""

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(f"Unsupported file format: {extension!r}")


class StoredFileNotFoundError(CardwiseError, FileNotFoundError):
    """An invoice's stored file is missing from blob storage."""

    def __init__(self, file_path: str | None):
        self.file_path = file_path
        super().__init__(f"Stored invoice file not found: {file_path}")


# ── Processing ───────────────────────────────────────────


class ExtractionError(CardwiseError):
    """No transactions could be extracted from a document."""


class ExternalServiceError(CardwiseError):
    """A call to an external service failed or timed out.

    Retryable: the extractor moves on to its next strategy.
    """


class InvalidStateTransitionError(CardwiseError):
    """An invoice is not in the status an operation requires."""

    def __init__(self, invoice_id: str, current: str, expected: str):
        self.invoice_id = invoice_id
        self.current = current
        self.expected = expected
        super().__init__(
            f"Invoice {invoice_id} is '{current}', expected '{expected}'"
        )
