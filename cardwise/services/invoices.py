"""Invoice operations exposed to the outside: upload, reprocess, manual
status override and category suggestion.

Upload and reprocess only validate, store and enqueue; processing happens
on the worker pool.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from uuid import uuid4

from cardwise.categorize.classifier import CategoryClassifier
from cardwise.config import Config, Settings
from cardwise.database.models import Invoice, InvoiceStatus
from cardwise.database.repository import Repository
from cardwise.errors import (
    CardNotFoundError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    StoredFileNotFoundError,
    UnsupportedFormatError,
    ValidationError,
)
from cardwise.extract.base import normalize_extension
from cardwise.pipeline.queue import JobQueue
from cardwise.storage.base import BlobStorage

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(
        self,
        repo: Repository,
        storage: BlobStorage,
        queue: JobQueue,
        config: Config,
        settings: Settings,
        classifier: CategoryClassifier | None = None,
    ):
        self.repo = repo
        self.storage = storage
        self.queue = queue
        self.config = config
        self.settings = settings
        self.classifier = classifier

    def upload(
        self,
        user_id: str,
        card_id: str,
        file_name: str,
        file_bytes: bytes,
        reference_date: str | None = None,
        notes: str | None = None,
    ) -> dict:
        """Store an invoice file and queue it for processing.

        Returns:
            {"invoice_id": ..., "status": "processing"}

        Raises:
            UnsupportedFormatError: Extension not allowed.
            ValidationError: Empty or oversized file.
            CardNotFoundError: Card missing or owned by another user.
        """
        extension = normalize_extension(Path(file_name).suffix)
        if extension not in self.config.allowed_extensions:
            raise UnsupportedFormatError(Path(file_name).suffix or file_name)
        if not file_bytes:
            raise ValidationError(f"Empty file: {file_name}")
        if len(file_bytes) > self.settings.max_upload_bytes:
            raise ValidationError(
                f"File too large: {len(file_bytes)} bytes"
                f" (limit {self.settings.max_upload_bytes})"
            )

        card = self.repo.get_card(card_id)
        if card is None or card.user_id != user_id:
            raise CardNotFoundError(card_id)

        key = f"{user_id}/{uuid4()}.{extension}"
        self.storage.save(key, file_bytes)

        invoice = Invoice(
            user_id=user_id,
            card_id=card_id,
            reference_date=reference_date or date.today().isoformat(),
            total_amount=0,
            status=InvoiceStatus.PROCESSING.value,
            file_path=key,
            notes=notes,
        )
        self.queue.submit(invoice)
        logger.info("Uploaded %s as invoice %s (card %s)", file_name, invoice.id, card_id)
        return {"invoice_id": invoice.id, "status": "processing"}

    def upload_for_card(self, card_id: str, file_name: str, file_bytes: bytes) -> dict:
        """Upload on behalf of the card's owner (drop-folder ingestion)."""
        card = self.repo.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        return self.upload(card.user_id, card_id, file_name, file_bytes)

    def reprocess(self, invoice_id: str) -> dict:
        """Send an Error invoice back through processing.

        Raises:
            InvoiceNotFoundError: No such invoice.
            InvalidStateTransitionError: Invoice is not in Error.
            StoredFileNotFoundError: No file path, or the file is gone.
        """
        invoice = self.repo.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        if invoice.status != InvoiceStatus.ERROR.value:
            raise InvalidStateTransitionError(invoice_id, invoice.status, InvoiceStatus.ERROR.value)
        if not invoice.file_path or not self.storage.exists(invoice.file_path):
            raise StoredFileNotFoundError(invoice.file_path)

        if self.queue.requeue(invoice_id, invoice.file_path) is None:
            current = self.repo.get_invoice(invoice_id)
            raise InvalidStateTransitionError(
                invoice_id, current.status if current else "missing", InvoiceStatus.ERROR.value,
            )
        logger.info("Invoice %s requeued for processing", invoice_id)
        return {"invoice_id": invoice_id, "status": "processing"}

    def set_status(self, invoice_id: str, status: str) -> Invoice:
        """Manual override to any known status; no extraction happens."""
        try:
            new_status = InvoiceStatus.parse(status)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        invoice = self.repo.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        self.repo.set_invoice_status(invoice_id, new_status.value)
        logger.info(
            "Invoice %s status changed: %s -> %s", invoice_id, invoice.status, new_status.value,
        )
        invoice.status = new_status.value
        return invoice

    def suggest_category(self, merchant_name: str) -> str | None:
        if self.classifier is None:
            self.classifier = CategoryClassifier.from_config(self.config, self.settings)
        return self.classifier.classify(merchant_name)
