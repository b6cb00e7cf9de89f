"""Tests for upload, reprocess and status override."""

import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from cardwise.config import Settings
from cardwise.database.models import Invoice, User
from cardwise.errors import (
    CardNotFoundError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    StoredFileNotFoundError,
    UnsupportedFormatError,
    ValidationError,
)
from cardwise.pipeline.queue import JobQueue
from cardwise.services.invoices import InvoiceService
from cardwise.storage.local import LocalStorage


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path)


@pytest.fixture
def service(seeded_repo, storage, config):
    return InvoiceService(
        seeded_repo, storage, JobQueue(seeded_repo), config, Settings(max_upload_bytes=1024),
    )


# ── Upload ───────────────────────────────────────────────


class TestUpload:
    def test_stores_and_queues(self, service, seeded_repo, storage, user, card):
        result = service.upload(user.id, card.id, "Fatura.PDF", b"%PDF-1.4", reference_date="2026-03-01")

        assert result["status"] == "processing"
        invoice = seeded_repo.get_invoice(result["invoice_id"])
        assert invoice.status == "Processing"
        assert invoice.total_amount == 0
        assert invoice.reference_date == "2026-03-01"
        assert invoice.file_path.startswith(f"{user.id}/")
        assert invoice.file_path.endswith(".pdf")
        assert storage.read(invoice.file_path) == b"%PDF-1.4"

        jobs = seeded_repo.get_jobs_for_invoice(invoice.id)
        assert len(jobs) == 1
        assert jobs[0].status == "queued"

    def test_unsupported_extension(self, service, seeded_repo, user, card):
        with pytest.raises(UnsupportedFormatError):
            service.upload(user.id, card.id, "fatura.docx", b"data")
        assert seeded_repo.list_invoices() == []

    def test_empty_file(self, service, user, card):
        with pytest.raises(ValidationError, match="Empty"):
            service.upload(user.id, card.id, "fatura.csv", b"")

    def test_oversized_file(self, service, user, card):
        with pytest.raises(ValidationError, match="too large"):
            service.upload(user.id, card.id, "fatura.csv", b"x" * 2048)

    def test_card_of_another_user(self, service, seeded_repo, card):
        other = seeded_repo.insert_user(User(name="Bia", email="bia@example.com"))
        with pytest.raises(CardNotFoundError):
            service.upload(other.id, card.id, "fatura.csv", b"m,d,a\n")

    def test_unknown_card(self, service, user):
        with pytest.raises(CardNotFoundError):
            service.upload(user.id, "nope", "fatura.csv", b"m,d,a\n")

    def test_upload_for_card_uses_owner(self, service, seeded_repo, user, card):
        result = service.upload_for_card(card.id, "fatura.csv", b"m,d,a\n")
        assert seeded_repo.get_invoice(result["invoice_id"]).user_id == user.id

    def test_job_insert_failure_leaves_no_invoice(self, service, seeded_repo, user, card):
        with patch.object(seeded_repo, "_insert_job_row", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(sqlite3.OperationalError):
                service.upload(user.id, card.id, "fatura.csv", b"m,d,a\n")
        assert seeded_repo.list_invoices() == []

    def test_each_upload_gets_its_own_key(self, service, seeded_repo, user, card):
        a = service.upload(user.id, card.id, "f.csv", b"m,d,a\n")
        b = service.upload(user.id, card.id, "f.csv", b"m,d,a\n")
        assert seeded_repo.get_invoice(a["invoice_id"]).file_path != seeded_repo.get_invoice(b["invoice_id"]).file_path


# ── Reprocess ────────────────────────────────────────────


class TestReprocess:
    def _errored(self, repo, storage, user, card, store=True):
        key = f"{user.id}/old.csv"
        if store:
            storage.save(key, b"m,d,a\n")
        return repo.insert_invoice(Invoice(
            user_id=user.id, card_id=card.id, reference_date="2026-03-01",
            file_path=key, status="Error", error_message="boom",
        ))

    def test_requeues_error_invoice(self, service, seeded_repo, storage, user, card):
        inv = self._errored(seeded_repo, storage, user, card)
        assert service.reprocess(inv.id) == {"invoice_id": inv.id, "status": "processing"}
        assert seeded_repo.get_invoice(inv.id).status == "Processing"
        assert len(seeded_repo.get_jobs_for_invoice(inv.id)) == 1

    def test_unknown_invoice(self, service):
        with pytest.raises(InvoiceNotFoundError):
            service.reprocess("nope")

    def test_only_from_error(self, service, seeded_repo, storage, user, card):
        inv = self._errored(seeded_repo, storage, user, card)
        seeded_repo.set_invoice_status(inv.id, "Pending")
        with pytest.raises(InvalidStateTransitionError):
            service.reprocess(inv.id)

    def test_missing_file(self, service, seeded_repo, storage, user, card):
        inv = self._errored(seeded_repo, storage, user, card, store=False)
        with pytest.raises(StoredFileNotFoundError):
            service.reprocess(inv.id)
        assert seeded_repo.get_invoice(inv.id).status == "Error"
        assert seeded_repo.get_jobs_for_invoice(inv.id) == []

    def test_lost_race(self, service, seeded_repo, storage, user, card):
        inv = self._errored(seeded_repo, storage, user, card)

        def exists(key):
            seeded_repo.set_invoice_status(inv.id, "Pending")
            return True

        service.storage = MagicMock(wraps=storage)
        service.storage.exists.side_effect = exists
        with pytest.raises(InvalidStateTransitionError):
            service.reprocess(inv.id)
        assert seeded_repo.get_jobs_for_invoice(inv.id) == []


# ── Status override ──────────────────────────────────────


class TestSetStatus:
    def test_any_known_status(self, service, seeded_repo, user, card):
        inv = seeded_repo.insert_invoice(Invoice(
            user_id=user.id, card_id=card.id, reference_date="2026-03-01", status="Pending",
        ))
        assert service.set_status(inv.id, "paid").status == "Paid"
        assert service.set_status(inv.id, "Late").status == "Late"
        assert service.set_status(inv.id, "Analyzed").status == "Pending"
        assert seeded_repo.get_invoice(inv.id).status == "Pending"

    def test_unknown_status(self, service, seeded_repo, user, card):
        inv = seeded_repo.insert_invoice(Invoice(
            user_id=user.id, card_id=card.id, reference_date="2026-03-01",
        ))
        with pytest.raises(ValidationError):
            service.set_status(inv.id, "Archived")

    def test_unknown_invoice(self, service):
        with pytest.raises(InvoiceNotFoundError):
            service.set_status("nope", "Paid")


class TestSuggestCategory:
    def test_keywords(self, service):
        assert service.suggest_category("Posto Shell") == "FUEL"
        assert service.suggest_category("Zxqwv Ltda") is None
