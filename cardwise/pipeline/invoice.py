"""Invoice processing: stored file → transactions, points and a Pending invoice.

  load → verify file → extract → classify → points → persist → Pending

Any failure after the invoice is loaded moves it to Error with the
message recorded, then re-raises so the job runner sees it. The final
write is a single database transaction guarded on the invoice still
being in Processing, so a duplicate run finds nothing to do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Callable

from cardwise.categorize.classifier import CategoryClassifier
from cardwise.config import Config
from cardwise.database.models import Card, InvoiceStatus, Point, Transaction
from cardwise.database.repository import Repository
from cardwise.errors import CardNotFoundError, InvoiceNotFoundError, StoredFileNotFoundError
from cardwise.extract.base import RawTransaction
from cardwise.extract.extractor import DocumentExtractor
from cardwise.rewards.points import PointsCalculator, expiration_date
from cardwise.storage.base import BlobStorage

logger = logging.getLogger(__name__)

DEFAULT_DUE_OFFSET_DAYS = 15
DEFAULT_CLOSING_OFFSET_DAYS = -5


@dataclass
class ProcessResult:
    """Result of processing a single invoice."""
    invoice_id: str
    status: str  # "success", "skipped"
    transaction_count: int = 0
    total_amount: int = 0
    points_total: int = 0


class InvoiceProcessingPipeline:
    """Process one invoice end to end.

    Args:
        repo: Repository owned by the calling worker.
        storage: Where the invoice file lives.
        extractor: File bytes → RawTransactions.
        classifier: Merchant → category code for rows the extractor left blank.
        calculator: Points arithmetic.
        config: Business rules (date offsets, points expiry).
        today: Clock override for tests.
    """

    def __init__(
        self,
        repo: Repository,
        storage: BlobStorage,
        extractor: DocumentExtractor,
        classifier: CategoryClassifier,
        calculator: PointsCalculator,
        config: Config,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.storage = storage
        self.extractor = extractor
        self.classifier = classifier
        self.calculator = calculator
        self.config = config
        self.today = today

    def process(self, invoice_id: str) -> ProcessResult:
        invoice = self.repo.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        if invoice.status != InvoiceStatus.PROCESSING.value:
            logger.info(
                "Invoice %s is %s, not Processing; skipping", invoice_id, invoice.status,
            )
            return ProcessResult(invoice_id=invoice_id, status="skipped")

        logger.info("Processing invoice %s (%s)", invoice_id, invoice.file_path)
        try:
            if not invoice.file_path or not self.storage.exists(invoice.file_path):
                raise StoredFileNotFoundError(invoice.file_path)
            file_bytes = self.storage.read(invoice.file_path)

            raw = self.extractor.extract(
                file_bytes, Path(invoice.file_path).suffix, invoice.file_path,
            )
            logger.debug("Invoice %s: extracted %d raw transactions", invoice_id, len(raw))

            card = self.repo.get_card(invoice.card_id)
            if card is None:
                raise CardNotFoundError(invoice.card_id)

            transactions, points = self._build_rows(invoice.user_id, invoice_id, card, raw)

            today = self.today()
            rules = self.config.invoice_rules
            due = today + timedelta(days=rules.get("due_date_offset_days", DEFAULT_DUE_OFFSET_DAYS))
            closing = today + timedelta(
                days=rules.get("closing_date_offset_days", DEFAULT_CLOSING_OFFSET_DAYS),
            )

            completed = self.repo.complete_invoice(
                invoice_id, transactions, points,
                due_date=due.isoformat(), closing_date=closing.isoformat(),
            )
        except Exception as e:
            logger.exception("Processing failed for invoice %s", invoice_id)
            self.repo.mark_invoice_error(invoice_id, str(e) or type(e).__name__)
            raise

        if not completed:
            logger.info("Invoice %s left Processing during the run; discarded results", invoice_id)
            return ProcessResult(invoice_id=invoice_id, status="skipped")

        total = sum(t.amount for t in transactions)
        points_total = sum(t.points_earned for t in transactions)
        logger.info(
            "Invoice %s processed: %d transactions, total %d cents, %d points",
            invoice_id, len(transactions), total, points_total,
        )
        return ProcessResult(
            invoice_id=invoice_id,
            status="success",
            transaction_count=len(transactions),
            total_amount=total,
            points_total=points_total,
        )

    def _build_rows(
        self, user_id: str, invoice_id: str, card: Card, raw: list[RawTransaction],
    ) -> tuple[list[Transaction], list[Point]]:
        category_ids = self.repo.get_category_id_map()
        program_link = self._accrual_link(card)
        expiry_days = self.config.points_rules.get("expiration_days")

        transactions: list[Transaction] = []
        points: list[Point] = []
        for item in raw:
            code = self._category_code(item, category_ids)
            earned = self.calculator.calculate(item.amount, card, code)
            txn = Transaction(
                invoice_id=invoice_id,
                merchant_name=item.merchant_name,
                transaction_date=item.transaction_date,
                amount=item.amount,
                category_id=category_ids.get(code) if code else None,
                points_earned=earned,
                description=item.description,
            )
            transactions.append(txn)

            if program_link is None:
                continue
            program_points = self.calculator.convert(earned, program_link.conversion_rate)
            if program_points > 0:
                points.append(Point(
                    user_id=user_id,
                    reward_program_id=program_link.reward_program_id,
                    transaction_id=txn.id,
                    amount=program_points,
                    expiration_date=expiration_date(item.transaction_date, expiry_days),
                    description=f"{item.merchant_name} ({card.name})",
                ))
        return transactions, points

    def _category_code(self, item: RawTransaction, category_ids: dict[str, str]) -> str | None:
        if item.category_code and item.category_code in category_ids:
            return item.category_code
        code = self.classifier.classify(item.merchant_name)
        if code and code not in category_ids:
            logger.warning("Category code %s not in catalog; leaving uncategorized", code)
            return None
        return code

    def _accrual_link(self, card: Card):
        """The card's primary reward program link, else its first one.

        Links to a program without a code ("no program") accrue nothing.
        """
        for link in self.repo.get_card_reward_programs(card.id):
            program = self.repo.get_reward_program(link.reward_program_id)
            if program is not None and program.code:
                return link
        return None
