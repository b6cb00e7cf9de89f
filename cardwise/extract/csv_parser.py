"""Invoice CSV parser.

Expected columns, by position: merchant, date, amount, description
(optional). The first row is always a header and is skipped. Rows with
fewer than three columns, or whose date or amount cannot be parsed, are
skipped and counted; they never abort the batch.

Delimiter is sniffed among comma, semicolon and tab so both US-style and
Brazilian exports (``;`` with ``1.234,56`` amounts) work.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Callable

from .base import (
    CSV_EXTENSIONS,
    ExtractionContext,
    ExtractionStrategy,
    RawTransaction,
    normalize_date,
    parse_amount,
)

logger = logging.getLogger(__name__)

MIN_COLUMNS = 3


class CsvInvoiceParser(ExtractionStrategy):
    """Parse invoice CSV exports.

    Args:
        classify: Optional merchant → category code lookup applied to
            each row (the keyword heuristic; must not do I/O).

    Attributes:
        skipped_count: Rows skipped by the last parse, header excluded.
    """

    name = "csv"

    def __init__(self, classify: Callable[[str], str | None] | None = None):
        self.classify = classify
        self.skipped_count: int = 0

    def supports(self, extension: str) -> bool:
        return extension in CSV_EXTENSIONS

    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        return self.parse(ctx.file_bytes)

    def parse(self, file_bytes: bytes) -> list[RawTransaction]:
        self.skipped_count = 0
        text = file_bytes.decode("utf-8-sig", errors="replace")
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=_sniff_delimiter(text))

        transactions: list[RawTransaction] = []
        for line_no, row in enumerate(reader, start=1):
            if line_no == 1:
                continue
            if not any(cell.strip() for cell in row):
                continue
            txn = self._parse_row(row, line_no)
            if txn is None:
                self.skipped_count += 1
            else:
                transactions.append(txn)

        if self.skipped_count:
            logger.warning("CSV parse skipped %d malformed rows", self.skipped_count)
        return transactions

    def _parse_row(self, row: list[str], line_no: int) -> RawTransaction | None:
        if len(row) < MIN_COLUMNS:
            return None
        merchant = row[0].strip()
        if not merchant:
            return None
        try:
            txn_date = normalize_date(row[1])
            amount = parse_amount(row[2])
        except ValueError as e:
            logger.debug("Skipping CSV line %d: %s", line_no, e)
            return None
        description = row[3].strip() if len(row) > 3 and row[3].strip() else None
        return RawTransaction(
            merchant_name=merchant,
            transaction_date=txn_date,
            amount=amount,
            description=description,
            category_code=self.classify(merchant) if self.classify else None,
        )


def _sniff_delimiter(text: str) -> str:
    """Pick the delimiter that occurs most often in the header row."""
    header = text.split("\n", 1)[0]
    counts = {d: header.count(d) for d in (",", ";", "\t")}
    best = max(counts, key=counts.get)
    return best if counts[best] else ","
