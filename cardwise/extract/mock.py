"""Synthetic extraction for environments without AI credentials.

Output is deterministic for a given file: the generator is seeded from
the SHA-256 of the file bytes, so reprocessing the same upload yields the
same transactions.
"""

from __future__ import annotations

import hashlib
import random
from datetime import date, timedelta

from .base import IMAGE_EXTENSIONS, PDF_EXTENSIONS, ExtractionContext, ExtractionStrategy, RawTransaction

MOCK_MERCHANTS = [
    ("Supermercado Extra", "SUPER"),
    ("Netflix", "STREAM"),
    ("Amazon", "ECOMM"),
    ("Posto Ipiranga", "FUEL"),
    ("Restaurante Outback", "FOOD"),
    ("Farmácia Droga Raia", "PHARM"),
    ("Uber", "TRANS"),
    ("iFood", "DELIV"),
]

MOCK_DESCRIPTION = "Transação extraída por AI"


class MockExtractionStrategy(ExtractionStrategy):
    """Generate 5-10 plausible transactions dated within the last 30 days."""

    name = "mock"

    def __init__(self, today: date | None = None):
        self.today = today

    def supports(self, extension: str) -> bool:
        return extension in PDF_EXTENSIONS or extension in IMAGE_EXTENSIONS

    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        seed = int.from_bytes(hashlib.sha256(ctx.file_bytes).digest()[:8], "big")
        rng = random.Random(seed)
        today = self.today or date.today()

        transactions = []
        for _ in range(rng.randint(5, 10)):
            merchant, code = rng.choice(MOCK_MERCHANTS)
            transactions.append(RawTransaction(
                merchant_name=merchant,
                transaction_date=(today - timedelta(days=rng.randint(1, 30))).isoformat(),
                amount=rng.randint(1000, 50000),
                description=MOCK_DESCRIPTION,
                category_code=code,
            ))
        return transactions
