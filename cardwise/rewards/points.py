"""Points arithmetic.

points = floor(amount_cents / 100 * conversion_rate * bonus)

where bonus is the card tier's multiplier for the transaction's category
(1.0 when the card has no tier or the tier has no bonus for it). Credits
and refunds earn nothing. Decimal throughout so 1.1 * 100 stays exact.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_FLOOR, Decimal

from cardwise.database.models import Card


class PointsCalculator:
    """Compute points for a charge.

    Args:
        bonus_table: tier → {category code → multiplier}, see card_tiers.yaml.
    """

    def __init__(self, bonus_table: dict[str, dict[str, float]] | None = None):
        self.bonus_table = bonus_table or {}

    def multiplier(self, tier: str | None, category_code: str | None) -> Decimal:
        if not tier or not category_code:
            return Decimal(1)
        bonus = self.bonus_table.get(tier, {}).get(category_code, 1.0)
        return Decimal(str(bonus))

    def calculate(self, amount: int, card: Card, category_code: str | None = None) -> int:
        """Points a card earns on amount cents."""
        return self.calculate_at_rate(amount, card.conversion_rate, card.tier, category_code)

    def calculate_at_rate(
        self,
        amount: int,
        conversion_rate: float,
        tier: str | None = None,
        category_code: str | None = None,
    ) -> int:
        if amount <= 0:
            return 0
        rate = Decimal(str(conversion_rate))
        if rate <= 0:
            return 0
        value = Decimal(amount) / 100 * rate * self.multiplier(tier, category_code)
        return int(value.to_integral_value(rounding=ROUND_FLOOR))

    @staticmethod
    def convert(points: int, program_rate: float) -> int:
        """Card points → reward program points at the card/program link rate."""
        if points <= 0:
            return 0
        value = Decimal(points) * Decimal(str(program_rate))
        return max(0, int(value.to_integral_value(rounding=ROUND_FLOOR)))


def expiration_date(transaction_date: str, days: int | None) -> str | None:
    """Advisory expiry for points earned on a given date."""
    if not days:
        return None
    return (date.fromisoformat(transaction_date) + timedelta(days=days)).isoformat()
