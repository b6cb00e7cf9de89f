"""Card recommendations, per-transaction card optimization and points summary.

Everything here reads persisted data. The AI call is optional: without
credentials, with too little data, or when the call fails, the engine
answers with the static fallback suggestions from card_tiers.yaml and
never raises.
"""

from __future__ import annotations

import json
import logging
import re
from calendar import monthrange
from datetime import date, timedelta
from typing import Callable

from cardwise.config import Config
from cardwise.database import queries
from cardwise.database.models import Card
from cardwise.database.repository import Repository
from cardwise.errors import ExternalServiceError
from cardwise.rewards.points import PointsCalculator

logger = logging.getLogger(__name__)

SERVICE_NAME = "claude_recommend"

# Cost estimate per recommendation call (in cents)
RECOMMEND_COST_CENTS = 5

RECOMMEND_MAX_TOKENS = 2000

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

SYSTEM_PROMPT = (
    "You are a credit card rewards advisor. Given a user's spending profile, "
    "their current cards and the cards available on the market, recommend "
    "cards that would earn them more points. Return ONLY a JSON object with:\n"
    '  - "recommendations": list of objects with "card_name", "description", '
    '"annual_fee" (integer cents), "potential_points_increase" (e.g. "20%") '
    'and "analysis"\n'
    '  - "summary": one paragraph\n'
    '  - "action_items": list of short strings'
)

REASONS_SYSTEM_PROMPT = (
    "You explain credit card choices. For each numbered purchase, write one "
    "short sentence telling the user why the recommended card earns more. "
    'Return ONLY a JSON object: {"reasons": ["...", ...]} in the same order.'
)


def months_ago(today: date, months: int) -> date:
    """Same day N calendar months earlier, clamped to month end."""
    month_index = today.year * 12 + (today.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(today.day, monthrange(year, month)[1])
    return date(year, month, day)


def parse_json_object(text: str) -> dict:
    """Decode the first JSON object in a model reply.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    candidates = []
    match = _FENCE_RE.search(text or "")
    if match:
        candidates.append(match.group(1).strip())
    candidates.append((text or "").strip())
    start, end = (text or "").find("{"), (text or "").rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise ValueError("Reply did not contain a JSON object")


class RecommendationEngine:
    def __init__(
        self,
        repo: Repository,
        config: Config,
        calculator: PointsCalculator,
        claude_fn: Callable[..., str] | None = None,
        model: str | None = None,
        timeout: float = 60.0,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.config = config
        self.calculator = calculator
        self.claude_fn = claude_fn
        self.model = model
        self.timeout = timeout
        self.today = today

    @property
    def rules(self) -> dict:
        return self.config.recommendation_rules

    # ── Card recommendations ────────────────────────────────

    def recommend_cards(self, user_id: str) -> dict:
        cards = self.repo.get_cards_for_user(user_id, active_only=True)
        if not cards:
            return self._fallback("No active cards registered; showing general suggestions.")

        today = self.today()
        since = months_ago(today, self.rules.get("lookback_months", 3)).isoformat()
        activity = queries.get_activity_counts(self.repo.conn, user_id, since)
        criteria = [
            len(cards) >= 1,
            activity["transaction_count"] >= self.rules.get("min_transactions", 10),
            activity["category_count"] >= self.rules.get("min_categories", 3),
        ]
        if sum(criteria) < self.rules.get("min_criteria", 2):
            return self._fallback(
                "Not enough spending history for personalised recommendations"
                f" ({activity['transaction_count']} transactions in"
                f" {activity['category_count']} categories)."
            )

        profile = self._spending_profile(user_id, cards, today, since)
        if self.claude_fn is None:
            result = self._fallback("AI recommendations are not configured.")
            result["analysis"] = profile
            return result

        try:
            data = self._ask_recommendations(profile)
        except (ExternalServiceError, ValueError) as e:
            logger.warning("Card recommendation call failed for user %s: %s", user_id, e)
            result = self._fallback("Showing general suggestions.")
            result["error"] = str(e)
            result["analysis"] = profile
            return result

        return {
            "source": "ai",
            "recommendations": data["recommendations"],
            "summary": data.get("summary", ""),
            "action_items": data.get("action_items", []),
            "analysis": profile,
        }

    def _fallback(self, message: str) -> dict:
        return {
            "source": "fallback",
            "recommendations": [dict(r) for r in self.config.fallback_recommendations],
            "summary": "",
            "action_items": [],
            "message": message,
        }

    def _spending_profile(self, user_id: str, cards: list[Card], today: date, since: str) -> dict:
        conn = self.repo.conn
        spending_since = months_ago(today, self.rules.get("spending_months", 6)).isoformat()
        monthly = queries.get_monthly_spending(conn, user_id, spending_since)
        total = sum(m["total"] for m in monthly)
        return {
            "top_categories": queries.get_top_categories(
                conn, user_id, since, self.rules.get("top_categories", 5),
            ),
            "top_merchants": queries.get_top_merchants(
                conn, user_id, since, self.rules.get("top_merchants", 10),
            ),
            "spending": {
                "monthly": monthly,
                "total": total,
                "average": total // len(monthly) if monthly else 0,
            },
            "current_cards": [
                {
                    "name": c.name, "bank": c.bank, "tier": c.tier,
                    "conversion_rate": c.conversion_rate, "annual_fee": c.annual_fee,
                }
                for c in cards
            ],
            "reward_programs": [
                {"name": p.name, "code": p.code}
                for p in self.repo.get_reward_programs() if p.code
            ],
            "market_cards": self.config.market_cards,
        }

    def _call_claude(self, system: str, prompt: str) -> str:
        """One budget-gated advisory call, counted against the monthly budget.

        Raises:
            ExternalServiceError: Budget exhausted or the call failed.
        """
        month = self.today().strftime("%Y-%m")
        if self.repo.get_monthly_cost(month) >= self.config.ai_monthly_budget_cents:
            raise ExternalServiceError("Monthly AI budget exhausted")
        reply = self.claude_fn(
            system, prompt,
            model=self.model, max_tokens=RECOMMEND_MAX_TOKENS, timeout=self.timeout,
        )
        self.repo.increment_api_usage(month, SERVICE_NAME, requests=1, cost_cents=RECOMMEND_COST_CENTS)
        return reply

    def _ask_recommendations(self, profile: dict) -> dict:
        prompt = (
            "Spending profile (amounts in cents):\n"
            + json.dumps(profile, ensure_ascii=False, indent=2)
        )
        reply = self._call_claude(SYSTEM_PROMPT, prompt)

        data = parse_json_object(reply)
        recommendations = data.get("recommendations")
        if not isinstance(recommendations, list) or not recommendations:
            raise ValueError("Reply has no recommendations")
        return data

    # ── Transaction optimization ────────────────────────────

    def optimize_transactions(self, user_id: str) -> dict:
        """Find recent large charges another owned card would have rewarded better."""
        active = self.repo.get_cards_for_user(user_id, active_only=True)
        if not active:
            return {
                "optimizations": [],
                "summary": "No active cards to compare.",
                "estimated_monthly_point_increase": 0,
            }
        all_cards = {c.id: c for c in self.repo.get_cards_for_user(user_id)}

        since = (self.today() - timedelta(days=self.rules.get("optimization_days", 30))).isoformat()
        candidates = queries.get_largest_transactions(
            self.repo.conn, user_id, since, self.rules.get("optimization_candidates", 20),
        )

        found = []
        for txn in candidates:
            current = all_cards.get(txn["card_id"])
            code = txn["category_code"]
            current_points = self.calculator.calculate(txn["amount"], current, code) if current else 0
            best, best_points = None, current_points
            for card in active:
                points = self.calculator.calculate(txn["amount"], card, code)
                if points > best_points:
                    best, best_points = card, points
            if best is None:
                continue
            gain = best_points - current_points
            found.append({
                "transaction_id": txn["id"],
                "transaction_details": {
                    "merchant_name": txn["merchant_name"],
                    "transaction_date": txn["transaction_date"],
                    "amount": txn["amount"],
                    "category_code": code,
                },
                "current_card": {
                    "id": current.id if current else txn["card_id"],
                    "name": current.name if current else None,
                    "points": current_points,
                },
                "recommended_card": {"id": best.id, "name": best.name, "points": best_points},
                "additional_points": gain,
                "potential_increase_percentage": (
                    round(gain / current_points * 100, 1) if current_points else 100.0
                ),
                "reason": (
                    f"{best.name} earns {best_points} points on this purchase"
                    f" versus {current_points} with {current.name if current else 'the card used'}."
                ),
            })

        found.sort(key=lambda o: o["additional_points"], reverse=True)
        optimizations = found[: self.rules.get("max_optimizations", 5)]
        self.repo.mark_transactions_recommended([o["transaction_id"] for o in optimizations])
        if optimizations and self.claude_fn is not None:
            self._reword_reasons(optimizations)

        estimated = sum(o["additional_points"] for o in optimizations)
        if optimizations:
            summary = (
                f"{len(optimizations)} recent purchases would have earned"
                f" {estimated} more points on another of your cards."
            )
        else:
            summary = "Your recent purchases already went on your best card."
        return {
            "optimizations": optimizations,
            "summary": summary,
            "estimated_monthly_point_increase": estimated,
        }

    def _reword_reasons(self, optimizations: list[dict]) -> None:
        """Replace the computed reasons with model-written ones; keep them on failure."""
        lines = [
            f"{i}. {o['transaction_details']['merchant_name']}"
            f" ({o['transaction_details']['category_code'] or 'uncategorized'},"
            f" {o['transaction_details']['amount']} cents):"
            f" {o['current_card']['name']} {o['current_card']['points']} pts,"
            f" {o['recommended_card']['name']} {o['recommended_card']['points']} pts"
            for i, o in enumerate(optimizations, start=1)
        ]
        try:
            reply = self._call_claude(REASONS_SYSTEM_PROMPT, "\n".join(lines))
            reasons = parse_json_object(reply).get("reasons")
        except (ExternalServiceError, ValueError) as e:
            logger.warning("Optimization reason rewrite failed: %s", e)
            return
        if isinstance(reasons, list) and len(reasons) == len(optimizations):
            for item, reason in zip(optimizations, reasons):
                if isinstance(reason, str) and reason.strip():
                    item["reason"] = reason.strip()

    # ── Points summary ──────────────────────────────────────

    def points_summary(self, user_id: str) -> dict:
        rules = self.config.points_rules
        today = self.today()
        window = rules.get("expiring_window_days", 90)
        conn = self.repo.conn

        by_program = queries.get_points_by_program(conn, user_id)
        expiring = queries.get_expiring_points(
            conn, user_id, today.isoformat(), (today + timedelta(days=window)).isoformat(),
        )
        monthly = queries.get_monthly_points(
            conn, user_id, months_ago(today, rules.get("summary_months", 12)).isoformat(),
        )
        expiring_total = sum(e["total"] for e in expiring)

        actions = []
        if expiring_total:
            actions.append(
                f"Redeem or transfer {expiring_total} points expiring in the next {window} days."
            )
        if not by_program:
            actions.append("Link your cards to a reward program to start accruing points.")
        return {
            "total_active": sum(p["total"] for p in by_program),
            "by_program": by_program,
            "expiring": expiring,
            "expiring_total": expiring_total,
            "monthly": monthly,
            "suggested_actions": actions,
        }
