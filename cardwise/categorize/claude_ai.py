"""Claude fallback classification for merchants the keywords miss.

The model must answer with one code from the enumerated category set.
Anything else, a failed call, or an exhausted monthly budget yields None.
Monthly budget cap tracked via the api_usage table.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from cardwise.database.repository import Repository
from cardwise.errors import ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "claude_classify"

# Cost estimate per classification call (in cents)
CLASSIFY_COST_CENTS = 1

CLASSIFY_MAX_TOKENS = 10


def build_prompts(merchant_name: str, codes: list[str]) -> tuple[str, str]:
    system_prompt = (
        "You categorize credit card purchases. Answer with exactly one "
        f"category code from this list and nothing else: {', '.join(codes)}."
    )
    user_prompt = f"Merchant: {merchant_name}"
    return system_prompt, user_prompt


def classify_merchant(
    merchant_name: str,
    codes: list[str],
    claude_fn: Callable[..., str],
    repo: Repository | None = None,
    model: str | None = None,
    timeout: float = 5.0,
    monthly_budget_cents: int = 500,
    month: str | None = None,
) -> str | None:
    """Ask Claude for the category code of a merchant.

    Returns:
        A code from codes, or None if the budget is spent, the call failed
        or the reply is not in the set.
    """
    month = month or date.today().strftime("%Y-%m")

    if repo is not None:
        current_cost = repo.get_monthly_cost(month)
        if current_cost >= monthly_budget_cents:
            logger.warning(
                "Monthly Claude budget exceeded (%d/%d cents), skipping classification",
                current_cost, monthly_budget_cents,
            )
            return None

    system_prompt, user_prompt = build_prompts(merchant_name, codes)
    try:
        reply = claude_fn(
            system_prompt, user_prompt,
            model=model, max_tokens=CLASSIFY_MAX_TOKENS, timeout=timeout,
        )
    except ExternalServiceError as e:
        logger.warning("Claude classification failed for %r: %s", merchant_name, e)
        return None

    if repo is not None:
        repo.increment_api_usage(month, SERVICE_NAME, requests=1, cost_cents=CLASSIFY_COST_CENTS)

    return parse_code(reply, codes)


def parse_code(reply: str, codes: list[str]) -> str | None:
    """Pull the category code out of a short model reply."""
    text = (reply or "").strip().strip("`'\".").upper()
    if text in codes:
        return text
    # Tolerate "Category: FOOD" style replies with exactly one known code
    found = [code for code in codes if code in text.replace(":", " ").split()]
    if len(found) == 1:
        return found[0]
    logger.warning("Claude returned invalid category code %r", reply[:50] if reply else reply)
    return None
