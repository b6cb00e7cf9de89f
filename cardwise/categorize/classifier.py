"""CategoryClassifier: merchant name → category code or None.

Keyword heuristic first; the optional Claude call only for misses.
Never raises.
"""

from __future__ import annotations

import logging
from typing import Callable

from cardwise.config import Config, Settings
from cardwise.database.repository import Repository

from .claude_ai import classify_merchant
from .keywords import KeywordMatcher

logger = logging.getLogger(__name__)


class CategoryClassifier:
    def __init__(
        self,
        matcher: KeywordMatcher,
        codes: list[str],
        claude_fn: Callable[..., str] | None = None,
        repo: Repository | None = None,
        model: str | None = None,
        timeout: float = 5.0,
        monthly_budget_cents: int = 500,
    ):
        self.matcher = matcher
        self.codes = list(codes)
        self.claude_fn = claude_fn
        self.repo = repo
        self.model = model
        self.timeout = timeout
        self.monthly_budget_cents = monthly_budget_cents

    @classmethod
    def from_config(
        cls,
        config: Config,
        settings: Settings | None = None,
        claude_fn: Callable[..., str] | None = None,
        repo: Repository | None = None,
    ) -> "CategoryClassifier":
        settings = settings or Settings()
        return cls(
            KeywordMatcher(config.keywords),
            config.category_codes,
            claude_fn=claude_fn,
            repo=repo,
            model=settings.classification_model,
            timeout=settings.classification_timeout,
            monthly_budget_cents=config.ai_monthly_budget_cents,
        )

    def classify_by_keywords(self, merchant_name: str) -> str | None:
        code = self.matcher.match(merchant_name)
        return code if code in self.codes else None

    def classify(self, merchant_name: str) -> str | None:
        code = self.classify_by_keywords(merchant_name)
        if code is not None:
            logger.debug("Keyword match %r → %s", merchant_name, code)
            return code
        if self.claude_fn is None or not (merchant_name or "").strip():
            return None
        try:
            return classify_merchant(
                merchant_name, self.codes, self.claude_fn,
                repo=self.repo, model=self.model, timeout=self.timeout,
                monthly_budget_cents=self.monthly_budget_cents,
            )
        except Exception:
            logger.exception("Classification failed for %r", merchant_name)
            return None
