"""Configuration for Cardwise.

Two layers, both built once by the CLI and injected into components:

  Settings  runtime wiring from FINANCE_* environment variables
            (database, storage, AI models and timeouts, worker count)
  Config    business data from the YAML files in the config/ directory:
            categories.yaml, keywords.yaml, card_tiers.yaml,
            reward_programs.yaml, rules.yaml
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

DEFAULT_DOCUMENT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_CLASSIFICATION_MODEL = "claude-3-5-haiku-20241022"

# 10 MiB upload ceiling
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass
class Settings:
    """Runtime settings resolved from the environment."""

    db_path: str = "finance.db"
    config_dir: Path = Path("config")
    migrations_dir: Path = Path(__file__).parent / "database" / "migrations"
    storage_dir: Path = Path("storage")
    s3_bucket: str | None = None
    s3_prefix: str = "invoices"
    watch_dir: Path = Path("import")
    anthropic_api_key: str | None = None
    document_model: str = DEFAULT_DOCUMENT_MODEL
    vision_model: str = DEFAULT_DOCUMENT_MODEL
    classification_model: str = DEFAULT_CLASSIFICATION_MODEL
    recommendation_model: str = DEFAULT_DOCUMENT_MODEL
    document_timeout: float = 90.0
    classification_timeout: float = 5.0
    recommendation_timeout: float = 60.0
    presigned_url_ttl: int = 300
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    workers: int = 2
    poll_interval: float = 2.0
    job_max_attempts: int = 3
    job_retry_delay: float = 10.0
    stale_job_timeout: float = 600.0

    @property
    def ai_enabled(self) -> bool:
        return bool(self.anthropic_api_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            db_path=env.get("FINANCE_DB_PATH", defaults.db_path),
            config_dir=Path(env.get("FINANCE_CONFIG_DIR", str(defaults.config_dir))),
            migrations_dir=Path(env.get(
                "FINANCE_MIGRATIONS_DIR", str(defaults.migrations_dir),
            )),
            storage_dir=Path(env.get("FINANCE_STORAGE_DIR", str(defaults.storage_dir))),
            s3_bucket=env.get("FINANCE_S3_BUCKET") or None,
            s3_prefix=env.get("FINANCE_S3_PREFIX", defaults.s3_prefix),
            watch_dir=Path(env.get("FINANCE_WATCH_DIR", str(defaults.watch_dir))),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            document_model=env.get("FINANCE_DOCUMENT_MODEL", defaults.document_model),
            vision_model=env.get("FINANCE_VISION_MODEL", defaults.vision_model),
            classification_model=env.get(
                "FINANCE_CLASSIFICATION_MODEL", defaults.classification_model,
            ),
            recommendation_model=env.get(
                "FINANCE_RECOMMENDATION_MODEL", defaults.recommendation_model,
            ),
            document_timeout=float(env.get(
                "FINANCE_DOCUMENT_TIMEOUT", defaults.document_timeout,
            )),
            classification_timeout=float(env.get(
                "FINANCE_CLASSIFICATION_TIMEOUT", defaults.classification_timeout,
            )),
            recommendation_timeout=float(env.get(
                "FINANCE_RECOMMENDATION_TIMEOUT", defaults.recommendation_timeout,
            )),
            presigned_url_ttl=int(env.get(
                "FINANCE_PRESIGNED_URL_TTL", defaults.presigned_url_ttl,
            )),
            max_upload_bytes=int(env.get(
                "FINANCE_MAX_UPLOAD_BYTES", defaults.max_upload_bytes,
            )),
            workers=int(env.get("FINANCE_WORKERS", defaults.workers)),
            poll_interval=float(env.get(
                "FINANCE_POLL_INTERVAL", defaults.poll_interval,
            )),
            job_max_attempts=int(env.get(
                "FINANCE_JOB_MAX_ATTEMPTS", defaults.job_max_attempts,
            )),
            job_retry_delay=float(env.get(
                "FINANCE_JOB_RETRY_DELAY", defaults.job_retry_delay,
            )),
            stale_job_timeout=float(env.get(
                "FINANCE_STALE_JOB_TIMEOUT", defaults.stale_job_timeout,
            )),
        )


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._categories: list[dict] | None = None
        self._keywords: list[dict] | None = None
        self._card_tiers: dict | None = None
        self._reward_programs: list[dict] | None = None
        self._rules: dict | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def categories(self) -> list[dict]:
        if self._categories is None:
            data = self._load("categories.yaml")
            self._categories = data.get("categories", []) if isinstance(data, dict) else data
        return self._categories

    @property
    def category_codes(self) -> list[str]:
        """Enumerated category codes, in catalog order."""
        return [c["code"] for c in self.categories if c.get("code")]

    @property
    def keywords(self) -> list[dict]:
        """Ordered keyword table: [{code, keywords: [...]}, ...].

        Order matters: the first code with a matching keyword wins.
        """
        if self._keywords is None:
            data = self._load("keywords.yaml")
            self._keywords = data.get("keywords", []) if isinstance(data, dict) else data
        return self._keywords

    @property
    def card_tiers(self) -> dict:
        if self._card_tiers is None:
            self._card_tiers = self._load("card_tiers.yaml")
        return self._card_tiers

    @property
    def reward_programs(self) -> list[dict]:
        if self._reward_programs is None:
            data = self._load("reward_programs.yaml")
            if isinstance(data, dict):
                self._reward_programs = data.get("reward_programs", [])
            else:
                self._reward_programs = data
        return self._reward_programs

    @property
    def rules(self) -> dict:
        if self._rules is None:
            self._rules = self._load("rules.yaml")
        return self._rules

    # ── Derived lookups ─────────────────────────────────────

    @property
    def bonus_table(self) -> dict[str, dict[str, float]]:
        """Map tier → {category code → points multiplier}."""
        tiers = self.card_tiers.get("tiers", {}) or {}
        return {
            tier: {code: float(mult) for code, mult in (spec.get("bonus") or {}).items()}
            for tier, spec in tiers.items()
        }

    @property
    def market_cards(self) -> list[dict]:
        return self.card_tiers.get("market_cards", [])

    @property
    def fallback_recommendations(self) -> list[dict]:
        return self.card_tiers.get("fallback_recommendations", [])

    @property
    def invoice_rules(self) -> dict:
        return self.rules.get("invoice", {})

    @property
    def points_rules(self) -> dict:
        return self.rules.get("points", {})

    @property
    def recommendation_rules(self) -> dict:
        return self.rules.get("recommendations", {})

    @property
    def ai_monthly_budget_cents(self) -> int:
        """Monthly cap on estimated AI spend. Default: $5."""
        return int(self.rules.get("ai", {}).get("monthly_budget_cents", 500))

    @property
    def allowed_extensions(self) -> list[str]:
        return [
            ext.lower().lstrip(".")
            for ext in self.rules.get("upload", {}).get(
                "allowed_extensions", ["pdf", "jpg", "jpeg", "png", "csv"],
            )
        ]
