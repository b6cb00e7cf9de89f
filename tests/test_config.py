"""Tests for cardwise.config — environment settings and YAML configuration loader."""

from pathlib import Path

import pytest

from cardwise.config import (
    DEFAULT_CLASSIFICATION_MODEL,
    DEFAULT_MAX_UPLOAD_BYTES,
    Config,
    Settings,
)
from tests.conftest import FIXTURE_CONFIG_DIR


# ── Settings ─────────────────────────────────────────────


class TestSettings:
    def test_defaults_from_empty_env(self):
        settings = Settings.from_env({})
        assert settings.db_path == "finance.db"
        assert settings.config_dir == Path("config")
        assert settings.s3_bucket is None
        assert settings.anthropic_api_key is None
        assert settings.ai_enabled is False
        assert settings.classification_model == DEFAULT_CLASSIFICATION_MODEL
        assert settings.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
        assert settings.workers == 2

    def test_reads_finance_vars(self):
        settings = Settings.from_env({
            "FINANCE_DB_PATH": "/app/data/finance.db",
            "FINANCE_WATCH_DIR": "/app/import",
            "FINANCE_S3_BUCKET": "invoices",
            "FINANCE_WORKERS": "4",
            "FINANCE_CLASSIFICATION_TIMEOUT": "2.5",
            "FINANCE_MAX_UPLOAD_BYTES": "2048",
            "ANTHROPIC_API_KEY": "sk-test",
        })
        assert settings.db_path == "/app/data/finance.db"
        assert settings.watch_dir == Path("/app/import")
        assert settings.s3_bucket == "invoices"
        assert settings.workers == 4
        assert settings.classification_timeout == 2.5
        assert settings.max_upload_bytes == 2048
        assert settings.ai_enabled is True

    def test_job_retry_settings(self):
        defaults = Settings.from_env({})
        assert (defaults.job_max_attempts, defaults.job_retry_delay, defaults.stale_job_timeout) == (3, 10.0, 600.0)
        settings = Settings.from_env({
            "FINANCE_JOB_MAX_ATTEMPTS": "5",
            "FINANCE_JOB_RETRY_DELAY": "1.5",
            "FINANCE_STALE_JOB_TIMEOUT": "120",
        })
        assert settings.job_max_attempts == 5
        assert settings.job_retry_delay == 1.5
        assert settings.stale_job_timeout == 120.0

    def test_blank_values_are_unset(self):
        settings = Settings.from_env({"FINANCE_S3_BUCKET": "", "ANTHROPIC_API_KEY": ""})
        assert settings.s3_bucket is None
        assert settings.ai_enabled is False

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("FINANCE_DB_PATH", "/tmp/other.db")
        assert Settings.from_env().db_path == "/tmp/other.db"

    def test_migrations_dir_ships_with_package(self):
        assert (Settings().migrations_dir / "001_initial_schema.sql").is_file()


# ── Config loading ───────────────────────────────────────


class TestConfigInit:
    def test_loads_from_config_dir(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config.config_dir == FIXTURE_CONFIG_DIR

    def test_raises_on_missing_directory(self):
        with pytest.raises(FileNotFoundError, match="Config directory not found"):
            Config("/nonexistent/path")

    def test_raises_on_file_not_directory(self, tmp_path):
        f = tmp_path / "not_a_dir.yaml"
        f.write_text("test: true")
        with pytest.raises(FileNotFoundError, match="Config directory not found"):
            Config(f)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="categories.yaml"):
            Config(tmp_path).categories

    def test_empty_file(self, tmp_path):
        (tmp_path / "rules.yaml").write_text("")
        with pytest.raises(ValueError, match="Empty config file"):
            Config(tmp_path).rules

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "rules.yaml").write_text("invoice: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            Config(tmp_path).rules

    def test_lazy_loading(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config._keywords is None
        _ = config.keywords
        assert config._keywords is not None

    def test_caches_after_first_load(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config.categories is config.categories


# ── Catalogs and derived lookups ─────────────────────────


class TestConfigCatalogs:
    def test_category_codes(self, config):
        codes = config.category_codes
        assert len(codes) == 18
        assert {"FOOD", "SUPER", "FUEL", "TRAVEL", "OTHER"} <= set(codes)

    def test_keywords_keep_file_order(self, config):
        order = [entry["code"] for entry in config.keywords]
        assert order[0] == "DELIV"
        assert order[-1] == "OTHER"
        assert order.index("DELIV") < order.index("FOOD")

    def test_reward_programs(self, config):
        codes = [p.get("code") for p in config.reward_programs]
        assert None in codes
        assert {"LIVELO", "SMILES", "LATAMPASS"} <= set(codes)

    def test_bonus_table(self, config):
        table = config.bonus_table
        assert table["standard"] == {}
        assert table["platinum"]["FOOD"] == 2.0
        assert table["infinite"]["TRAVEL"] == 3.0
        assert all(isinstance(m, float) for tier in table.values() for m in tier.values())

    def test_market_cards(self, config):
        assert [c["id"] for c in config.market_cards] == ["card_platinum", "card_black", "card_infinite"]

    def test_rule_sections(self, config):
        assert config.invoice_rules["due_date_offset_days"] == 15
        assert config.invoice_rules["closing_date_offset_days"] == -5
        assert config.points_rules["expiration_days"] == 365
        assert config.ai_monthly_budget_cents == 500

    def test_allowed_extensions(self, config):
        assert set(config.allowed_extensions) == {"pdf", "jpg", "jpeg", "png", "csv"}

    def test_defaults_when_rules_silent(self, tmp_path):
        (tmp_path / "rules.yaml").write_text("invoice: {}\n")
        config = Config(tmp_path)
        assert config.ai_monthly_budget_cents == 500
        assert config.allowed_extensions == ["pdf", "jpg", "jpeg", "png", "csv"]
        assert config.points_rules == {}
