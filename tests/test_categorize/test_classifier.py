"""Tests for the CategoryClassifier facade."""

from unittest.mock import MagicMock

from cardwise.categorize.classifier import CategoryClassifier
from cardwise.categorize.keywords import KeywordMatcher
from cardwise.config import Settings


class TestCategoryClassifier:
    def test_keyword_hit_skips_claude(self, config):
        claude_fn = MagicMock()
        classifier = CategoryClassifier.from_config(config, claude_fn=claude_fn)
        assert classifier.classify("Posto Shell") == "FUEL"
        claude_fn.assert_not_called()

    def test_falls_back_to_claude(self, config):
        claude_fn = MagicMock(return_value="HOME")
        classifier = CategoryClassifier.from_config(config, claude_fn=claude_fn)
        assert classifier.classify("Zxqwv Ltda") == "HOME"

    def test_no_claude_returns_none(self, config):
        assert CategoryClassifier.from_config(config).classify("Zxqwv Ltda") is None

    def test_blank_name_never_calls_claude(self, config):
        claude_fn = MagicMock()
        classifier = CategoryClassifier.from_config(config, claude_fn=claude_fn)
        assert classifier.classify("   ") is None
        claude_fn.assert_not_called()

    def test_never_raises(self, config):
        classifier = CategoryClassifier.from_config(config, claude_fn=MagicMock(side_effect=RuntimeError("boom")))
        assert classifier.classify("Zxqwv Ltda") is None

    def test_keyword_code_outside_catalog_ignored(self):
        matcher = KeywordMatcher([{"code": "LEGACY", "keywords": ["padaria"]}])
        classifier = CategoryClassifier(matcher, ["FOOD"])
        assert classifier.classify_by_keywords("Padaria") is None

    def test_from_config_uses_settings(self, config):
        settings = Settings(classification_model="small-model", classification_timeout=3.0)
        classifier = CategoryClassifier.from_config(config, settings)
        assert classifier.model == "small-model"
        assert classifier.timeout == 3.0
        assert classifier.monthly_budget_cents == 500
        assert "PIX" in classifier.codes
