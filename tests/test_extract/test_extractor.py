"""Tests for the strategy-chaining DocumentExtractor."""

from unittest.mock import MagicMock

import pytest

from cardwise.config import Settings
from cardwise.errors import ExternalServiceError, ExtractionError, UnsupportedFormatError
from cardwise.extract.base import ExtractionStrategy, RawTransaction
from cardwise.extract.extractor import DocumentExtractor, build_extractor
from cardwise.extract.mock import MockExtractionStrategy

TXN = RawTransaction(merchant_name="Uber", transaction_date="2026-01-10", amount=2590)


def _strategy(name, result=None, error=None, extensions=("pdf", "jpg", "jpeg", "png")):
    strategy = MagicMock(spec=ExtractionStrategy)
    strategy.name = name
    strategy.supports.side_effect = lambda ext: ext in extensions
    if error is not None:
        strategy.extract.side_effect = error
    else:
        strategy.extract.return_value = result if result is not None else [TXN]
    return strategy


class TestDocumentExtractor:
    def test_unsupported_extension(self):
        with pytest.raises(UnsupportedFormatError):
            DocumentExtractor([]).extract(b"data", "docx")

    def test_csv_goes_to_parser(self):
        first = _strategy("first")
        extractor = DocumentExtractor([first])
        txns = extractor.extract(b"m,d,a\nUber,2026-01-10,25.90\n", ".CSV")
        assert txns[0].amount == 2590
        first.extract.assert_not_called()

    def test_csv_without_rows(self):
        assert DocumentExtractor([]).extract(b"m,d,a\nbroken\n", "csv") == []

    def test_csv_header_only(self):
        assert DocumentExtractor([]).extract(b"merchant,date,amount\n", "csv") == []

    def test_first_success_wins(self):
        first, second = _strategy("first"), _strategy("second")
        txns = DocumentExtractor([first, second]).extract(b"%PDF", "pdf", "u/1.pdf")
        assert txns == [TXN]
        second.extract.assert_not_called()
        ctx = first.extract.call_args[0][0]
        assert ctx.extension == "pdf"
        assert ctx.file_path == "u/1.pdf"

    def test_falls_through_on_failure(self):
        first = _strategy("first", error=ExternalServiceError("timeout"))
        second = _strategy("second", error=ExtractionError("garbage"))
        third = _strategy("third")
        txns = DocumentExtractor([first, second, third]).extract(b"%PDF", "pdf")
        assert txns == [TXN]
        assert first.extract.called and second.extract.called

    def test_skips_unsupported_strategies(self):
        pdf_only = _strategy("pdf_only", extensions=("pdf",))
        image = _strategy("image")
        DocumentExtractor([pdf_only, image]).extract(b"\x89PNG", "png")
        pdf_only.extract.assert_not_called()
        image.extract.assert_called_once()

    def test_all_failed(self):
        first = _strategy("first", error=ExternalServiceError("down"))
        second = _strategy("second", error=ExtractionError("bad json"))
        with pytest.raises(ExtractionError) as exc:
            DocumentExtractor([first, second]).extract(b"%PDF", "pdf")
        assert "first: down" in str(exc.value)
        assert "second: bad json" in str(exc.value)

    def test_all_transient_failures_stay_retryable(self):
        first = _strategy("first", error=ExternalServiceError("timeout"))
        second = _strategy("second", error=ExternalServiceError("rate limited"))
        with pytest.raises(ExternalServiceError, match="All extraction strategies failed"):
            DocumentExtractor([first, second]).extract(b"%PDF", "pdf")

    def test_no_applicable_strategy(self):
        with pytest.raises(ExtractionError, match="No extraction strategy"):
            DocumentExtractor([_strategy("pdf_only", extensions=("pdf",))]).extract(b"x", "jpg")

    def test_unexpected_errors_propagate(self):
        broken = _strategy("broken", error=KeyError("bug"))
        with pytest.raises(KeyError):
            DocumentExtractor([broken, _strategy("next")]).extract(b"%PDF", "pdf")


class TestBuildExtractor:
    def test_mock_without_credentials(self, config):
        extractor = build_extractor(Settings(), config, MagicMock(), claude_fn=None)
        assert len(extractor.strategies) == 1
        assert isinstance(extractor.strategies[0], MockExtractionStrategy)

    def test_strategy_order(self, config):
        settings = Settings(presigned_url_ttl=120, document_timeout=30)
        extractor = build_extractor(settings, config, MagicMock(), claude_fn=MagicMock())
        assert [s.name for s in extractor.strategies] == [
            "inline_document", "presigned_url", "rasterized_pdf", "inline_image",
        ]
        assert extractor.strategies[1].url_ttl == 120
        assert all(s.timeout == 30 for s in extractor.strategies)

    def test_csv_classify_hook(self, config):
        extractor = build_extractor(Settings(), config, MagicMock(), None, classify=lambda m: "TRANS")
        txns = extractor.extract(b"m,d,a\nUber,2026-01-10,5.00\n", "csv")
        assert txns[0].category_code == "TRANS"
