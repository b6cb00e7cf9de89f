"""Tests for extraction value parsing helpers."""

from decimal import Decimal

import pytest

from cardwise.extract.base import (
    ExtractionContext,
    coerce_ai_amount,
    normalize_date,
    normalize_extension,
    parse_amount,
)


class TestParseAmount:
    @pytest.mark.parametrize("text, expected", [
        ("1234.56", 123456),
        ("1.234,56", 123456),
        ("1,234.56", 123456),
        ("R$ 1.234,56", 123456),
        ("-45,90", -4590),
        ("(12.00)", -1200),
        ("12,34-", -1234),
        ("+7.5", 750),
        ("45", 4500),
        ("1.234.567", 123456700),
    ])
    def test_formats(self, text, expected):
        assert parse_amount(text) == expected

    def test_rounds_half_up(self):
        assert parse_amount("10,005") == 1001
        assert parse_amount(Decimal("0.125")) == 13

    def test_numeric_input(self):
        assert parse_amount(10) == 1000
        assert parse_amount(19.99) == 1999

    @pytest.mark.parametrize("bad", ["", "abc", "12a", "R$", True])
    def test_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            parse_amount(bad)


class TestNormalizeDate:
    @pytest.mark.parametrize("text", [
        "2026-01-15",
        "15/01/2026",
        "15-01-2026",
        "15.01.2026",
        "2026/01/15",
        "15/01/26",
        "2026-01-15T10:30:00Z",
        " 2026-01-15 ",
    ])
    def test_known_formats(self, text):
        assert normalize_date(text) == "2026-01-15"

    @pytest.mark.parametrize("bad", ["01/15/2026", "yesterday", ""])
    def test_rejects_unknown(self, bad):
        with pytest.raises(ValueError):
            normalize_date(bad)


class TestCoerceAiAmount:
    def test_int_is_cents(self):
        assert coerce_ai_amount(1234) == 1234

    def test_float_is_units(self):
        assert coerce_ai_amount(12.34) == 1234

    def test_string(self):
        assert coerce_ai_amount("12,34") == 1234

    @pytest.mark.parametrize("bad", [None, True, "n/a"])
    def test_invalid(self, bad):
        with pytest.raises(ValueError):
            coerce_ai_amount(bad)


class TestContext:
    def test_normalize_extension(self):
        assert normalize_extension(".PDF") == "pdf"
        assert normalize_extension(" jpeg ") == "jpeg"

    def test_media_type(self):
        assert ExtractionContext(b"", "jpg").media_type == "image/jpeg"
        assert ExtractionContext(b"", "pdf").media_type == "application/pdf"
        assert ExtractionContext(b"", "bin").media_type == "application/octet-stream"
