"""Tests for the keyword category heuristic."""

import pytest

from cardwise.categorize.keywords import KeywordMatcher, normalize_text


@pytest.fixture
def matcher(config):
    return KeywordMatcher(config.keywords)


class TestNormalizeText:
    def test_accents_and_case(self):
        assert normalize_text("  Farmácia   SÃO João ") == "farmacia sao joao"

    def test_empty(self):
        assert normalize_text("") == ""


class TestKeywordMatcher:
    @pytest.mark.parametrize("merchant, code", [
        ("Supermercado Extra", "SUPER"),
        ("PAO DE ACUCAR 123", "SUPER"),
        ("Restaurante Outback", "FOOD"),
        ("iFood *Pedido", "DELIV"),
        ("Uber Eats", "DELIV"),
        ("Uber *Trip", "TRANS"),
        ("99 Taxi", "TRANS"),
        ("Posto Ipiranga", "FUEL"),
        ("Netflix.com", "STREAM"),
        ("Farmácia São João", "PHARM"),
        ("Droga Raia", "PHARM"),
        ("Amazon Marketplace", "ECOMM"),
        ("Cinemark", "LEISURE"),
        ("Hotel Ibis", "TRAVEL"),
        ("Renner", "CLOTH"),
        ("Bar do Zé", "FUN"),
        ("PIX Maria", "PIX"),
    ])
    def test_known_merchants(self, matcher, merchant, code):
        assert matcher.match(merchant) == code

    def test_no_match(self, matcher):
        assert matcher.match("Zxqwv Comércio") is None

    def test_empty_name(self, matcher):
        assert matcher.match("") is None
        assert matcher.match(None) is None

    def test_short_keywords_need_word_boundary(self, matcher):
        assert matcher.match("Loja 1990") is None
        assert matcher.match("Barbearia Central") is None

    def test_first_code_wins(self):
        matcher = KeywordMatcher([
            {"code": "A", "keywords": ["posto"]},
            {"code": "B", "keywords": ["posto shell"]},
        ])
        assert matcher.match("Posto Shell") == "A"

    def test_entries_without_code_ignored(self):
        matcher = KeywordMatcher([{"keywords": ["x-mart"]}, {"code": "B", "keywords": ["mart"]}])
        assert matcher.match("x-mart") == "B"
