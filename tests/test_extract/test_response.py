"""Tests for decoding document-model replies."""

import json
from unittest.mock import patch

import pytest

from cardwise.errors import ExtractionError
from cardwise.extract.response import parse_transactions_response

CODES = {"FOOD", "SUPER", "TRANS"}

ENTRY = {
    "merchant_name": "Outback",
    "transaction_date": "2026-01-05",
    "amount": 15990,
    "description": "Jantar",
    "category_code": "FOOD",
}


class TestDecoding:
    def test_plain_array(self):
        txns = parse_transactions_response(json.dumps([ENTRY]), CODES)
        assert len(txns) == 1
        assert txns[0].merchant_name == "Outback"
        assert txns[0].amount == 15990
        assert txns[0].category_code == "FOOD"

    def test_fenced_block(self):
        text = "Here are the transactions:\n```json\n" + json.dumps([ENTRY]) + "\n```\nDone."
        assert len(parse_transactions_response(text, CODES)) == 1

    def test_array_inside_prose(self):
        text = "Sure! " + json.dumps([ENTRY, ENTRY]) + " Let me know if you need more."
        assert len(parse_transactions_response(text, CODES)) == 2

    @pytest.mark.parametrize("key", ["transactions", "data", "results", "items"])
    def test_wrapped_object(self, key):
        text = json.dumps({key: [ENTRY]})
        assert len(parse_transactions_response(text, CODES)) == 1

    @pytest.mark.parametrize("text", ["", "no json here", "[]", '{"other": [1]}', "[1, 2]"])
    def test_no_usable_array(self, text):
        with pytest.raises(ExtractionError):
            parse_transactions_response(text, CODES)


class TestEntries:
    def test_drops_entries_without_merchant_or_amount(self):
        entries = [
            ENTRY,
            {**ENTRY, "merchant_name": ""},
            {**ENTRY, "amount": None},
            {**ENTRY, "amount": "n/a"},
        ]
        txns = parse_transactions_response(json.dumps(entries), CODES)
        assert len(txns) == 1

    def test_all_dropped_raises(self):
        with pytest.raises(ExtractionError):
            parse_transactions_response(json.dumps([{"amount": 10}]), CODES)

    def test_bad_or_missing_date_falls_back_to_today(self):
        entries = [{**ENTRY, "transaction_date": "someday"}, {"merchant_name": "Uber", "amount": 100}]
        with patch("cardwise.extract.response.today_iso", return_value="2026-02-02"):
            txns = parse_transactions_response(json.dumps(entries), CODES)
        assert [t.transaction_date for t in txns] == ["2026-02-02", "2026-02-02"]

    def test_date_alias_and_format(self):
        entry = {"merchant_name": "Uber", "amount": 100, "date": "03/01/2026"}
        assert parse_transactions_response(json.dumps([entry]))[0].transaction_date == "2026-01-03"

    def test_unknown_code_is_dropped(self):
        txns = parse_transactions_response(json.dumps([{**ENTRY, "category_code": "XYZ"}]), CODES)
        assert txns[0].category_code is None

    def test_code_is_uppercased(self):
        txns = parse_transactions_response(json.dumps([{**ENTRY, "category_code": "food"}]), CODES)
        assert txns[0].category_code == "FOOD"

    def test_string_amount_in_units(self):
        txns = parse_transactions_response(json.dumps([{**ENTRY, "amount": "R$ 159,90"}]), CODES)
        assert txns[0].amount == 15990

    def test_negative_credit(self):
        txns = parse_transactions_response(json.dumps([{**ENTRY, "amount": -2000}]), CODES)
        assert txns[0].amount == -2000
