"""Parse document-model replies into RawTransactions.

Models wrap JSON in prose or code fences, or nest the list under a key.
Candidates are tried in order: fenced block, whole text, then the span
from the first ``[`` to the last ``]``.
"""

from __future__ import annotations

import json
import logging
import re

from cardwise.errors import ExtractionError

from .base import RawTransaction, coerce_ai_amount, normalize_date, today_iso

logger = logging.getLogger(__name__)

WRAPPER_KEYS = ("transactions", "data", "results", "items")

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_transactions_response(
    text: str, valid_codes: set[str] | None = None,
) -> list[RawTransaction]:
    """Decode a model reply into transactions.

    Entries without a merchant name or a usable amount are dropped. A
    missing or unreadable date falls back to today. category_code is kept
    only when it is one of valid_codes (when given).

    Raises:
        ExtractionError: If no non-empty JSON array of objects is found,
            or every entry was dropped.
    """
    entries = _decode_entries(text or "")
    transactions: list[RawTransaction] = []
    for entry in entries:
        txn = _to_raw_transaction(entry, valid_codes)
        if txn is not None:
            transactions.append(txn)

    dropped = len(entries) - len(transactions)
    if dropped:
        logger.warning("Dropped %d malformed entries from model response", dropped)
    if not transactions:
        raise ExtractionError("Model response contained no usable transactions")
    return transactions


def _decode_entries(text: str) -> list[dict]:
    for candidate in _candidates(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        entries = _unwrap(data)
        if entries:
            return entries
    logger.error("Could not decode transactions from model response: %s", text[:200])
    raise ExtractionError("Model response did not contain a JSON array of transactions")


def _candidates(text: str) -> list[str]:
    found: list[str] = []
    match = _FENCE_RE.search(text)
    if match:
        found.append(match.group(1).strip())
    found.append(text.strip())
    start, end = text.find("["), text.rfind("]")
    if 0 <= start < end:
        found.append(text[start:end + 1])
    return found


def _unwrap(data) -> list[dict] | None:
    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            return None
    if not isinstance(data, list):
        return None
    objects = [item for item in data if isinstance(item, dict)]
    return objects or None


def _to_raw_transaction(entry: dict, valid_codes: set[str] | None) -> RawTransaction | None:
    merchant = str(entry.get("merchant_name") or "").strip()
    if not merchant or entry.get("amount") is None:
        return None
    try:
        amount = coerce_ai_amount(entry["amount"])
    except ValueError:
        return None

    txn_date = today_iso()
    raw_date = entry.get("transaction_date") or entry.get("date")
    if raw_date:
        try:
            txn_date = normalize_date(str(raw_date))
        except ValueError:
            logger.debug("Unreadable date %r for %s, using today", raw_date, merchant)

    code = entry.get("category_code") or entry.get("category")
    code = str(code).strip().upper() if code else None
    if code and valid_codes is not None and code not in valid_codes:
        code = None

    description = entry.get("description")
    return RawTransaction(
        merchant_name=merchant,
        transaction_date=txn_date,
        amount=amount,
        description=str(description) if description else None,
        category_code=code,
    )
