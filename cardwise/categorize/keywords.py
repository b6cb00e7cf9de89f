"""Keyword heuristic: merchant name → category code without any I/O.

The table is ordered; the first code owning a keyword found in the
merchant name wins. Both sides are compared lowercase with accents
stripped, so "Farmácia" matches "farmacia". Keywords of three characters
or fewer ("99", "bar", "ted") must match a whole word.
"""

from __future__ import annotations

import re
import unicodedata

SHORT_KEYWORD_LENGTH = 3


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", stripped.lower()).strip()


class KeywordMatcher:
    """Match merchant names against an ordered keyword table.

    Args:
        table: [{"code": "SUPER", "keywords": ["supermercado", ...]}, ...]
    """

    def __init__(self, table: list[dict]):
        self._rules: list[tuple[str, list]] = []
        for entry in table:
            code = entry.get("code")
            if not code:
                continue
            patterns = [self._compile(str(kw)) for kw in entry.get("keywords", []) if str(kw).strip()]
            self._rules.append((code, patterns))

    @staticmethod
    def _compile(keyword: str):
        kw = normalize_text(keyword)
        if len(kw) <= SHORT_KEYWORD_LENGTH:
            return re.compile(rf"(?<![a-z0-9]){re.escape(kw)}(?![a-z0-9])")
        return kw

    def match(self, merchant_name: str) -> str | None:
        name = normalize_text(merchant_name or "")
        if not name:
            return None
        for code, patterns in self._rules:
            for pattern in patterns:
                if isinstance(pattern, str):
                    if pattern in name:
                        return code
                elif pattern.search(name):
                    return code
        return None
