"""Extraction base: shared data structures, strategy interface and value parsing."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

PDF_EXTENSIONS = frozenset({"pdf"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png"})
CSV_EXTENSIONS = frozenset({"csv"})
SUPPORTED_EXTENSIONS = PDF_EXTENSIONS | IMAGE_EXTENSIONS | CSV_EXTENSIONS

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d", "%d/%m/%y")

_CENT = Decimal("0.01")


@dataclass
class RawTransaction:
    """Intermediate representation output by extractors, before DB insertion."""
    merchant_name: str
    transaction_date: str          # YYYY-MM-DD
    amount: int                    # signed cents: positive=charge, negative=credit
    description: str | None = None
    category_code: str | None = None


@dataclass
class ExtractionContext:
    """What a strategy gets to work with for one document."""
    file_bytes: bytes
    extension: str                 # lowercase, no dot
    file_path: str | None = None   # storage key, needed for presigned URLs

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES.get(self.extension, "application/octet-stream")


class ExtractionStrategy(ABC):
    """One way of turning a document into transactions.

    Implementations signal failure by raising ExternalServiceError (the
    call failed or timed out) or ExtractionError (the output was unusable);
    the extractor then moves on to the next strategy.
    """

    name: str = "strategy"

    @abstractmethod
    def supports(self, extension: str) -> bool:
        """Return True if this strategy can handle the given extension."""

    @abstractmethod
    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        ...


def normalize_extension(extension: str) -> str:
    return extension.strip().lower().lstrip(".")


def parse_amount(value: str | int | float | Decimal) -> int:
    """Convert a currency value in units to signed integer cents.

    Accepts "1234.56", "1.234,56", "R$ 1.234,56", "-45,90", "(12.00)".
    A single separator is read as the decimal point; with both present the
    rightmost one is. Rounds half-up to the cent.

    Raises:
        ValueError: If the value is not a number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
    else:
        number = _parse_amount_text(value)
    cents = (number * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _parse_amount_text(text: str) -> Decimal:
    raw = text.strip()
    negative = False
    if raw.startswith("(") and raw.endswith(")"):
        negative = True
        raw = raw[1:-1]
    raw = re.sub(r"(?i)r\$|brl|usd|\$|\s", "", raw)
    if raw.startswith("-"):
        negative = not negative
        raw = raw[1:]
    elif raw.startswith("+"):
        raw = raw[1:]
    if raw.endswith("-"):
        negative = not negative
        raw = raw[:-1]

    if not raw or not re.fullmatch(r"[\d.,]+", raw):
        raise ValueError(f"Invalid amount: {text!r}")

    last_dot = raw.rfind(".")
    last_comma = raw.rfind(",")
    if last_dot >= 0 and last_comma >= 0:
        decimal_sep = "." if last_dot > last_comma else ","
    elif raw.count(",") == 1:
        decimal_sep = ","
    elif raw.count(".") == 1:
        decimal_sep = "."
    else:
        decimal_sep = None

    thousands_sep = "," if decimal_sep == "." else "."
    if decimal_sep is None:
        normalized = raw.replace(",", "").replace(".", "")
    else:
        normalized = raw.replace(thousands_sep, "").replace(decimal_sep, ".")

    try:
        number = Decimal(normalized)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {text!r}") from e
    return -number if negative else number


def normalize_date(value: str) -> str:
    """Normalize a date string to YYYY-MM-DD.

    Raises:
        ValueError: If the value matches none of the known formats.
    """
    text = value.strip()
    # ISO datetimes: keep the date part
    if re.match(r"^\d{4}-\d{2}-\d{2}[T ]", text):
        text = text[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date: {value!r}")


def coerce_ai_amount(value) -> int:
    """Amounts returned by the document model.

    Integers are already cents; floats are currency units; strings go
    through parse_amount.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        return value
    return parse_amount(value)


def today_iso() -> str:
    return date.today().isoformat()
