"""Date and amount normalization for receipt field values.

Both normalizers work as ordered lists of parsers: each parser returns a
value or ``None`` and the first hit wins.
"""

import re
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation

DateParser = Callable[[str], datetime | None]

# Day-first formats precede their month-first twins; "%I ... %p" covers the
# bank slip layout "2/12/2026, 3:31:00 PM".
DATE_FORMATS: tuple[str, ...] = (
    "%m/%d/%Y, %I:%M:%S %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%d-%m-%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m-%d-%Y",
    "%m/%d/%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%m-%y",
    "%d/%m/%y",
    "%d %b %y",
    "%d %B %y",
)

MAX_AMOUNT = Decimal("1000000000")

_AMOUNT_NOISE_RE = re.compile(r"ETB|USD|EUR|GBP|Birr|\$", re.IGNORECASE)
_AMOUNT_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def _strptime_parser(fmt: str) -> DateParser:
    def parse(value: str) -> datetime | None:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            return None

    return parse


def _iso_parser(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


DATE_PARSERS: tuple[tuple[str, DateParser], ...] = tuple(
    (fmt, _strptime_parser(fmt)) for fmt in DATE_FORMATS
) + (("iso8601", _iso_parser),)


def _clean_date_string(value: str) -> str:
    cleaned = re.sub(r"\s+", " ", value).strip()
    return cleaned.strip(" ,;()[]")


def parse_date(value: str | None) -> datetime | None:
    """Parse a date substring against the ordered parser list.

    Args:
        value: Candidate date text, e.g. ``"05-01-2026 19:46:30"``.

    Returns:
        The first successful parse, or ``None`` if no parser accepts it.
    """
    if not value:
        return None

    cleaned = _clean_date_string(value)
    if not cleaned:
        return None

    for _name, parser in DATE_PARSERS:
        parsed = parser(cleaned)
        if parsed is not None:
            return parsed
    return None


def is_valid_amount(amount: Decimal | None) -> bool:
    """Return whether an amount is usable: strictly positive and plausible."""
    return amount is not None and Decimal(0) < amount < MAX_AMOUNT


def parse_amount(value: str | None) -> Decimal | None:
    """Parse a monetary substring such as ``"4,581.00 ETB"`` into a Decimal.

    Currency labels and thousands separators are dropped and the first
    number is taken. Non-positive or implausibly large amounts are treated
    as absent.
    """
    if not value:
        return None

    cleaned = _AMOUNT_NOISE_RE.sub("", value).replace(",", "")
    match = _AMOUNT_NUMBER_RE.search(cleaned)
    if not match:
        return None

    try:
        amount = Decimal(match.group())
    except InvalidOperation:
        return None
    return amount if is_valid_amount(amount) else None
