from __future__ import annotations

import logging
import math
import re
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

"""Italian-locale value parsers.

Numbers arrive as ``1.234,56``, ``120,00``, ``€ 12,50`` or ``-45,5``; dates as
``DD/MM/YY``, ``DD/MM/YYYY`` (optionally followed by ``HH:MM[:SS]``), as
spreadsheet serial numbers, or as native date values from the reader.

``parse_number`` returns None when nothing usable is found so callers decide
whether absence is fatal. ``parse_date`` returns None only for an absent
value and raises ``DateParseError`` for anything malformed.
"""

__all__ = [
    "DateParseError",
    "parse_number",
    "parse_quantity",
    "parse_date",
    "normalize_sku",
    "normalize_user",
]

logger = logging.getLogger(__name__)

# Days between the spreadsheet epoch (1899-12-30) and 1970-01-01
EXCEL_EPOCH_OFFSET_DAYS = 25569
SECONDS_PER_DAY = 86400

TWO_DIGIT_YEAR_PIVOT = 30  # 00-30 -> 20xx, 31-99 -> 19xx
MIN_YEAR = 1900
MAX_YEAR = 2100

_NUMBER_JUNK = re.compile(r"[^\d.,-]")
_NON_DECIMAL = re.compile(r"[^\d.]")
_EMPTY_TOKENS = {"", "null", "undefined", "nan", "none"}

_DATE_RE = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})"
    r"(?:[ T]+(\d{1,2}):(\d{2})(?::(\d{2}))?)?$"
)

_SKU_SEPARATORS = re.compile(r"[-_./\s]")
_SKU_JUNK = re.compile(r"[^A-Z0-9]")


class DateParseError(ValueError):
    """Raised when a date cell is present but malformed or not a real date."""


def parse_number(value: Any, field_label: str | None = None, row_number: int | None = None) -> float | None:
    """Parse an Italian-formatted number.

    Separator rules: with both ``.`` and ``,`` present the dot groups
    thousands and the comma is decimal; with only ``,`` a 1-2 digit suffix is
    decimal, a longer suffix is a thousands group and an empty suffix is
    dropped; with only ``.`` (or neither) the value is read as-is.

    Parameters
    ----------
    value: raw cell (str / int / float / None)
    field_label: column label, used for debug logging only
    row_number: file row number, used for debug logging only
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return float(value)

    s = str(value).strip()
    if s.lower() in _EMPTY_TOKENS:
        return None

    s = _NUMBER_JUNK.sub("", s.replace("€", ""))
    negative = s.startswith("-")
    if negative:
        s = s[1:]

    if "." in s and "," in s:
        s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        parts = s.split(",")
        if len(parts) == 2:
            head, tail = parts
            if 0 < len(tail) <= 2:
                s = f"{head}.{tail}"
            elif not tail:
                s = head
            else:
                s = head + tail
        else:
            s = s.replace(",", "")

    s = _NON_DECIMAL.sub("", s)
    if not s:
        return None
    try:
        n = float(s)
    except ValueError:
        logger.debug("row %s: %s not numeric: %r", row_number, field_label or "value", value)
        return None
    return -n if negative else n


def parse_quantity(value: Any, field_label: str | None = None, row_number: int | None = None) -> int | None:
    """Parse a strictly positive whole quantity; None otherwise."""
    n = parse_number(value, field_label, row_number)
    if n is None or n <= 0 or n != int(n):
        return None
    return int(n)


def _to_iso(dt: datetime) -> str:
    # naive values are wall-clock times and are stored as-is with a Z suffix
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _within_years(dt: datetime, raw: Any) -> datetime:
    if not MIN_YEAR <= dt.year <= MAX_YEAR:
        raise DateParseError(f"Invalid year ({MIN_YEAR}-{MAX_YEAR}): {raw}")
    return dt


def _from_serial(serial: float) -> str:
    try:
        seconds = round((serial - EXCEL_EPOCH_OFFSET_DAYS) * SECONDS_PER_DAY)
        dt = datetime(1970, 1, 1, tzinfo=UTC) + timedelta(seconds=seconds)
    except (OverflowError, ValueError) as e:
        raise DateParseError(f"Invalid date serial: {serial:g}") from e
    return _to_iso(_within_years(dt, f"{serial:g}"))


def parse_date(value: Any) -> str | None:
    """Parse a date cell into a full ISO-8601 UTC timestamp (``...Z``).

    Time defaults to midnight when absent so keys built from the date stay
    stable between uploads.

    Raises
    ------
    DateParseError: malformed string, out-of-range component or year, a
        calendar date that does not exist (e.g. 31/02), or a serial number
        outside the datetime range
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise DateParseError(f"Invalid date: {value!r}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return _from_serial(float(value))
    if isinstance(value, datetime):
        return _to_iso(_within_years(value, value))
    if isinstance(value, date):
        return _to_iso(_within_years(datetime.combine(value, time()), value))

    text = str(value).strip()
    if not text:
        return None

    match = _DATE_RE.match(text)
    if not match:
        raise DateParseError(f"Invalid date format: {text}. Use DD/MM/YY or DD/MM/YYYY")

    day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    hour = int(match.group(4) or 0)
    minute = int(match.group(5) or 0)
    second = int(match.group(6) or 0)

    if len(match.group(3)) == 2:
        year += 2000 if year <= TWO_DIGIT_YEAR_PIVOT else 1900

    if not 1 <= day <= 31:
        raise DateParseError(f"Invalid day (1-31): {text}")
    if not 1 <= month <= 12:
        raise DateParseError(f"Invalid month (1-12): {text}")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise DateParseError(f"Invalid year ({MIN_YEAR}-{MAX_YEAR}): {text}")
    if hour > 23 or minute > 59 or second > 59:
        raise DateParseError(f"Invalid time: {text}")

    try:
        parsed = datetime(year, month, day, hour, minute, second)
    except ValueError as e:
        raise DateParseError(f"Date does not exist: {text}") from e
    return _to_iso(parsed)


def normalize_sku(sku: Any) -> str:
    """Upper-case a SKU and drop separators so lookups match across sources."""
    if sku is None:
        return ""
    normalized = str(sku).strip().upper()
    normalized = _SKU_SEPARATORS.sub("", normalized)
    return _SKU_JUNK.sub("", normalized)


def normalize_user(user: Any) -> str:
    if user is None:
        return ""
    return str(user).strip().lower()
