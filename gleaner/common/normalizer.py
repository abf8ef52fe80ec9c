"""Normalization of raw review fields into canonical values.

Every function here is pure apart from ``date``, which reads today's date
when the caller does not supply one. None of them raise on bad input: an
unparseable rating becomes 0 and an unparseable date is returned as written.
"""

from __future__ import annotations

import re
from datetime import date as Date
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from gleaner.data_types import CanonicalRecord, RawRecord

MIN_RATING = 1.0
MAX_RATING = 5.0

_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")
_RELATIVE_DATE = re.compile(
    r"(\d+)\s+(day|week|month|year)s?\s+ago", re.IGNORECASE
)
_EXCESS_NEWLINES = re.compile(r"\n{3,}")

# Tried in order. %m/%d/%Y wins over %d/%m/%Y for ambiguous dates.
DATE_FORMATS: tuple[str, ...] = (
    "%b %d, %Y",  # Jan 15, 2024
    "%B %d, %Y",  # January 15, 2024
    "%d %b %Y",  # 15 Jan 2024
    "%d %B %Y",  # 15 January 2024
    "%m/%d/%Y",  # 01/15/2024
    "%d/%m/%Y",  # 15/01/2024
    "%Y/%m/%d",  # 2024/01/15
)


def rating(raw: str | None) -> float:
    """Parse a rating out of free text.

    The first integer or decimal token is taken. Values outside [1, 5] and
    strings with no number at all map to 0.

    Examples:
        rating("Rated 4 out of 5 stars") -> 4.0
        rating("4.5") -> 4.5
        rating("6") -> 0.0
    """
    if not raw:
        return 0.0
    match = _NUMBER.search(raw.strip())
    if match is None:
        return 0.0
    value = float(match.group(0))
    if MIN_RATING <= value <= MAX_RATING:
        return value
    return 0.0


def text(raw: str | None) -> str:
    """Trim, unify line endings to LF and cap blank-line runs at one."""
    if not raw:
        return ""
    cleaned = raw.strip().replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES.sub("\n\n", cleaned)


def _parse_iso(value: str) -> Date | None:
    match = _ISO_DATE.match(value)
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return Date(year, month, day)
    except ValueError:
        return None


def _parse_fixed(value: str) -> Date | None:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def _parse_relative(value: str, today: Date) -> Date | None:
    match = _RELATIVE_DATE.search(value)
    if match is None:
        return None
    amount = int(match.group(1))
    match match.group(2).lower():
        case "day":
            return today - timedelta(days=amount)
        case "week":
            return today - timedelta(weeks=amount)
        case "month":
            return today - relativedelta(months=amount)
        case "year":
            return today - relativedelta(years=amount)
    return None


def date(raw: str | None, today: Date | None = None) -> str:
    """Normalize a date string to YYYY-MM-DD.

    Parsers are tried in order: ISO-8601 date or date-time, fixed
    human-readable formats, "<N> <unit>(s) ago", then the literals "today"
    and "yesterday". When none applies the trimmed input is returned.

    Args:
        raw: The date as extracted (attribute value or visible text).
        today: Reference date for relative forms (default: date.today()).

    Returns:
        The normalized date, or the trimmed original string.
    """
    if not raw:
        return ""
    value = raw.strip()
    if not value:
        return ""

    if (parsed := _parse_iso(value)) is not None:
        return parsed.isoformat()
    if (parsed := _parse_fixed(value)) is not None:
        return parsed.isoformat()

    today = today or Date.today()
    if (parsed := _parse_relative(value, today)) is not None:
        return parsed.isoformat()

    lowered = value.lower()
    if lowered == "today":
        return today.isoformat()
    if lowered == "yesterday":
        return (today - timedelta(days=1)).isoformat()

    return value


def verified(raw: str | None) -> bool:
    return bool(raw and raw.strip())


def normalize(record: RawRecord, today: Date | None = None) -> CanonicalRecord:
    """Build the CanonicalRecord for one RawRecord."""
    return CanonicalRecord(
        rating=rating(record.rating),
        text=text(record.text),
        date=date(record.date, today=today),
        reviewer_name=text(record.reviewer_name),
        title=text(record.title),
        verified=verified(record.verified),
    )
