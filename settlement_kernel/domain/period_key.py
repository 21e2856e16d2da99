"""
Period key calculator -- maps timestamps to settlement buckets.

Responsibility:
    Computes the canonical period key of a timestamp for a settlement
    cycle, validates and normalises keys supplied by callers, orders keys
    chronologically and returns the calendar bounds of a key.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Key formats:
    MONTHLY  ``MM/YYYY``   local calendar month, zero-padded.
    WEEKLY   ``YYYY-Www``  ISO-8601 week; the year is the ISO week-year,
             which differs from the calendar year around 1 January
             (2024-12-31 belongs to ``2025-W01``).

Failure modes:
    - ``period_key()`` returns None for unparseable timestamps; it never
      raises, so callers can skip a bad order without aborting.
    - ``parse_period_key()`` raises InvalidPeriodKeyError.
"""

import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import cmp_to_key
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from settlement_kernel.domain.enums import SettlementCycle
from settlement_kernel.exceptions import InvalidPeriodKeyError

_MONTHLY_KEY = re.compile(r"^\s*(\d{1,2})/(\d{4})\s*$")
_WEEKLY_KEY = re.compile(r"^\s*(\d{4})-W(\d{1,2})\s*$", re.IGNORECASE)


def resolve_timezone(tz: tzinfo | str | None = None) -> tzinfo:
    """Return the tzinfo used to pick the local calendar day.

    ``None`` means the configured ``local_timezone`` setting.
    """
    if isinstance(tz, tzinfo):
        return tz
    if tz is None:
        from settlement_kernel.settings import get_settings

        tz = get_settings().local_timezone
    if tz.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(tz)


def coerce_timestamp(value: Any) -> datetime | date | None:
    """Turn a datetime, date or ISO-8601 string into a date/datetime.

    Returns None for anything that cannot be read as a point in time.
    """
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def local_date(value: Any, tz: tzinfo | str | None = None) -> date | None:
    """Calendar date of ``value`` in the local timezone.

    Aware datetimes are converted; naive ones are already wall-clock time.
    """
    ts = coerce_timestamp(value)
    if ts is None:
        return None
    if isinstance(ts, datetime):
        if ts.tzinfo is not None:
            try:
                ts = ts.astimezone(resolve_timezone(tz))
            except OverflowError:
                return None
        return ts.date()
    return ts


def period_key(
    timestamp: Any,
    cycle: SettlementCycle,
    tz: tzinfo | str | None = None,
) -> str | None:
    """Canonical period key of ``timestamp`` for ``cycle``, or None."""
    day = local_date(timestamp, tz)
    if day is None:
        return None
    if SettlementCycle(cycle) is SettlementCycle.WEEKLY:
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{day.month:02d}/{day.year}"


def _numeric_parts(key: str, cycle: SettlementCycle) -> tuple[int, int] | None:
    """(year, month-or-week) read leniently; None when the key is malformed."""
    if not isinstance(key, str):
        return None
    pattern = _WEEKLY_KEY if cycle is SettlementCycle.WEEKLY else _MONTHLY_KEY
    match = pattern.match(key)
    if match is None:
        return None
    if cycle is SettlementCycle.WEEKLY:
        return int(match.group(1)), int(match.group(2))
    return int(match.group(2)), int(match.group(1))


def parse_period_key(key: str, cycle: SettlementCycle) -> tuple[int, int]:
    """
    Validate ``key`` for ``cycle`` and return (year, month) or (year, week).

    Raises:
        InvalidPeriodKeyError: malformed key, month outside 1-12, or an
            ISO week that does not exist in that week-year.
    """
    cycle = SettlementCycle(cycle)
    parts = _numeric_parts(key, cycle)
    if parts is None:
        raise InvalidPeriodKeyError(str(key), cycle.value)
    year, number = parts
    if cycle is SettlementCycle.WEEKLY:
        try:
            date.fromisocalendar(year, number, 1)
        except ValueError:
            raise InvalidPeriodKeyError(key, cycle.value) from None
    elif not 1 <= number <= 12 or year < 1:
        raise InvalidPeriodKeyError(key, cycle.value)
    return year, number


def normalize_period_key(key: str, cycle: SettlementCycle) -> str:
    """Canonical spelling of a caller-supplied key (``2025-W9`` -> ``2025-W09``)."""
    cycle = SettlementCycle(cycle)
    year, number = parse_period_key(key, cycle)
    if cycle is SettlementCycle.WEEKLY:
        return f"{year}-W{number:02d}"
    return f"{number:02d}/{year}"


def is_valid_period_key(key: str, cycle: SettlementCycle) -> bool:
    try:
        parse_period_key(key, cycle)
    except InvalidPeriodKeyError:
        return False
    return True


def compare_period_keys(a: str, b: str, cycle: SettlementCycle) -> int:
    """
    Chronological three-way comparison of two keys of the same cycle.

    Numeric on (year, month/week) so that ``2025-W9`` sorts before
    ``2025-W10``.  Falls back to lexical order only when a key does not
    parse.
    """
    cycle = SettlementCycle(cycle)
    pa = _numeric_parts(a, cycle)
    pb = _numeric_parts(b, cycle)
    if pa is None or pb is None:
        left, right = str(a or ""), str(b or "")
    else:
        left, right = pa, pb
    return (left > right) - (left < right)


def sort_period_keys(
    keys: Iterable[str],
    cycle: SettlementCycle,
    newest_first: bool = False,
) -> list[str]:
    """Sort keys chronologically (oldest first unless ``newest_first``)."""
    return sorted(
        keys,
        key=cmp_to_key(lambda a, b: compare_period_keys(a, b, cycle)),
        reverse=newest_first,
    )


def period_bounds(key: str, cycle: SettlementCycle) -> tuple[date, date]:
    """
    Local calendar bounds of a period: (first day, first day of next period).

    Raises:
        InvalidPeriodKeyError: if the key does not parse.
    """
    cycle = SettlementCycle(cycle)
    year, number = parse_period_key(key, cycle)
    if cycle is SettlementCycle.WEEKLY:
        start = date.fromisocalendar(year, number, 1)
        return start, start + timedelta(days=7)
    start = date(year, number, 1)
    if number == 12:
        return start, date(year + 1, 1, 1)
    return start, date(year, number + 1, 1)
