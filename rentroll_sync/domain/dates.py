# rentroll_sync/domain/dates.py
"""
Calendar-date helpers.

Everything here works on `datetime.date` values (canonical text form
`YYYY-MM-DD`). There is no wall-clock time in the reconciliation path: "today"
is read once from the business timezone and all arithmetic is plain date math,
which has no DST drift.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from ..config import settings

DateLike = Union[date, str]

NOT_AVAILABLE = "N/A"

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")

# Two-digit years: 00..50 -> 2000s, 51..99 -> 1900s
_YEAR_PIVOT = 50


def today(tz_name: Optional[str] = None) -> date:
    tz = ZoneInfo(tz_name or settings.business_timezone)
    return datetime.now(tz).date()


def _build(y: int, m: int, d: int) -> Optional[date]:
    try:
        return date(y, m, d)
    except ValueError:
        return None


def parse_flexible(raw: Any) -> Optional[date]:
    """
    Parse a source-file date.

    Accepts a `date`, `YYYY-MM-DD`, `M/D/YYYY` and `M/D/YY`. Anything else
    (including ISO timestamps, see `parse_iso_date`) yields None; callers rely
    on None to detect bad data, so this never raises.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return None
    if isinstance(raw, date):
        return raw

    s = str(raw).strip()
    if not s or s.upper() == NOT_AVAILABLE:
        return None

    m = _ISO_RE.match(s)
    if m:
        return _build(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _US_RE.match(s)
    if m:
        month, day, year_txt = int(m.group(1)), int(m.group(2)), m.group(3)
        year = int(year_txt)
        if len(year_txt) == 2:
            year += 2000 if year <= _YEAR_PIVOT else 1900
        return _build(year, month, day)

    return None


def parse_iso_date(raw: Any) -> Optional[date]:
    """
    Date component of an ISO timestamp, taken in UTC.

    Plain dates fall through to `parse_flexible`.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        dt = raw
    else:
        s = str(raw).strip()
        if "T" not in s:
            return parse_flexible(s)
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def _require(d: DateLike) -> date:
    if isinstance(d, date) and not isinstance(d, datetime):
        return d
    out = parse_flexible(d) if isinstance(d, str) and _ISO_RE.match(d.strip()) else None
    if out is None:
        raise ValueError(f"expected a YYYY-MM-DD date, got {d!r}")
    return out


def days_between(start: DateLike, end: Optional[DateLike] = None) -> int:
    """Signed day count from `start` to `end` (default: today)."""
    a = _require(start)
    b = _require(end) if end is not None else today()
    return (b - a).days


def add_days(d: DateLike, n: int) -> date:
    return _require(d) + timedelta(days=int(n))


def to_iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


def format_for_display(d: Any) -> str:
    """`YYYY-MM-DD` -> `MM/DD/YYYY`; N/A for empty input."""
    parsed = parse_flexible(d)
    if parsed is None:
        return NOT_AVAILABLE
    return f"{parsed.month:02d}/{parsed.day:02d}/{parsed.year:04d}"
