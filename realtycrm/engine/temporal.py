"""
Temporal Filter
Point-in-time predicates and reporting-month arithmetic.

Reporting months are civil months in one fixed UTC offset (config.REPORTING_UTC_OFFSET_HOURS).
Month bounds are computed by plain offset arithmetic, never through the host locale or a
timezone database, so every client agrees on where a month starts and ends.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from realtycrm.config import config
from realtycrm.models import ReportingWindow

logger = logging.getLogger(__name__)

Instant = Union[datetime, str]

_ONE_MS = timedelta(milliseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def reporting_offset() -> timedelta:
    return timedelta(hours=config.REPORTING_UTC_OFFSET_HOURS)


# =============================================================================
# INSTANT PARSING / SERIALISATION
# =============================================================================

def parse_instant(value: Optional[Instant]) -> Optional[datetime]:
    """
    Normalise an instant to an aware UTC datetime.
    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings with 'Z' or an
    explicit offset, and date-only strings (midnight UTC). None passes through.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Not an ISO-8601 instant: {value!r}")
    else:
        raise TypeError(f"Unsupported instant type: {type(value).__name__}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(instant: Optional[datetime]) -> Optional[str]:
    """Serialise as YYYY-MM-DDTHH:MM:SS.mmmZ."""
    if instant is None:
        return None
    utc = parse_instant(instant)
    return utc.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


# =============================================================================
# PREDICATES
# =============================================================================

def existed_by(created_at: Instant, as_of_end: Optional[Instant] = None) -> bool:
    """True if the entity was visible in a snapshot ending at as_of_end (always true without one)."""
    if as_of_end is None:
        return True
    return parse_instant(created_at) <= parse_instant(as_of_end)


def in_range(timestamp: Instant, start: Optional[Instant] = None, end: Optional[Instant] = None) -> bool:
    """Inclusive [start, end] check; a missing bound is open."""
    moment = parse_instant(timestamp)
    if start is not None and moment < parse_instant(start):
        return False
    if end is not None and moment > parse_instant(end):
        return False
    return True


# =============================================================================
# REPORTING MONTHS
# =============================================================================

def civil_year_month(instant: Optional[Instant] = None) -> Tuple[int, int]:
    """(year, month) of the instant on the fixed reporting calendar."""
    moment = parse_instant(instant) if instant is not None else utc_now()
    local = moment + reporting_offset()
    return local.year, local.month


def window_for(year: int, month: int) -> ReportingWindow:
    """Absolute bounds of civil month (year, month): 00:00:00.000 on day 1 to 23:59:59.999 on the last day."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")

    offset = reporting_offset()
    civil_start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        civil_next = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        civil_next = datetime(year, month + 1, 1, tzinfo=timezone.utc)

    return ReportingWindow(
        start=civil_start - offset,
        end=civil_next - offset - _ONE_MS,
        year=year,
        month=month,
    )


def month_window(instant: Optional[Instant] = None) -> ReportingWindow:
    """Reporting window containing the instant (now when omitted)."""
    year, month = civil_year_month(instant)
    window = window_for(year, month)
    logger.debug(f"month_window: {window.label} → {to_iso(window.start)} .. {to_iso(window.end)}")
    return window


def shift_window(window: ReportingWindow, months: int) -> ReportingWindow:
    """Window `months` calendar months away (negative for the past)."""
    index = window.year * 12 + (window.month - 1) + months
    return window_for(index // 12, index % 12 + 1)


def is_current_month(selected: Instant, now: Optional[Instant] = None) -> bool:
    """Compare civil (year, month) pairs, never raw timestamps."""
    return civil_year_month(selected) == civil_year_month(now)
