"""
Time utilities for SignalSynth.

All internal timestamps are timezone-aware UTC; conversion to the
configured market timezone happens only for display.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import pytz

from signalsynth.core.config import get_settings

Clock = Callable[[], datetime]


def get_timezone() -> pytz.BaseTzInfo:
    """Get configured timezone."""
    settings = get_settings()
    return pytz.timezone(settings.timezone)


def now_utc() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return to_epoch_ms(now_utc())


def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def from_epoch_seconds(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def to_local(dt: datetime) -> datetime:
    """Convert datetime to configured timezone."""
    tz = get_timezone()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def format_timestamp(dt: Optional[datetime] = None, fmt: str = "iso") -> str:
    """
    Format datetime to string.

    Args:
        dt: Datetime to format. Uses current UTC time if not provided.
        fmt: Format type - 'iso', 'display', 'date', 'time'
    """
    if dt is None:
        dt = now_utc()

    formats = {
        "iso": "%Y-%m-%dT%H:%M:%SZ",
        "display": "%Y-%m-%d %H:%M:%S",
        "date": "%Y-%m-%d",
        "time": "%H:%M:%S",
    }

    return dt.strftime(formats.get(fmt, fmt))


def parse_timestamp(s: str) -> datetime:
    """Parse an ISO-8601 string (with or without 'Z') into aware UTC."""
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def date_range(days: int, today: Optional[date] = None) -> tuple[str, str]:
    """(from, to) as YYYY-MM-DD covering the last `days` days."""
    end = today or now_utc().date()
    start = end - timedelta(days=days)
    return start.isoformat(), end.isoformat()


def days_until(target: date, from_dt: Optional[datetime] = None) -> int:
    """Whole days from `from_dt` (UTC date) until `target`; negative if past."""
    base = (from_dt or now_utc()).date()
    return (target - base).days


def is_market_hours(dt: Optional[datetime] = None) -> bool:
    """
    Check if given time is during US market hours.

    US Market: 9:30 AM - 4:00 PM Eastern
    """
    if dt is None:
        dt = now_utc()

    eastern = pytz.timezone("America/New_York")
    dt_eastern = dt.astimezone(eastern)

    if dt_eastern.weekday() >= 5:
        return False

    market_open = dt_eastern.replace(hour=9, minute=30, second=0, microsecond=0)
    market_close = dt_eastern.replace(hour=16, minute=0, second=0, microsecond=0)

    return market_open <= dt_eastern <= market_close
