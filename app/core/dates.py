"""Staylytics - Date Window Resolution.

Presets resolve against "today" in the time zone the source reports in, so
"yesterday" for a Google Ads account billed in New York is New York's
yesterday, not the server's.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.models.normalized_models import DateRange
from app.core.logging import get_logger

logger = get_logger("core.dates")

DEFAULT_PRESET = "last_7d"


def today_in(tz_name: Optional[str], now: Optional[datetime] = None) -> date:
    """Calendar date of ``now`` in ``tz_name`` (UTC when unknown)."""
    now = now or datetime.now(timezone.utc)
    if not tz_name:
        return now.astimezone(timezone.utc).date()
    try:
        return now.astimezone(ZoneInfo(tz_name)).date()
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown time zone '{tz_name}', using UTC")
        return now.astimezone(timezone.utc).date()


def preset_range(preset: str, today: date) -> DateRange:
    """Resolve a named window. Raises ValueError on an unknown preset."""
    yesterday = today - timedelta(days=1)
    mapping = {
        "today": (today, today),
        "yesterday": (yesterday, yesterday),
        "last_7d": (today - timedelta(days=7), yesterday),
        "last_14d": (today - timedelta(days=14), yesterday),
        "last_28d": (today - timedelta(days=28), yesterday),
        "last_30d": (today - timedelta(days=30), yesterday),
        "last_90d": (today - timedelta(days=90), yesterday),
        "this_month": (today.replace(day=1), today),
    }
    if preset not in mapping:
        raise ValueError(
            f"Unknown date_range '{preset}'. Expected one of: {', '.join(mapping)}"
        )
    start, end = mapping[preset]
    return DateRange(start_date=start, end_date=end)


def resolve_range(
    date_range: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DateRange:
    """Explicit dates win; otherwise a preset; otherwise the last 7 days."""
    if start_date and end_date:
        return DateRange(start_date=start_date, end_date=end_date)
    if start_date or end_date:
        raise ValueError("start_date and end_date must be given together")
    return preset_range(date_range or DEFAULT_PRESET, today_in(tz_name, now))


def previous_period(current: DateRange) -> DateRange:
    """The window of equal length ending the day before ``current`` starts."""
    prev_end = current.start_date - timedelta(days=1)
    prev_start = prev_end - timedelta(days=current.days - 1)
    return DateRange(start_date=prev_start, end_date=prev_end)


def split_range(window: DateRange, max_days: int) -> List[DateRange]:
    """Consecutive windows of at most ``max_days`` days covering ``window``."""
    if max_days <= 0:
        raise ValueError("max_days must be positive")
    chunks: List[DateRange] = []
    start = window.start_date
    while start <= window.end_date:
        end = min(start + timedelta(days=max_days - 1), window.end_date)
        chunks.append(DateRange(start_date=start, end_date=end))
        start = end + timedelta(days=1)
    return chunks
