from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

WEEK_LENGTH = timedelta(days=7)


def normalize_ts(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calendar_day(value: datetime, tz: ZoneInfo | None = None) -> date:
    """Calendar date of ``value``.

    Without ``tz`` this is the wall-clock date in the offset the instant
    carries (naive values read as UTC). Week placement relies on this form.
    """
    normalized = normalize_ts(value)
    if tz is not None:
        return normalized.astimezone(tz).date()
    return normalized.date()


def week_start_for(value: datetime) -> date:
    day = calendar_day(value)
    return day - timedelta(days=day.weekday())


def is_in_week(value: datetime, week_start: date) -> bool:
    day = calendar_day(value)
    return week_start <= day < week_start + WEEK_LENGTH


def is_monday(day: date) -> bool:
    return day.weekday() == 0


def period_window(period_start: date, period_end: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    # Inclusive date range -> half-open [start, end) window in the given zone.
    start_local = datetime.combine(period_start, time.min, tzinfo=tz)
    end_local = datetime.combine(period_end + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def local_day_bounds_utc(reference: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    local_day = normalize_ts(reference).astimezone(tz).date()
    return period_window(local_day, local_day, tz)
