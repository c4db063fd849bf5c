from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from app.models import ClockEventKind
from app.services.weeks import calendar_day, normalize_ts
from app.settings import MONTHLY_OVERTIME_THRESHOLD_MINUTES


class ClockEventLike(Protocol):
    kind: ClockEventKind
    occurred_at: datetime


class ShiftLike(Protocol):
    start_at: datetime
    end_at: datetime
    break_minutes: int


@dataclass(frozen=True)
class WorkedTime:
    total_minutes: int
    gross_minutes: int
    break_minutes: int
    sessions_count: int
    days_worked: int


@dataclass(frozen=True)
class PlannedTime:
    total_minutes: int
    shifts_count: int
    shift_days: int


@dataclass(frozen=True)
class TimesheetTotals:
    regular_minutes: int
    overtime_minutes: int
    break_minutes: int
    planned_minutes: int
    variance_minutes: int
    days_worked: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "regular_minutes": self.regular_minutes,
            "overtime_minutes": self.overtime_minutes,
            "break_minutes": self.break_minutes,
            "planned_minutes": self.planned_minutes,
            "variance_minutes": self.variance_minutes,
            "days_worked": self.days_worked,
        }


def _kind(value: ClockEventKind | str) -> ClockEventKind:
    return value if isinstance(value, ClockEventKind) else ClockEventKind(value)


def _seconds_between(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds()))


def calculate_worked_time(
    events: Iterable[ClockEventLike],
    period_start_at: datetime,
    period_end_at: datetime,
    tz: ZoneInfo | None = None,
) -> WorkedTime:
    """Pair clock punches into sessions and sum their durations.

    ``events`` must be sorted by ``occurred_at`` and already scoped to a single
    user and location. Only completed sessions count: an open clock-in at the
    end of the period, and a break still open at clock-out, add nothing.
    """
    window_start = normalize_ts(period_start_at)
    window_end = normalize_ts(period_end_at)

    gross_seconds = 0
    break_seconds = 0
    sessions_count = 0
    days: set[date] = set()

    session_start: datetime | None = None
    session_break_seconds = 0
    break_start: datetime | None = None

    for event in events:
        occurred_at = normalize_ts(event.occurred_at)
        if occurred_at < window_start or occurred_at >= window_end:
            continue

        kind = _kind(event.kind)
        if kind == ClockEventKind.CLOCK_IN:
            session_start = occurred_at
            session_break_seconds = 0
            break_start = None
        elif kind == ClockEventKind.CLOCK_OUT:
            if session_start is None:
                continue
            gross_seconds += _seconds_between(session_start, occurred_at)
            break_seconds += session_break_seconds
            sessions_count += 1
            days.add(calendar_day(session_start, tz))
            session_start = None
            session_break_seconds = 0
            break_start = None
        elif kind == ClockEventKind.BREAK_START:
            if session_start is not None:
                break_start = occurred_at
        elif kind == ClockEventKind.BREAK_END:
            if session_start is not None and break_start is not None:
                session_break_seconds += _seconds_between(break_start, occurred_at)
                break_start = None

    gross_minutes = gross_seconds // 60
    break_minutes = min(break_seconds // 60, gross_minutes)
    return WorkedTime(
        total_minutes=gross_minutes - break_minutes,
        gross_minutes=gross_minutes,
        break_minutes=break_minutes,
        sessions_count=sessions_count,
        days_worked=len(days),
    )


def calculate_planned_time(
    shifts: Iterable[ShiftLike],
    period_start_at: datetime,
    period_end_at: datetime,
    tz: ZoneInfo | None = None,
) -> PlannedTime:
    window_start = normalize_ts(period_start_at)
    window_end = normalize_ts(period_end_at)

    planned_seconds = 0
    shifts_count = 0
    days: set[date] = set()

    for shift in shifts:
        start_at = normalize_ts(shift.start_at)
        if start_at < window_start or start_at >= window_end:
            continue
        end_at = normalize_ts(shift.end_at)
        net_seconds = _seconds_between(start_at, end_at) - max(0, shift.break_minutes or 0) * 60
        planned_seconds += max(0, net_seconds)
        shifts_count += 1
        days.add(calendar_day(start_at, tz))

    return PlannedTime(
        total_minutes=planned_seconds // 60,
        shifts_count=shifts_count,
        shift_days=len(days),
    )


def generate_timesheet_totals(
    worked: WorkedTime,
    planned: PlannedTime,
    *,
    overtime_threshold_minutes: int = MONTHLY_OVERTIME_THRESHOLD_MINUTES,
) -> TimesheetTotals:
    threshold = max(0, overtime_threshold_minutes)
    worked_minutes = max(0, worked.total_minutes)
    return TimesheetTotals(
        regular_minutes=min(worked_minutes, threshold),
        overtime_minutes=max(0, worked_minutes - threshold),
        break_minutes=worked.break_minutes,
        planned_minutes=planned.total_minutes,
        variance_minutes=worked_minutes - planned.total_minutes,
        days_worked=worked.days_worked,
    )


def minutes_to_hours(minutes: int) -> str:
    return f"{minutes / 60:.2f}"
