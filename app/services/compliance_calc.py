from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from app.models import ClockEventKind
from app.services.weeks import calendar_day, normalize_ts

RULE_DAILY_REST = "daily_rest_11h"
RULE_MAX_HOURS_PER_DAY = "max_hours_per_day_10h"
RULE_MAX_HOURS_PER_WEEK = "max_hours_per_week_48h"

SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"

# Hours above the threshold at which a breach becomes critical.
DAILY_CRITICAL_MARGIN_HOURS = 2
WEEKLY_CRITICAL_MARGIN_HOURS = 8


class ClockEventLike(Protocol):
    kind: ClockEventKind
    occurred_at: datetime


class ScheduledShiftLike(Protocol):
    id: int
    start_at: datetime
    end_at: datetime


@dataclass(frozen=True)
class ComplianceRule:
    rule_key: str
    threshold_hours: float
    is_active: bool = True


@dataclass(frozen=True)
class DailyHours:
    day: date
    total_minutes: int


@dataclass(frozen=True)
class ComplianceViolation:
    rule_key: str
    violation_date: date
    severity: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_key": self.rule_key,
            "violation_date": self.violation_date.isoformat(),
            "severity": self.severity,
            "details": dict(self.details),
        }


def _kind(value: ClockEventKind | str) -> ClockEventKind:
    return value if isinstance(value, ClockEventKind) else ClockEventKind(value)


def _round_hours(hours: float) -> float:
    return round(hours, 1)


def calculate_daily_hours(
    events: Iterable[ClockEventLike],
    period_start_at: datetime,
    period_end_at: datetime,
    tz: ZoneInfo | None = None,
) -> list[DailyHours]:
    """Presence time per calendar day, from clock-in to clock-out.

    A session is booked on the day it started. Breaks are not subtracted and
    unmatched punches are ignored.
    """
    window_start = normalize_ts(period_start_at)
    window_end = normalize_ts(period_end_at)
    seconds_by_day: dict[date, int] = {}
    session_start: datetime | None = None

    for event in events:
        occurred_at = normalize_ts(event.occurred_at)
        if occurred_at < window_start or occurred_at >= window_end:
            continue
        kind = _kind(event.kind)
        if kind == ClockEventKind.CLOCK_IN:
            session_start = occurred_at
        elif kind == ClockEventKind.CLOCK_OUT and session_start is not None:
            day = calendar_day(session_start, tz)
            elapsed = max(0, int((occurred_at - session_start).total_seconds()))
            seconds_by_day[day] = seconds_by_day.get(day, 0) + elapsed
            session_start = None

    return [
        DailyHours(day=day, total_minutes=seconds // 60)
        for day, seconds in sorted(seconds_by_day.items())
    ]


def calculate_rest_hours(previous_end_at: datetime, next_start_at: datetime) -> float:
    return (normalize_ts(next_start_at) - normalize_ts(previous_end_at)).total_seconds() / 3600


def check_daily_rest(
    shifts: Iterable[ScheduledShiftLike],
    rule: ComplianceRule,
    tz: ZoneInfo | None = None,
) -> list[ComplianceViolation]:
    if not rule.is_active:
        return []

    ordered = sorted(shifts, key=lambda item: (normalize_ts(item.start_at), item.id))
    violations: list[ComplianceViolation] = []
    for current, following in zip(ordered, ordered[1:]):
        rest_hours = calculate_rest_hours(current.end_at, following.start_at)
        if rest_hours >= rule.threshold_hours:
            continue
        violations.append(
            ComplianceViolation(
                rule_key=rule.rule_key,
                violation_date=calendar_day(following.start_at, tz),
                severity=SEVERITY_WARNING,
                details={
                    "rest_hours": _round_hours(rest_hours),
                    "threshold": rule.threshold_hours,
                    "shift_ids": [current.id, following.id],
                },
            )
        )
    return violations


def check_max_hours_per_day(daily_hours: Iterable[DailyHours], rule: ComplianceRule) -> list[ComplianceViolation]:
    if not rule.is_active:
        return []

    violations: list[ComplianceViolation] = []
    for entry in daily_hours:
        hours_worked = entry.total_minutes / 60
        if hours_worked <= rule.threshold_hours:
            continue
        critical = hours_worked > rule.threshold_hours + DAILY_CRITICAL_MARGIN_HOURS
        violations.append(
            ComplianceViolation(
                rule_key=rule.rule_key,
                violation_date=entry.day,
                severity=SEVERITY_CRITICAL if critical else SEVERITY_WARNING,
                details={"hours_worked": _round_hours(hours_worked), "threshold": rule.threshold_hours},
            )
        )
    return violations


def check_max_hours_per_week(daily_hours: Iterable[DailyHours], rule: ComplianceRule) -> list[ComplianceViolation]:
    if not rule.is_active:
        return []

    weeks: dict[date, list[DailyHours]] = {}
    for entry in daily_hours:
        monday = entry.day - timedelta(days=entry.day.weekday())
        weeks.setdefault(monday, []).append(entry)

    violations: list[ComplianceViolation] = []
    for monday in sorted(weeks):
        days = sorted(weeks[monday], key=lambda item: item.day)
        hours_worked = sum(item.total_minutes for item in days) / 60
        if hours_worked <= rule.threshold_hours:
            continue
        critical = hours_worked > rule.threshold_hours + WEEKLY_CRITICAL_MARGIN_HOURS
        violations.append(
            ComplianceViolation(
                rule_key=rule.rule_key,
                violation_date=days[0].day,
                severity=SEVERITY_CRITICAL if critical else SEVERITY_WARNING,
                details={
                    "hours_worked": _round_hours(hours_worked),
                    "threshold": rule.threshold_hours,
                    "week_start_date": monday.isoformat(),
                },
            )
        )
    return violations


def run_compliance_checks(
    events: Iterable[ClockEventLike],
    shifts: Iterable[ScheduledShiftLike],
    rules: Iterable[ComplianceRule],
    period_start_at: datetime,
    period_end_at: datetime,
    tz: ZoneInfo | None = None,
) -> list[ComplianceViolation]:
    shift_list = list(shifts)
    daily_hours = calculate_daily_hours(events, period_start_at, period_end_at, tz)

    violations: list[ComplianceViolation] = []
    for rule in rules:
        if not rule.is_active:
            continue
        if rule.rule_key == RULE_DAILY_REST:
            violations.extend(check_daily_rest(shift_list, rule, tz))
        elif rule.rule_key == RULE_MAX_HOURS_PER_DAY:
            violations.extend(check_max_hours_per_day(daily_hours, rule))
        elif rule.rule_key == RULE_MAX_HOURS_PER_WEEK:
            violations.extend(check_max_hours_per_week(daily_hours, rule))
    return violations
