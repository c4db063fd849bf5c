from datetime import date, datetime, timezone
import unittest
from types import SimpleNamespace

from app.models import ClockEventKind
from app.services.compliance_calc import (
    RULE_DAILY_REST,
    RULE_MAX_HOURS_PER_DAY,
    RULE_MAX_HOURS_PER_WEEK,
    ComplianceRule,
    DailyHours,
    calculate_daily_hours,
    calculate_rest_hours,
    check_daily_rest,
    check_max_hours_per_day,
    check_max_hours_per_week,
    run_compliance_checks,
)

PERIOD_START = datetime(2025, 1, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2025, 2, 1, tzinfo=timezone.utc)

DAILY_REST = ComplianceRule(rule_key=RULE_DAILY_REST, threshold_hours=11)
MAX_DAY = ComplianceRule(rule_key=RULE_MAX_HOURS_PER_DAY, threshold_hours=10)
MAX_WEEK = ComplianceRule(rule_key=RULE_MAX_HOURS_PER_WEEK, threshold_hours=48)


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)


def _event(kind: ClockEventKind, day: int, hour: int, minute: int = 0):
    return SimpleNamespace(kind=kind, occurred_at=_at(day, hour, minute))


def _shift(shift_id: int, start: datetime, end: datetime):
    return SimpleNamespace(id=shift_id, start_at=start, end_at=end)


class DailyHoursTests(unittest.TestCase):
    def test_sessions_are_summed_per_day(self) -> None:
        events = [
            _event(ClockEventKind.CLOCK_IN, 15, 9),
            _event(ClockEventKind.BREAK_START, 15, 12),
            _event(ClockEventKind.BREAK_END, 15, 12, 30),
            _event(ClockEventKind.CLOCK_OUT, 15, 13),
            _event(ClockEventKind.CLOCK_IN, 15, 14),
            _event(ClockEventKind.CLOCK_OUT, 15, 18),
            _event(ClockEventKind.CLOCK_IN, 16, 10),
            _event(ClockEventKind.CLOCK_OUT, 16, 12),
        ]

        daily = calculate_daily_hours(events, PERIOD_START, PERIOD_END)

        self.assertEqual(
            daily,
            [DailyHours(day=date(2025, 1, 15), total_minutes=480), DailyHours(day=date(2025, 1, 16), total_minutes=120)],
        )

    def test_overnight_session_is_booked_on_start_day(self) -> None:
        events = [_event(ClockEventKind.CLOCK_IN, 17, 20), _event(ClockEventKind.CLOCK_OUT, 18, 2)]

        daily = calculate_daily_hours(events, PERIOD_START, PERIOD_END)

        self.assertEqual(daily, [DailyHours(day=date(2025, 1, 17), total_minutes=360)])

    def test_unmatched_punches_are_ignored(self) -> None:
        events = [_event(ClockEventKind.CLOCK_OUT, 15, 8), _event(ClockEventKind.CLOCK_IN, 15, 9)]

        self.assertEqual(calculate_daily_hours(events, PERIOD_START, PERIOD_END), [])


class DailyRestTests(unittest.TestCase):
    def test_short_rest_is_flagged(self) -> None:
        shifts = [
            _shift(2, _at(16, 7), _at(16, 15)),
            _shift(1, _at(15, 15), _at(15, 23)),
        ]

        violations = check_daily_rest(shifts, DAILY_REST)

        self.assertEqual(len(violations), 1)
        violation = violations[0]
        self.assertEqual(violation.rule_key, RULE_DAILY_REST)
        self.assertEqual(violation.violation_date, date(2025, 1, 16))
        self.assertEqual(violation.severity, "warning")
        self.assertEqual(violation.details, {"rest_hours": 8.0, "threshold": 11, "shift_ids": [1, 2]})

    def test_rest_at_threshold_passes(self) -> None:
        shifts = [_shift(1, _at(15, 12), _at(15, 20)), _shift(2, _at(16, 7), _at(16, 15))]

        self.assertEqual(calculate_rest_hours(_at(15, 20), _at(16, 7)), 11)
        self.assertEqual(check_daily_rest(shifts, DAILY_REST), [])

    def test_inactive_rule_is_skipped(self) -> None:
        shifts = [_shift(1, _at(15, 15), _at(15, 23)), _shift(2, _at(16, 7), _at(16, 15))]
        rule = ComplianceRule(rule_key=RULE_DAILY_REST, threshold_hours=11, is_active=False)

        self.assertEqual(check_daily_rest(shifts, rule), [])


class MaxHoursTests(unittest.TestCase):
    def test_daily_limit_severity(self) -> None:
        daily = [
            DailyHours(day=date(2025, 1, 13), total_minutes=600),
            DailyHours(day=date(2025, 1, 14), total_minutes=660),
            DailyHours(day=date(2025, 1, 15), total_minutes=750),
        ]

        violations = check_max_hours_per_day(daily, MAX_DAY)

        self.assertEqual([item.violation_date for item in violations], [date(2025, 1, 14), date(2025, 1, 15)])
        self.assertEqual([item.severity for item in violations], ["warning", "critical"])
        self.assertEqual(violations[1].details["hours_worked"], 12.5)

    def test_weekly_limit_groups_by_monday(self) -> None:
        over_week = [DailyHours(day=date(2025, 1, day), total_minutes=600) for day in range(13, 18)]
        heavy_week = [DailyHours(day=date(2025, 1, day), total_minutes=600) for day in range(20, 26)]
        light_week = [DailyHours(day=date(2025, 1, 27), total_minutes=480)]

        violations = check_max_hours_per_week(light_week + heavy_week + over_week, MAX_WEEK)

        self.assertEqual(len(violations), 2)
        self.assertEqual(violations[0].violation_date, date(2025, 1, 13))
        self.assertEqual(violations[0].severity, "warning")
        self.assertEqual(violations[0].details["hours_worked"], 50.0)
        self.assertEqual(violations[0].details["week_start_date"], "2025-01-13")
        self.assertEqual(violations[1].violation_date, date(2025, 1, 20))
        self.assertEqual(violations[1].severity, "critical")


class RunComplianceChecksTests(unittest.TestCase):
    def test_rules_are_dispatched_by_key(self) -> None:
        events = [_event(ClockEventKind.CLOCK_IN, 15, 8), _event(ClockEventKind.CLOCK_OUT, 15, 19)]
        shifts = [_shift(1, _at(15, 8), _at(15, 19)), _shift(2, _at(16, 2), _at(16, 6))]
        rules = [
            DAILY_REST,
            MAX_DAY,
            MAX_WEEK,
            ComplianceRule(rule_key="unknown_rule", threshold_hours=1),
        ]

        violations = run_compliance_checks(events, shifts, rules, PERIOD_START, PERIOD_END)

        self.assertEqual([item.rule_key for item in violations], [RULE_DAILY_REST, RULE_MAX_HOURS_PER_DAY])
        self.assertEqual(violations[1].to_dict()["violation_date"], "2025-01-15")

    def test_no_rules_no_violations(self) -> None:
        events = [_event(ClockEventKind.CLOCK_IN, 15, 0), _event(ClockEventKind.CLOCK_OUT, 15, 23)]

        self.assertEqual(run_compliance_checks(events, [], [], PERIOD_START, PERIOD_END), [])


if __name__ == "__main__":
    unittest.main()
