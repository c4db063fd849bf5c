from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from app.errors import ValidationError
from app.services.compliance_calc import (
    RULE_DAILY_REST,
    RULE_MAX_HOURS_PER_DAY,
    RULE_MAX_HOURS_PER_WEEK,
    ComplianceRule,
    ComplianceViolation,
    run_compliance_checks,
)
from app.services.rotas import get_location
from app.services.timesheets import fetch_clock_events, fetch_planned_shifts
from app.services.weeks import period_window
from app.settings import get_settings, resolve_timezone

logger = logging.getLogger("app.compliance")


def default_compliance_rules() -> list[ComplianceRule]:
    settings = get_settings()
    return [
        ComplianceRule(rule_key=RULE_DAILY_REST, threshold_hours=settings.compliance_daily_rest_hours),
        ComplianceRule(rule_key=RULE_MAX_HOURS_PER_DAY, threshold_hours=settings.compliance_max_hours_per_day),
        ComplianceRule(rule_key=RULE_MAX_HOURS_PER_WEEK, threshold_hours=settings.compliance_max_hours_per_week),
    ]


def check_compliance(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    period_start: date,
    period_end: date,
    rules: list[ComplianceRule] | None = None,
) -> list[ComplianceViolation]:
    """Run the labor-rule checks for one user at one location.

    Worked hours come from clock punches and rest periods from assigned
    shifts, both scoped to the inclusive period in the location's timezone.
    Nothing is written.
    """
    if period_end < period_start:
        raise ValidationError("INVALID_PERIOD", "period_end must be greater than or equal to period_start.")

    location = get_location(db, location_id)
    tz = resolve_timezone(location.timezone)
    window_start, window_end = period_window(period_start, period_end, tz)
    events = fetch_clock_events(
        db,
        user_id=user_id,
        location_id=location_id,
        window_start=window_start,
        window_end=window_end,
    )
    shifts = fetch_planned_shifts(
        db,
        user_id=user_id,
        location_id=location_id,
        window_start=window_start,
        window_end=window_end,
    )
    violations = run_compliance_checks(
        events,
        shifts,
        rules if rules is not None else default_compliance_rules(),
        window_start,
        window_end,
        tz,
    )
    logger.info(
        "compliance_checked",
        extra={
            "user_id": user_id,
            "location_id": location_id,
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
            "violation_count": len(violations),
        },
    )
    return violations
