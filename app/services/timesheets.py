from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import (
    Shift,
    ShiftAssignment,
    ShiftAssignmentStatus,
    TimeClockEvent,
    Timesheet,
    TimesheetStatus,
)
from app.services.rotas import get_location
from app.services.timesheet_calc import (
    TimesheetTotals,
    calculate_planned_time,
    calculate_worked_time,
    generate_timesheet_totals,
)
from app.services.weeks import period_window
from app.settings import get_settings, resolve_timezone

logger = logging.getLogger("app.timesheets")

# Assignment statuses whose shifts count as planned time.
PLANNED_ASSIGNMENT_STATUSES = (ShiftAssignmentStatus.ASSIGNED,)
PROTECTED_TIMESHEET_STATUSES = frozenset({TimesheetStatus.APPROVED, TimesheetStatus.LOCKED})


def _find_timesheet_for_update(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    period_start: date,
    period_end: date,
) -> Timesheet | None:
    return db.scalar(
        select(Timesheet)
        .where(
            Timesheet.user_id == user_id,
            Timesheet.location_id == location_id,
            Timesheet.period_start == period_start,
            Timesheet.period_end == period_end,
        )
        .with_for_update()
    )


def fetch_clock_events(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    window_start: datetime,
    window_end: datetime,
) -> list[TimeClockEvent]:
    return list(
        db.scalars(
            select(TimeClockEvent)
            .where(
                TimeClockEvent.user_id == user_id,
                TimeClockEvent.location_id == location_id,
                TimeClockEvent.occurred_at >= window_start,
                TimeClockEvent.occurred_at < window_end,
            )
            .order_by(TimeClockEvent.occurred_at.asc(), TimeClockEvent.id.asc())
        ).all()
    )


def fetch_planned_shifts(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    window_start: datetime,
    window_end: datetime,
) -> list[Shift]:
    return list(
        db.scalars(
            select(Shift)
            .join(ShiftAssignment, ShiftAssignment.shift_id == Shift.id)
            .where(
                ShiftAssignment.user_id == user_id,
                ShiftAssignment.status.in_(PLANNED_ASSIGNMENT_STATUSES),
                Shift.location_id == location_id,
                Shift.start_at >= window_start,
                Shift.start_at < window_end,
            )
            .order_by(Shift.start_at.asc(), Shift.id.asc())
        ).all()
    )


def _ensure_regeneration_allowed(existing: Timesheet | None, *, force: bool) -> None:
    if existing is None or force:
        return
    if TimesheetStatus(existing.status) in PROTECTED_TIMESHEET_STATUSES:
        raise ConflictError("TIMESHEET_LOCKED", "timesheet locked")


def _apply_totals(timesheet: Timesheet, totals: TimesheetTotals) -> None:
    # Changed inputs invalidate any earlier approval.
    timesheet.totals = totals.to_dict()
    timesheet.status = TimesheetStatus.DRAFT
    timesheet.approved_by = None
    timesheet.approved_at = None
    timesheet.updated_at = datetime.now(timezone.utc)


def compute_timesheet_totals(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    period_start: date,
    period_end: date,
    timezone_name: str | None,
) -> TimesheetTotals:
    tz = resolve_timezone(timezone_name)
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
    worked = calculate_worked_time(events, window_start, window_end, tz)
    planned = calculate_planned_time(shifts, window_start, window_end, tz)
    return generate_timesheet_totals(
        worked,
        planned,
        overtime_threshold_minutes=get_settings().timesheet_overtime_threshold_minutes,
    )


def generate_or_update_timesheet(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    period_start: date,
    period_end: date,
    force: bool = False,
) -> tuple[Timesheet, bool]:
    """Recompute and store the timesheet for one (user, location, period).

    Returns the row and whether it was newly created. Approved or locked rows
    are only overwritten with ``force``; every regeneration leaves the row in
    ``draft``. The existing row is read ``FOR UPDATE`` so concurrent
    regenerations of the same key serialise on it.
    """
    if period_end < period_start:
        raise ValidationError("INVALID_PERIOD", "period_end must be greater than or equal to period_start.")

    location = get_location(db, location_id)
    key = {
        "user_id": user_id,
        "location_id": location_id,
        "period_start": period_start,
        "period_end": period_end,
    }

    try:
        existing = _find_timesheet_for_update(db, **key)
        _ensure_regeneration_allowed(existing, force=force)

        totals = compute_timesheet_totals(db, timezone_name=location.timezone, **key)

        created = False
        if existing is None:
            timesheet = Timesheet(org_id=location.org_id, notes=None, **key)
            _apply_totals(timesheet, totals)
            try:
                with db.begin_nested():
                    db.add(timesheet)
                created = True
            except IntegrityError:
                existing = _find_timesheet_for_update(db, **key)
                if existing is None:
                    raise
                _ensure_regeneration_allowed(existing, force=force)
                timesheet = existing
                _apply_totals(timesheet, totals)
        else:
            timesheet = existing
            _apply_totals(timesheet, totals)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(timesheet)
    logger.info(
        "timesheet_generated",
        extra={
            "timesheet_id": timesheet.id,
            "timesheet_created": created,
            "forced": force,
            "totals": timesheet.totals,
            **{name: str(value) for name, value in key.items()},
        },
    )
    return timesheet, created


def list_timesheets(
    db: Session,
    *,
    location_id: int | None = None,
    user_id: int | None = None,
    status: TimesheetStatus | None = None,
    period_start: date | None = None,
    period_end: date | None = None,
) -> list[Timesheet]:
    stmt = select(Timesheet).order_by(Timesheet.period_start.desc(), Timesheet.id.desc())
    if location_id is not None:
        stmt = stmt.where(Timesheet.location_id == location_id)
    if user_id is not None:
        stmt = stmt.where(Timesheet.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Timesheet.status == status)
    if period_start is not None:
        stmt = stmt.where(Timesheet.period_start >= period_start)
    if period_end is not None:
        stmt = stmt.where(Timesheet.period_end <= period_end)
    return list(db.scalars(stmt).all())


def get_timesheet(db: Session, timesheet_id: int) -> Timesheet:
    timesheet = db.get(Timesheet, timesheet_id)
    if timesheet is None:
        raise NotFoundError("TIMESHEET_NOT_FOUND", "Timesheet not found.")
    return timesheet


def approve_timesheet(db: Session, *, timesheet_id: int, approver_id: int) -> Timesheet:
    timesheet = get_timesheet(db, timesheet_id)
    if TimesheetStatus(timesheet.status) != TimesheetStatus.DRAFT:
        raise ConflictError("TIMESHEET_NOT_DRAFT", "Only draft timesheets can be approved.")
    now_utc = datetime.now(timezone.utc)
    timesheet.status = TimesheetStatus.APPROVED
    timesheet.approved_by = approver_id
    timesheet.approved_at = now_utc
    timesheet.updated_at = now_utc
    db.commit()
    db.refresh(timesheet)
    return timesheet


def lock_timesheet(db: Session, *, timesheet_id: int) -> Timesheet:
    timesheet = get_timesheet(db, timesheet_id)
    if TimesheetStatus(timesheet.status) != TimesheetStatus.APPROVED:
        raise ConflictError("TIMESHEET_NOT_APPROVED", "Only approved timesheets can be locked.")
    timesheet.status = TimesheetStatus.LOCKED
    timesheet.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(timesheet)
    return timesheet
