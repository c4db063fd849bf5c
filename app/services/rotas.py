from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.errors import ConflictError, DataIntegrityError, NotFoundError, ValidationError
from app.models import Location, Rota, RotaStatus, Shift, ShiftAssignment, ShiftAssignmentStatus
from app.schemas import RotaCreateRequest
from app.services.weeks import is_in_week, is_monday, week_start_for

logger = logging.getLogger("app.rotas")

_ALLOWED_STATUS_TRANSITIONS: dict[RotaStatus, frozenset[RotaStatus]] = {
    RotaStatus.DRAFT: frozenset({RotaStatus.PUBLISHED}),
    RotaStatus.PUBLISHED: frozenset({RotaStatus.LOCKED, RotaStatus.DRAFT}),
    RotaStatus.LOCKED: frozenset(),
}
_COPYABLE_ASSIGNMENT_STATUSES = frozenset({ShiftAssignmentStatus.ASSIGNED, ShiftAssignmentStatus.ACCEPTED})


@dataclass(frozen=True)
class ResolvedRota:
    id: int
    org_id: int
    location_id: int
    week_start_date: date
    created: bool = False


def _resolved(rota: Rota, *, created: bool) -> ResolvedRota:
    return ResolvedRota(
        id=rota.id,
        org_id=rota.org_id,
        location_id=rota.location_id,
        week_start_date=rota.week_start_date,
        created=created,
    )


def _find_rota(db: Session, *, location_id: int, week_start: date) -> Rota | None:
    return db.scalar(
        select(Rota).where(
            Rota.location_id == location_id,
            Rota.week_start_date == week_start,
        )
    )


def get_location(db: Session, location_id: int) -> Location:
    location = db.get(Location, location_id)
    if location is None:
        raise NotFoundError("LOCATION_NOT_FOUND", "Location not found.")
    return location


def get_rota(db: Session, rota_id: int) -> Rota:
    rota = db.get(Rota, rota_id)
    if rota is None:
        raise NotFoundError("ROTA_NOT_FOUND", "Rota not found.")
    return rota


def _location_org_id(location: Location) -> int:
    if location.org_id is None:
        raise DataIntegrityError(
            "LOCATION_ORG_MISSING",
            f"Location {location.id} has no owning organization.",
        )
    return location.org_id


def validate_shift_within_rota_week(shift_start_at: datetime, rota_week_start: date) -> None:
    if not is_in_week(shift_start_at, rota_week_start):
        raise ValidationError("SHIFT_OUTSIDE_ROTA_WEEK", "shift outside rota week")


def resolve_or_create_rota(
    db: Session,
    *,
    location_id: int,
    shift_start_at: datetime,
    created_by: int | None = None,
) -> ResolvedRota:
    """Return the rota owning ``shift_start_at``'s week, creating a draft if absent.

    The insert runs in a savepoint and is only flushed; the caller's commit
    makes it durable together with whatever it places in the rota. A unique
    violation means a concurrent request created the same week first, in which
    case that row is returned instead.
    """
    week_start = week_start_for(shift_start_at)
    existing = _find_rota(db, location_id=location_id, week_start=week_start)
    if existing is not None:
        return _resolved(existing, created=False)

    location = get_location(db, location_id)
    org_id = _location_org_id(location)

    rota = Rota(
        org_id=org_id,
        location_id=location_id,
        week_start_date=week_start,
        status=RotaStatus.DRAFT,
        created_by=created_by,
    )
    try:
        with db.begin_nested():
            db.add(rota)
    except IntegrityError:
        winner = _find_rota(db, location_id=location_id, week_start=week_start)
        if winner is None:
            raise
        logger.info(
            "rota_create_race_resolved",
            extra={"rota_id": winner.id, "location_id": location_id, "week_start_date": week_start.isoformat()},
        )
        return _resolved(winner, created=False)

    logger.info(
        "rota_auto_provisioned",
        extra={"rota_id": rota.id, "location_id": location_id, "week_start_date": week_start.isoformat()},
    )
    return _resolved(rota, created=True)


def create_rota(db: Session, payload: RotaCreateRequest, *, created_by: int | None = None) -> Rota:
    if not is_monday(payload.week_start_date):
        raise ValidationError("WEEK_START_NOT_MONDAY", "week_start_date must be a Monday.")

    location = get_location(db, payload.location_id)
    org_id = _location_org_id(location)

    if _find_rota(db, location_id=payload.location_id, week_start=payload.week_start_date) is not None:
        raise ConflictError("ROTA_ALREADY_EXISTS", "A rota already exists for this location and week.")

    rota = Rota(
        org_id=org_id,
        location_id=payload.location_id,
        week_start_date=payload.week_start_date,
        status=RotaStatus.DRAFT,
        labor_budget_eur=payload.labor_budget_eur,
        notes=payload.notes,
        created_by=created_by,
    )
    db.add(rota)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("ROTA_ALREADY_EXISTS", "A rota already exists for this location and week.") from None
    db.refresh(rota)
    return rota


def list_rotas(
    db: Session,
    *,
    location_id: int | None = None,
    week_start_date: date | None = None,
) -> list[Rota]:
    stmt = select(Rota).order_by(Rota.week_start_date.desc(), Rota.id.desc())
    if location_id is not None:
        stmt = stmt.where(Rota.location_id == location_id)
    if week_start_date is not None:
        stmt = stmt.where(Rota.week_start_date == week_start_date)
    return list(db.scalars(stmt).all())


def update_rota_status(
    db: Session,
    *,
    rota_id: int,
    status: RotaStatus,
    updated_by: int | None = None,
) -> Rota:
    rota = get_rota(db, rota_id)
    current = RotaStatus(rota.status)
    if status not in _ALLOWED_STATUS_TRANSITIONS[current]:
        raise ValidationError(
            "INVALID_STATUS_TRANSITION",
            f"Cannot change status from {current.value} to {status.value}.",
        )
    rota.status = status
    rota.updated_by = updated_by
    rota.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(rota)
    return rota


def duplicate_rota(
    db: Session,
    *,
    rota_id: int,
    target_week_start: date | None = None,
    copy_assignments: bool = False,
    created_by: int | None = None,
) -> tuple[Rota, int]:
    source = db.scalar(
        select(Rota)
        .options(selectinload(Rota.shifts).selectinload(Shift.assignments))
        .where(Rota.id == rota_id)
    )
    if source is None:
        raise NotFoundError("ROTA_NOT_FOUND", "Rota not found.")

    target_week = target_week_start or source.week_start_date + timedelta(days=7)
    if not is_monday(target_week):
        raise ValidationError("WEEK_START_NOT_MONDAY", "target_week_start must be a Monday.")
    if _find_rota(db, location_id=source.location_id, week_start=target_week) is not None:
        raise ConflictError("ROTA_ALREADY_EXISTS", "A rota already exists for the target week.")

    offset = timedelta(days=(target_week - source.week_start_date).days)
    now_utc = datetime.now(timezone.utc)
    target = Rota(
        org_id=source.org_id,
        location_id=source.location_id,
        week_start_date=target_week,
        status=RotaStatus.DRAFT,
        labor_budget_eur=source.labor_budget_eur,
        notes=source.notes,
        created_by=created_by,
    )
    db.add(target)

    shifts_created = 0
    for source_shift in sorted(source.shifts, key=lambda item: (item.start_at, item.id)):
        shift = Shift(
            org_id=source_shift.org_id,
            location_id=source_shift.location_id,
            job_tag_id=source_shift.job_tag_id,
            start_at=source_shift.start_at + offset,
            end_at=source_shift.end_at + offset,
            break_minutes=source_shift.break_minutes,
            notes=source_shift.notes,
            created_by=created_by,
        )
        target.shifts.append(shift)
        shifts_created += 1
        if not copy_assignments:
            continue
        for source_assignment in source_shift.assignments:
            if ShiftAssignmentStatus(source_assignment.status) not in _COPYABLE_ASSIGNMENT_STATUSES:
                continue
            shift.assignments.append(
                ShiftAssignment(
                    org_id=source_assignment.org_id,
                    user_id=source_assignment.user_id,
                    status=ShiftAssignmentStatus.ASSIGNED,
                    assigned_at=now_utc,
                    assigned_by=created_by,
                )
            )

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("ROTA_ALREADY_EXISTS", "A rota already exists for the target week.") from None
    db.refresh(target)
    logger.info(
        "rota_duplicated",
        extra={
            "source_rota_id": source.id,
            "rota_id": target.id,
            "week_start_date": target_week.isoformat(),
            "shifts_created": shifts_created,
        },
    )
    return target, shifts_created
