from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import Shift, ShiftAssignment, ShiftAssignmentStatus
from app.schemas import ShiftAssignRequest, ShiftCreateRequest
from app.services.rotas import ResolvedRota, get_rota, resolve_or_create_rota, validate_shift_within_rota_week
from app.services.weeks import normalize_ts

logger = logging.getLogger("app.shifts")

COLLISION_ASSIGNMENT_STATUSES = (ShiftAssignmentStatus.ASSIGNED, ShiftAssignmentStatus.ACCEPTED)


def _resolve_target_rota(
    db: Session,
    payload: ShiftCreateRequest,
    *,
    created_by: int | None,
) -> ResolvedRota:
    if payload.rota_id is None:
        if payload.location_id is None:
            raise ValidationError("ROTA_OR_LOCATION_REQUIRED", "rota_id or location_id is required.")
        return resolve_or_create_rota(
            db,
            location_id=payload.location_id,
            shift_start_at=payload.start_at,
            created_by=created_by,
        )

    rota = get_rota(db, payload.rota_id)
    validate_shift_within_rota_week(payload.start_at, rota.week_start_date)
    return ResolvedRota(
        id=rota.id,
        org_id=rota.org_id,
        location_id=rota.location_id,
        week_start_date=rota.week_start_date,
    )


def create_shifts(
    db: Session,
    payload: ShiftCreateRequest,
    *,
    created_by: int | None = None,
) -> list[Shift]:
    """Create ``payload.quantity`` identical shifts in one transaction.

    An explicit ``rota_id`` wins over ``location_id``. Either every row is
    committed, along with any rota provisioned for them, or nothing is.
    """
    try:
        rota = _resolve_target_rota(db, payload, created_by=created_by)
        start_at = normalize_ts(payload.start_at)
        end_at = normalize_ts(payload.end_at)
        shifts = [
            Shift(
                org_id=rota.org_id,
                location_id=rota.location_id,
                rota_id=rota.id,
                job_tag_id=payload.job_tag_id,
                start_at=start_at,
                end_at=end_at,
                break_minutes=payload.break_minutes,
                notes=payload.notes,
                created_by=created_by,
            )
            for _ in range(payload.quantity)
        ]
        db.add_all(shifts)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for shift in shifts:
        db.refresh(shift)

    logger.info(
        "shifts_created",
        extra={
            "rota_id": rota.id,
            "rota_created": rota.created,
            "location_id": rota.location_id,
            "count": len(shifts),
            "shift_ids": [shift.id for shift in shifts],
        },
    )
    return shifts


def list_shifts(db: Session, *, rota_id: int | None = None) -> list[Shift]:
    stmt = select(Shift).order_by(Shift.start_at.asc(), Shift.id.asc())
    if rota_id is not None:
        stmt = stmt.where(Shift.rota_id == rota_id)
    return list(db.scalars(stmt).all())


def get_shift(db: Session, shift_id: int) -> Shift:
    shift = db.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError("SHIFT_NOT_FOUND", "Shift not found.")
    return shift


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    return normalize_ts(start_a) < normalize_ts(end_b) and normalize_ts(end_a) > normalize_ts(start_b)


def _committed_shifts_for_user(db: Session, *, user_id: int, exclude_shift_id: int) -> list[Shift]:
    return list(
        db.scalars(
            select(Shift)
            .join(ShiftAssignment, ShiftAssignment.shift_id == Shift.id)
            .where(
                ShiftAssignment.user_id == user_id,
                ShiftAssignment.status.in_(COLLISION_ASSIGNMENT_STATUSES),
                Shift.id != exclude_shift_id,
            )
        ).all()
    )


def has_shift_collision(db: Session, *, user_id: int, shift: Shift) -> bool:
    for other in _committed_shifts_for_user(db, user_id=user_id, exclude_shift_id=shift.id):
        if intervals_overlap(shift.start_at, shift.end_at, other.start_at, other.end_at):
            return True
    return False


def _find_assignment(db: Session, *, shift_id: int, user_id: int) -> ShiftAssignment | None:
    return db.scalar(
        select(ShiftAssignment).where(
            ShiftAssignment.shift_id == shift_id,
            ShiftAssignment.user_id == user_id,
        )
    )


def assign_shift(
    db: Session,
    *,
    shift_id: int,
    payload: ShiftAssignRequest,
    assigned_by: int | None = None,
) -> ShiftAssignment:
    shift = get_shift(db, shift_id)
    status = ShiftAssignmentStatus(payload.status)

    if status == ShiftAssignmentStatus.ASSIGNED and has_shift_collision(db, user_id=payload.user_id, shift=shift):
        raise ConflictError("SHIFT_COLLISION", "User already has an overlapping shift.")

    now_utc = datetime.now(timezone.utc)
    assigned_at = now_utc if status == ShiftAssignmentStatus.ASSIGNED else None
    proposed_at = now_utc if status == ShiftAssignmentStatus.PROPOSED else None

    assignment = _find_assignment(db, shift_id=shift_id, user_id=payload.user_id)
    if assignment is None:
        assignment = ShiftAssignment(
            org_id=shift.org_id,
            shift_id=shift_id,
            user_id=payload.user_id,
            status=status,
            assigned_at=assigned_at,
            proposed_at=proposed_at,
            assigned_by=assigned_by,
        )
        db.add(assignment)
    else:
        assignment.status = status
        assignment.assigned_at = assigned_at
        assignment.proposed_at = proposed_at
        assignment.assigned_by = assigned_by

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("ASSIGNMENT_CONFLICT", "Assignment was modified concurrently.") from None
    db.refresh(assignment)
    return assignment
