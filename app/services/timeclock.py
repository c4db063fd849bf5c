from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import ApiError, ValidationError
from app.models import ClockEventKind, TimeClockEvent
from app.schemas import ClockPunchRequest
from app.services.rotas import get_location
from app.services.weeks import local_day_bounds_utc, normalize_ts
from app.settings import get_settings, resolve_timezone

logger = logging.getLogger("app.timeclock")

# Kinds the previous punch may NOT be for each new punch kind. ``None`` stands
# for "no punch yet today".
_FORBIDDEN_PREDECESSORS: dict[ClockEventKind, set[ClockEventKind | None]] = {
    ClockEventKind.CLOCK_IN: {ClockEventKind.CLOCK_IN, ClockEventKind.BREAK_START},
    ClockEventKind.CLOCK_OUT: {None, ClockEventKind.CLOCK_OUT, ClockEventKind.BREAK_START},
    ClockEventKind.BREAK_START: {None, ClockEventKind.CLOCK_OUT, ClockEventKind.BREAK_START},
    ClockEventKind.BREAK_END: {None, ClockEventKind.CLOCK_IN, ClockEventKind.CLOCK_OUT, ClockEventKind.BREAK_END},
}

_SEQUENCE_MESSAGES: dict[ClockEventKind, str] = {
    ClockEventKind.CLOCK_IN: "Already clocked in.",
    ClockEventKind.CLOCK_OUT: "No open session to clock out from, or a break is still running.",
    ClockEventKind.BREAK_START: "A break can only start while clocked in.",
    ClockEventKind.BREAK_END: "No break is running.",
}


def validate_punch_sequence(previous: ClockEventKind | None, kind: ClockEventKind) -> None:
    if previous in _FORBIDDEN_PREDECESSORS[kind]:
        raise ValidationError("INVALID_PUNCH_SEQUENCE", _SEQUENCE_MESSAGES[kind])


def _latest_event_in_window(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    start: datetime,
    end: datetime,
) -> TimeClockEvent | None:
    return db.scalar(
        select(TimeClockEvent)
        .where(
            TimeClockEvent.user_id == user_id,
            TimeClockEvent.location_id == location_id,
            TimeClockEvent.occurred_at >= start,
            TimeClockEvent.occurred_at < end,
        )
        .order_by(TimeClockEvent.occurred_at.desc(), TimeClockEvent.id.desc())
        .limit(1)
    )


def _duplicate_punch_id(
    db: Session,
    *,
    user_id: int,
    location_id: int,
    kind: ClockEventKind,
    occurred_at: datetime,
) -> int | None:
    window = timedelta(seconds=max(0, get_settings().double_punch_window_seconds))
    return db.scalar(
        select(TimeClockEvent.id)
        .where(
            TimeClockEvent.user_id == user_id,
            TimeClockEvent.location_id == location_id,
            TimeClockEvent.kind == kind,
            TimeClockEvent.occurred_at >= occurred_at - window,
            TimeClockEvent.occurred_at <= occurred_at,
        )
        .limit(1)
    )


def record_punch(db: Session, *, user_id: int, payload: ClockPunchRequest) -> TimeClockEvent:
    location = get_location(db, payload.location_id)
    occurred_at = normalize_ts(payload.occurred_at)
    kind = ClockEventKind(payload.kind)

    duplicate_id = _duplicate_punch_id(
        db,
        user_id=user_id,
        location_id=location.id,
        kind=kind,
        occurred_at=occurred_at,
    )
    if duplicate_id is not None:
        raise ApiError(
            status_code=429,
            code="DUPLICATE_PUNCH",
            message="Duplicate punch detected, please wait a few seconds.",
        )

    day_start, day_end = local_day_bounds_utc(occurred_at, resolve_timezone(location.timezone))
    previous = _latest_event_in_window(
        db,
        user_id=user_id,
        location_id=location.id,
        start=day_start,
        end=min(day_end, occurred_at + timedelta(microseconds=1)),
    )
    validate_punch_sequence(ClockEventKind(previous.kind) if previous is not None else None, kind)

    event = TimeClockEvent(
        org_id=location.org_id,
        location_id=location.id,
        user_id=user_id,
        kind=kind,
        occurred_at=occurred_at,
        source=payload.source,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(
        "clock_punch_recorded",
        extra={"event_id": event.id, "user_id": user_id, "location_id": location.id, "kind": kind.value},
    )
    return event


def list_clock_events(
    db: Session,
    *,
    user_id: int | None = None,
    location_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[TimeClockEvent]:
    stmt = select(TimeClockEvent).order_by(TimeClockEvent.occurred_at.asc(), TimeClockEvent.id.asc())
    if user_id is not None:
        stmt = stmt.where(TimeClockEvent.user_id == user_id)
    if location_id is not None:
        stmt = stmt.where(TimeClockEvent.location_id == location_id)
    if start is not None:
        stmt = stmt.where(TimeClockEvent.occurred_at >= normalize_ts(start))
    if end is not None:
        stmt = stmt.where(TimeClockEvent.occurred_at < normalize_ts(end))
    return list(db.scalars(stmt).all())
