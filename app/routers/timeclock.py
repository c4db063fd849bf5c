from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.audit import log_request_audit
from app.db import get_db
from app.schemas import ClockEventListResponse, ClockEventRead, ClockEventResponse, ClockPunchRequest
from app.security import Actor, get_current_actor
from app.services.timeclock import list_clock_events, record_punch

router = APIRouter(prefix="/api/v1/timeclock", tags=["timeclock"])


@router.post("/punch", response_model=ClockEventResponse, status_code=status.HTTP_201_CREATED)
def post_punch(
    payload: ClockPunchRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ClockEventResponse:
    event = record_punch(db, user_id=actor.user_id, payload=payload)
    request.state.event_id = event.id
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="CLOCK_PUNCH_RECORDED",
        entity_type="time_clock_event",
        entity_id=event.id,
        details={"location_id": event.location_id, "kind": payload.kind.value, "source": payload.source.value},
    )
    return ClockEventResponse(clock_event=ClockEventRead.model_validate(event))


@router.get("/events", response_model=ClockEventListResponse)
def get_events(
    location_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ClockEventListResponse:
    events = list_clock_events(
        db,
        user_id=user_id if user_id is not None else actor.user_id,
        location_id=location_id,
        start=start,
        end=end,
    )
    return ClockEventListResponse(events=[ClockEventRead.model_validate(item) for item in events])
