from datetime import date

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.audit import log_request_audit
from app.db import get_db
from app.models import TimesheetStatus
from app.schemas import TimesheetGenerateRequest, TimesheetListResponse, TimesheetRead, TimesheetResponse
from app.security import Actor, get_current_actor
from app.services.exports import build_timesheets_xlsx_bytes
from app.services.timesheets import (
    approve_timesheet,
    generate_or_update_timesheet,
    get_timesheet,
    list_timesheets,
    lock_timesheet,
)

router = APIRouter(prefix="/api/v1/timesheets", tags=["timesheets"])
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("", response_model=TimesheetResponse)
def post_timesheet(
    payload: TimesheetGenerateRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TimesheetResponse:
    timesheet, created = generate_or_update_timesheet(
        db,
        user_id=payload.user_id,
        location_id=payload.location_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        force=payload.force,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="TIMESHEET_GENERATED",
        entity_type="timesheet",
        entity_id=timesheet.id,
        details={
            "user_id": payload.user_id,
            "location_id": payload.location_id,
            "period_start": payload.period_start.isoformat(),
            "period_end": payload.period_end.isoformat(),
            "force": payload.force,
            "created": created,
        },
    )
    return TimesheetResponse(timesheet=TimesheetRead.model_validate(timesheet))


@router.get("", response_model=TimesheetListResponse)
def get_timesheets(
    location_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    status_filter: TimesheetStatus | None = Query(default=None, alias="status"),
    period_start: date | None = Query(default=None),
    period_end: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TimesheetListResponse:
    timesheets = list_timesheets(
        db,
        location_id=location_id,
        user_id=user_id,
        status=status_filter,
        period_start=period_start,
        period_end=period_end,
    )
    return TimesheetListResponse(timesheets=[TimesheetRead.model_validate(item) for item in timesheets])


@router.get("/export.xlsx")
def export_timesheets(
    request: Request,
    location_id: int | None = Query(default=None, ge=1),
    user_id: int | None = Query(default=None, ge=1),
    status_filter: TimesheetStatus | None = Query(default=None, alias="status"),
    period_start: date | None = Query(default=None),
    period_end: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Response:
    timesheets = list_timesheets(
        db,
        location_id=location_id,
        user_id=user_id,
        status=status_filter,
        period_start=period_start,
        period_end=period_end,
    )
    payload = build_timesheets_xlsx_bytes(timesheets)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="TIMESHEET_EXPORT_XLSX",
        entity_type="export",
        entity_id="timesheets",
        details={
            "location_id": location_id,
            "user_id": user_id,
            "status": status_filter.value if status_filter else None,
            "period_start": period_start.isoformat() if period_start else None,
            "period_end": period_end.isoformat() if period_end else None,
            "rows": len(timesheets),
        },
    )

    filename_suffix = "all"
    if period_start is not None and period_end is not None:
        filename_suffix = f"{period_start.isoformat()}-{period_end.isoformat()}"
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="timesheets-{filename_suffix}.xlsx"',
        },
    )


@router.get("/{timesheet_id}", response_model=TimesheetResponse)
def get_timesheet_detail(
    timesheet_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TimesheetResponse:
    return TimesheetResponse(timesheet=TimesheetRead.model_validate(get_timesheet(db, timesheet_id)))


@router.post("/{timesheet_id}/approve", response_model=TimesheetResponse)
def post_timesheet_approve(
    timesheet_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TimesheetResponse:
    timesheet = approve_timesheet(db, timesheet_id=timesheet_id, approver_id=actor.user_id)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="TIMESHEET_APPROVED",
        entity_type="timesheet",
        entity_id=timesheet.id,
    )
    return TimesheetResponse(timesheet=TimesheetRead.model_validate(timesheet))


@router.post("/{timesheet_id}/lock", response_model=TimesheetResponse)
def post_timesheet_lock(
    timesheet_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TimesheetResponse:
    timesheet = lock_timesheet(db, timesheet_id=timesheet_id)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="TIMESHEET_LOCKED",
        entity_type="timesheet",
        entity_id=timesheet.id,
    )
    return TimesheetResponse(timesheet=TimesheetRead.model_validate(timesheet))
