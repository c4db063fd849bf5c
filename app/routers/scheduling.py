from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.audit import log_request_audit
from app.db import get_db
from app.schemas import (
    RotaCreateRequest,
    RotaDuplicateRequest,
    RotaDuplicateResponse,
    RotaListResponse,
    RotaRead,
    RotaResponse,
    RotaStatusUpdateRequest,
    ShiftAssignmentRead,
    ShiftAssignmentResponse,
    ShiftAssignRequest,
    ShiftCreateRequest,
    ShiftCreateResponse,
    ShiftListResponse,
    ShiftRead,
)
from app.security import Actor, get_current_actor
from app.services.rotas import create_rota, duplicate_rota, list_rotas, update_rota_status
from app.services.shifts import assign_shift, create_shifts, list_shifts

router = APIRouter(prefix="/api/v1", tags=["scheduling"])


@router.get("/rotas", response_model=RotaListResponse)
def get_rotas(
    location_id: int | None = Query(default=None, ge=1),
    week_start_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> RotaListResponse:
    rotas = list_rotas(db, location_id=location_id, week_start_date=week_start_date)
    return RotaListResponse(rotas=[RotaRead.model_validate(item) for item in rotas])


@router.post("/rotas", response_model=RotaResponse, status_code=status.HTTP_201_CREATED)
def post_rota(
    payload: RotaCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> RotaResponse:
    rota = create_rota(db, payload, created_by=actor.user_id)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="ROTA_CREATED",
        entity_type="rota",
        entity_id=rota.id,
        details={"location_id": rota.location_id, "week_start_date": rota.week_start_date.isoformat()},
    )
    return RotaResponse(rota=RotaRead.model_validate(rota))


@router.put("/rotas/{rota_id}/status", response_model=RotaResponse)
def put_rota_status(
    rota_id: int,
    payload: RotaStatusUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> RotaResponse:
    rota = update_rota_status(db, rota_id=rota_id, status=payload.status, updated_by=actor.user_id)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="ROTA_STATUS_UPDATED",
        entity_type="rota",
        entity_id=rota.id,
        details={"status": payload.status.value},
    )
    return RotaResponse(rota=RotaRead.model_validate(rota))


@router.post(
    "/rotas/{rota_id}/duplicate",
    response_model=RotaDuplicateResponse,
    status_code=status.HTTP_201_CREATED,
)
def post_rota_duplicate(
    rota_id: int,
    payload: RotaDuplicateRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> RotaDuplicateResponse:
    rota, shifts_created = duplicate_rota(
        db,
        rota_id=rota_id,
        target_week_start=payload.target_week_start,
        copy_assignments=payload.copy_assignments,
        created_by=actor.user_id,
    )
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="ROTA_DUPLICATED",
        entity_type="rota",
        entity_id=rota.id,
        details={
            "source_rota_id": rota_id,
            "week_start_date": rota.week_start_date.isoformat(),
            "shifts_created": shifts_created,
            "copy_assignments": payload.copy_assignments,
        },
    )
    return RotaDuplicateResponse(rota=RotaRead.model_validate(rota), shifts_created=shifts_created)


@router.get("/shifts", response_model=ShiftListResponse)
def get_shifts(
    rota_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ShiftListResponse:
    shifts = list_shifts(db, rota_id=rota_id)
    return ShiftListResponse(shifts=[ShiftRead.model_validate(item) for item in shifts])


@router.post("/shifts", response_model=ShiftCreateResponse, status_code=status.HTTP_201_CREATED)
def post_shifts(
    payload: ShiftCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ShiftCreateResponse:
    shifts = create_shifts(db, payload, created_by=actor.user_id)
    first = shifts[0]
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="SHIFTS_CREATED",
        entity_type="shift",
        entity_id=first.id,
        details={
            "rota_id": first.rota_id,
            "count": len(shifts),
            "shift_ids": [item.id for item in shifts],
        },
    )
    reads = [ShiftRead.model_validate(item) for item in shifts]
    return ShiftCreateResponse(shift=reads[0], shifts=reads, count=len(reads))


@router.post(
    "/shifts/{shift_id}/assign",
    response_model=ShiftAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def post_shift_assignment(
    shift_id: int,
    payload: ShiftAssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ShiftAssignmentResponse:
    assignment = assign_shift(db, shift_id=shift_id, payload=payload, assigned_by=actor.user_id)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="SHIFT_ASSIGNED",
        entity_type="shift_assignment",
        entity_id=assignment.id,
        details={"shift_id": shift_id, "user_id": payload.user_id, "status": payload.status},
    )
    return ShiftAssignmentResponse(assignment=ShiftAssignmentRead.model_validate(assignment))
