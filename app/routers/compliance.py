from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas import ComplianceCheckRequest, ComplianceCheckResponse, ComplianceViolationRead
from app.security import Actor, get_current_actor
from app.services.compliance import check_compliance

router = APIRouter(prefix="/api/v1/compliance", tags=["compliance"])


@router.post("/check", response_model=ComplianceCheckResponse)
def post_compliance_check(
    payload: ComplianceCheckRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ComplianceCheckResponse:
    violations = check_compliance(
        db,
        user_id=payload.user_id,
        location_id=payload.location_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
    )
    return ComplianceCheckResponse(
        violations=[ComplianceViolationRead.model_validate(item) for item in violations],
        count=len(violations),
    )
