from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models import (
    ClockEventKind,
    ClockEventSource,
    RotaStatus,
    ShiftAssignmentStatus,
    TimesheetStatus,
)
from app.services.weeks import normalize_ts


class RotaCreateRequest(BaseModel):
    location_id: int = Field(ge=1)
    week_start_date: date
    labor_budget_eur: float | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class RotaStatusUpdateRequest(BaseModel):
    status: RotaStatus

    model_config = ConfigDict(extra="forbid")


class RotaDuplicateRequest(BaseModel):
    target_week_start: date | None = None
    copy_assignments: bool = False

    model_config = ConfigDict(extra="forbid")


class RotaRead(BaseModel):
    id: int
    org_id: int
    location_id: int
    week_start_date: date
    status: RotaStatus
    labor_budget_eur: float | None = None
    notes: str | None = None
    created_by: int | None = None
    updated_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RotaResponse(BaseModel):
    rota: RotaRead


class RotaListResponse(BaseModel):
    rotas: list[RotaRead]


class RotaDuplicateResponse(BaseModel):
    rota: RotaRead
    shifts_created: int


class ShiftCreateRequest(BaseModel):
    rota_id: int | None = Field(default=None, ge=1)
    location_id: int | None = Field(default=None, ge=1)
    job_tag_id: int | None = Field(default=None, ge=1)
    start_at: datetime
    end_at: datetime
    break_minutes: int = Field(default=0, ge=0)
    notes: str | None = Field(default=None, max_length=2000)
    quantity: int = Field(default=1, ge=1, le=20)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def validate_window_and_target(self) -> "ShiftCreateRequest":
        if self.rota_id is None and self.location_id is None:
            raise ValueError("rota_id or location_id is required")
        if normalize_ts(self.end_at) <= normalize_ts(self.start_at):
            raise ValueError("end_at must be after start_at")
        return self


class ShiftRead(BaseModel):
    id: int
    org_id: int
    location_id: int
    rota_id: int
    job_tag_id: int | None = None
    start_at: datetime
    end_at: datetime
    break_minutes: int
    notes: str | None = None
    created_by: int | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ShiftCreateResponse(BaseModel):
    shift: ShiftRead
    shifts: list[ShiftRead]
    count: int


class ShiftListResponse(BaseModel):
    shifts: list[ShiftRead]


class ShiftAssignRequest(BaseModel):
    user_id: int = Field(ge=1)
    status: Literal["proposed", "assigned"] = "assigned"

    model_config = ConfigDict(extra="forbid")


class ShiftAssignmentRead(BaseModel):
    id: int
    shift_id: int
    user_id: int
    status: ShiftAssignmentStatus
    assigned_at: datetime | None = None
    proposed_at: datetime | None = None
    assigned_by: int | None = None

    model_config = ConfigDict(from_attributes=True)


class ShiftAssignmentResponse(BaseModel):
    assignment: ShiftAssignmentRead


class ClockPunchRequest(BaseModel):
    location_id: int = Field(ge=1)
    kind: ClockEventKind
    occurred_at: datetime | None = None
    source: ClockEventSource = ClockEventSource.KIOSK

    model_config = ConfigDict(extra="forbid")


class ClockEventRead(BaseModel):
    id: int
    org_id: int
    location_id: int
    user_id: int
    kind: ClockEventKind
    occurred_at: datetime
    source: ClockEventSource

    model_config = ConfigDict(from_attributes=True)


class ClockEventResponse(BaseModel):
    clock_event: ClockEventRead


class ClockEventListResponse(BaseModel):
    events: list[ClockEventRead]


class TimesheetGenerateRequest(BaseModel):
    user_id: int = Field(ge=1)
    location_id: int = Field(ge=1)
    period_start: date
    period_end: date
    force: bool = False

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def validate_period(self) -> "TimesheetGenerateRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must be greater than or equal to period_start")
        return self


class TimesheetRead(BaseModel):
    id: int
    org_id: int
    location_id: int
    user_id: int
    period_start: date
    period_end: date
    totals: dict[str, Any]
    status: TimesheetStatus
    approved_by: int | None = None
    approved_at: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TimesheetResponse(BaseModel):
    timesheet: TimesheetRead


class TimesheetListResponse(BaseModel):
    timesheets: list[TimesheetRead]


class ComplianceCheckRequest(BaseModel):
    user_id: int = Field(ge=1)
    location_id: int = Field(ge=1)
    period_start: date
    period_end: date

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def validate_period(self) -> "ComplianceCheckRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must be greater than or equal to period_start")
        return self


class ComplianceViolationRead(BaseModel):
    rule_key: str
    violation_date: date
    severity: Literal["warning", "critical"]
    details: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)


class ComplianceCheckResponse(BaseModel):
    violations: list[ComplianceViolationRead]
    count: int
