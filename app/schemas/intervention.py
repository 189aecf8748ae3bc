"""Intervention schemas - Pydantic models for scheduling and slot APIs."""

import re
from datetime import date, datetime, time
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    TypeAdapter,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError
from app.db.enums import AssignmentRole, InterventionUrgency

MAX_PROPOSED_SLOTS = 20
HHMM_PATTERN = re.compile(r"([01]\d|2[0-3]):([0-5]\d)")


def _hhmm(value: time | None) -> str | None:
    return value.strftime("%H:%M") if value else None


def parse_wall_clock(value: Any) -> time:
    """Accept only naive HH:MM wall-clock times (strings or time objects)."""
    if isinstance(value, time):
        if value.tzinfo is not None or value.second or value.microsecond:
            raise ValueError("time must be HH:MM without seconds or timezone")
        return value
    if isinstance(value, str):
        match = HHMM_PATTERN.fullmatch(value)
        if match:
            return time(int(match.group(1)), int(match.group(2)))
    raise ValueError("time must be HH:MM")


# =============================================================================
# Scheduling request (one closed variant per planning type)
# =============================================================================

class DirectSchedule(BaseModel):
    """A fixed appointment. The end time is derived server-side."""
    model_config = ConfigDict(populate_by_name=True)

    slot_date: date = Field(..., alias="date")
    start_time: time

    @field_validator("start_time", mode="before")
    @classmethod
    def _wall_clock(cls, v: Any) -> time:
        return parse_wall_clock(v)


class ProposedSlot(BaseModel):
    """A candidate window offered to the tenant and provider."""
    model_config = ConfigDict(populate_by_name=True)

    slot_date: date = Field(..., alias="date")
    start_time: time
    end_time: time

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _wall_clock(cls, v: Any) -> time:
        return parse_wall_clock(v)

    @model_validator(mode="after")
    def _end_after_start(self) -> "ProposedSlot":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class _PlanBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    internal_comment: str | None = Field(None, max_length=2000)


class DirectPlan(_PlanBase):
    planning_type: Literal["direct"]
    direct_schedule: DirectSchedule


class ProposePlan(_PlanBase):
    planning_type: Literal["propose"]
    proposed_slots: list[ProposedSlot] = Field(..., min_length=1, max_length=MAX_PROPOSED_SLOTS)


class OrganizePlan(_PlanBase):
    planning_type: Literal["organize"]


SchedulingPlan = Annotated[
    Union[DirectPlan, ProposePlan, OrganizePlan],
    Field(discriminator="planning_type"),
]


class ScheduleInterventionRequest(RootModel[SchedulingPlan]):
    """Request body for POST /interventions/{id}/schedule."""


_plan_adapter: TypeAdapter[SchedulingPlan] = TypeAdapter(SchedulingPlan)


def validation_details(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """JSON-safe subset of pydantic error dicts."""
    return [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in errors
    ]


def parse_scheduling_plan(data: dict[str, Any]) -> SchedulingPlan:
    """
    Validate a raw scheduling payload into its planning-type variant.

    Raises:
        ValidationError: unknown planning type or missing/invalid fields.
    """
    try:
        return _plan_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid scheduling request", details=validation_details(e.errors())
        ) from e


# =============================================================================
# Creation
# =============================================================================

class AssignmentInput(BaseModel):
    user_id: UUID
    role: AssignmentRole


class InterventionCreate(BaseModel):
    """Schema for creating an intervention."""
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    lot_id: UUID | None = None
    urgency: InterventionUrgency = InterventionUrgency.NORMAL
    assignments: list[AssignmentInput] = Field(default_factory=list, max_length=50)


# =============================================================================
# Responses
# =============================================================================

class InterventionSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    title: str
    updated_at: datetime


class ScheduleInterventionResponse(BaseModel):
    success: bool = True
    intervention: InterventionSummary
    planning_type: str
    message: str


class TimeSlotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    slot_date: date
    start_time: time
    end_time: time
    status: str
    proposed_by_user_id: UUID | None
    notes: str | None
    selected_at: datetime | None

    @field_serializer("start_time", "end_time")
    def _serialize_time(self, value: time) -> str | None:
        return _hhmm(value)


class AssignmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    role: str
    is_primary: bool


class InterventionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str | None
    title: str
    description: str | None
    status: str
    urgency: str
    team_id: UUID | None
    lot_id: UUID | None
    scheduled_date: datetime | None
    created_at: datetime
    updated_at: datetime
    assignments: list[AssignmentRead] = []
    time_slots: list[TimeSlotRead] = []


class SelectSlotResponse(BaseModel):
    success: bool = True
    intervention: InterventionSummary
    slot: TimeSlotRead
    message: str
