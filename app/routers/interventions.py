"""Interventions router - creation, detail, scheduling and slot selection.

Service errors (app.core.exceptions) propagate and are rendered by the
application-level handler as ``{"success": false, "error": ...}``.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db, require_csrf_header
from app.schemas.auth import UserSession
from app.schemas.intervention import (
    InterventionCreate,
    InterventionRead,
    InterventionSummary,
    ScheduleInterventionRequest,
    ScheduleInterventionResponse,
    SelectSlotResponse,
    TimeSlotRead,
)
from app.services import intervention_service, scheduling_service, time_slot_service

router = APIRouter()


@router.post(
    "",
    response_model=InterventionRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_intervention(
    data: InterventionCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Create an intervention request and notify the people linked to it."""
    intervention = intervention_service.create_intervention(
        db,
        session,
        title=data.title,
        lot_id=data.lot_id,
        description=data.description,
        urgency=data.urgency,
        assignments=[(a.user_id, a.role) for a in data.assignments],
    )
    return InterventionRead.model_validate(intervention)


@router.get("/{intervention_id}", response_model=InterventionRead)
def get_intervention(
    intervention_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    intervention = intervention_service.get_intervention_for_session(db, intervention_id, session)
    return InterventionRead.model_validate(intervention)


@router.get("/{intervention_id}/time-slots", response_model=list[TimeSlotRead])
def list_time_slots(
    intervention_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    intervention = intervention_service.get_intervention_for_session(db, intervention_id, session)
    return [
        TimeSlotRead.model_validate(slot)
        for slot in time_slot_service.list_slots(db, intervention.id)
    ]


@router.post(
    "/{intervention_id}/schedule",
    response_model=ScheduleInterventionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def schedule_intervention(
    intervention_id: UUID,
    payload: ScheduleInterventionRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Move an intervention into scheduling (direct, propose or organize).

    Responds once slots, status and audit comment are committed and in-app
    notifications are created; emails go out from the worker afterwards.
    """
    result = scheduling_service.schedule_intervention(db, intervention_id, payload.root, session)
    return ScheduleInterventionResponse(
        intervention=InterventionSummary.model_validate(result.intervention),
        planning_type=result.planning_type.value,
        message=result.message,
    )


@router.post(
    "/{intervention_id}/time-slots/{slot_id}/select",
    response_model=SelectSlotResponse,
    dependencies=[Depends(require_csrf_header)],
)
def select_time_slot(
    intervention_id: UUID,
    slot_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Confirm one proposed slot; the intervention becomes scheduled."""
    result = intervention_service.select_time_slot(db, intervention_id, slot_id, session)
    return SelectSlotResponse(
        intervention=InterventionSummary.model_validate(result.intervention),
        slot=TimeSlotRead.model_validate(result.slot),
        message=result.message,
    )
