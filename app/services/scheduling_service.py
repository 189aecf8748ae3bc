"""Scheduling orchestrator - moves an intervention into scheduling.

One call is one unit of work: guards, slot replacement, status change and
audit comment commit together (or not at all). Notifications run after the
commit and can never fail the call; emails are queued as a background job.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationError,
    InterventionServiceError,
    NotFoundError,
    TransientStoreError,
)
from app.core.structured_logging import build_log_context
from app.db.enums import InterventionStatus, JobType, PlanningType, ROLES_CAN_SCHEDULE
from app.db.models import Intervention, InterventionComment, User
from app.schemas.auth import UserSession
from app.schemas.intervention import DirectPlan, OrganizePlan, ProposePlan, SchedulingPlan
from app.services import (
    intervention_status,
    job_service,
    notification_service,
    time_slot_service,
)
from app.services.time_slot_service import SchedulingOutcome, SlotSnapshot, SlotSpec

logger = logging.getLogger(__name__)

DIRECT_SLOT_NOTE = "Appointment set by the manager"

RESPONSE_MESSAGES = {
    PlanningType.DIRECT: "Time slots proposed. Awaiting confirmation.",
    PlanningType.PROPOSE: "Time slots proposed. Awaiting confirmation.",
    PlanningType.ORGANIZE: "Autonomous scheduling enabled",
}


@dataclass
class SchedulingResult:
    intervention: Intervention
    outcome: SchedulingOutcome
    message: str
    event_id: str

    @property
    def planning_type(self) -> PlanningType:
        return self.outcome.mode


# =============================================================================
# Planning modes
# =============================================================================


def slot_specs_for_plan(plan: SchedulingPlan) -> list[SlotSpec]:
    """Slots a plan asks for. Organize asks for none."""
    if isinstance(plan, DirectPlan):
        start = plan.direct_schedule.start_time
        return [
            SlotSpec(
                slot_date=plan.direct_schedule.slot_date,
                start_time=start,
                end_time=time_slot_service.compute_direct_end_time(start),
                notes=DIRECT_SLOT_NOTE,
            )
        ]
    if isinstance(plan, ProposePlan):
        return [
            SlotSpec(slot_date=slot.slot_date, start_time=slot.start_time, end_time=slot.end_time)
            for slot in plan.proposed_slots
        ]
    if isinstance(plan, OrganizePlan):
        return []
    raise TypeError(f"Unhandled scheduling plan: {type(plan).__name__}")


def plan_summary(plan: SchedulingPlan) -> str:
    if isinstance(plan, DirectPlan):
        return (
            f"Appointment set for {plan.direct_schedule.slot_date.isoformat()} "
            f"at {time_slot_service.format_time(plan.direct_schedule.start_time)}"
        )
    if isinstance(plan, ProposePlan):
        return f"{len(plan.proposed_slots)} time slots proposed"
    return "Autonomous scheduling enabled"


def build_audit_comment(plan: SchedulingPlan) -> str | None:
    """Audit text for the action, or None when the manager left no comment."""
    comment = (plan.internal_comment or "").strip()
    if not comment:
        return None
    return " | ".join([f"Scheduling: {comment}", plan_summary(plan)])


# =============================================================================
# Orchestration
# =============================================================================


def _lock_intervention(db: Session, intervention_id: UUID) -> Intervention | None:
    """Load the intervention holding a row lock until commit/rollback."""
    return (
        db.query(Intervention)
        .filter(Intervention.id == intervention_id)
        .with_for_update()
        .first()
    )


def _authorize(session: UserSession, intervention: Intervention | None = None) -> None:
    if session.role not in ROLES_CAN_SCHEDULE:
        raise AuthorizationError("Only managers can schedule interventions")
    if intervention is not None and intervention.team_id and intervention.team_id != session.team_id:
        raise AuthorizationError("You are not allowed to schedule this intervention")


def schedule_intervention(
    db: Session,
    intervention_id: UUID,
    plan: SchedulingPlan,
    session: UserSession,
) -> SchedulingResult:
    """
    Apply a scheduling plan to an intervention.

    Raises:
        AuthorizationError: caller is not a manager of the intervention's team
        NotFoundError: intervention does not exist
        StateConflictError: status not schedulable, or a selected slot locks it
        TransientStoreError: database failure; nothing was persisted
    """
    mode = PlanningType(plan.planning_type)
    log_context = build_log_context(
        user_id=session.user_id, team_id=session.team_id, intervention_id=intervention_id
    )
    _authorize(session)

    try:
        intervention = _lock_intervention(db, intervention_id)
        if not intervention:
            raise NotFoundError("Intervention not found")
        _authorize(session, intervention)
        intervention_status.assert_schedulable(intervention.status)

        created_slots = []
        if mode != PlanningType.ORGANIZE:
            created_slots = time_slot_service.replace_unconfirmed_slots(
                db,
                intervention.id,
                slot_specs_for_plan(plan),
                proposed_by=session.user_id,
            )
        outcome = SchedulingOutcome(
            mode=mode,
            created_slots=tuple(SlotSnapshot.from_model(slot) for slot in created_slots),
        )

        intervention_status.assert_transition(intervention.status, InterventionStatus.SCHEDULING)
        intervention.status = InterventionStatus.SCHEDULING.value
        intervention.updated_at = datetime.now(timezone.utc)

        comment = build_audit_comment(plan)
        if comment:
            db.add(
                InterventionComment(
                    intervention_id=intervention.id,
                    author_user_id=session.user_id,
                    body=comment,
                    is_internal=True,
                )
            )
        db.commit()
    except InterventionServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Scheduling failed, rolled back", extra=log_context)
        raise TransientStoreError("Error while scheduling the intervention") from e

    db.refresh(intervention)
    event_id = uuid4().hex
    logger.info(
        "Intervention %s moved to scheduling (planning_type=%s, slots=%d)",
        intervention.id,
        mode.value,
        len(outcome.created_slots),
        extra=log_context,
    )

    dispatch_scheduling_event(db, intervention, outcome, session.user_id, event_id)

    return SchedulingResult(
        intervention=intervention,
        outcome=outcome,
        message=RESPONSE_MESSAGES[mode],
        event_id=event_id,
    )


# =============================================================================
# Dispatch
# =============================================================================


def queue_scheduling_emails(
    db: Session,
    intervention: Intervention,
    outcome: SchedulingOutcome,
    actor_id: UUID,
    event_id: str,
):
    """Queue the deferred email job. The worker re-resolves everything from ids."""
    return job_service.schedule_job(
        db,
        team_id=intervention.team_id,
        job_type=JobType.INTERVENTION_SCHEDULING_EMAIL,
        payload={
            "intervention_id": str(intervention.id),
            "event_id": event_id,
            "planning_type": outcome.mode.value,
            "actor_user_id": str(actor_id),
            "slot_ids": [str(slot.id) for slot in outcome.created_slots],
        },
        idempotency_key=f"intervention_scheduling_email:{event_id}",
    )


def dispatch_scheduling_event(
    db: Session,
    intervention: Intervention,
    outcome: SchedulingOutcome,
    actor_id: UUID,
    event_id: str,
) -> None:
    """In-app fan-out now, emails later. Failures are logged, never raised."""
    intervention_id = intervention.id
    log_context = build_log_context(
        user_id=actor_id, team_id=intervention.team_id, intervention_id=intervention_id
    )

    try:
        actor = db.query(User).filter(User.id == actor_id).one()
        notification_service.notify_scheduling_event(db, intervention, outcome, actor, event_id)
    except Exception:
        db.rollback()
        logger.exception("In-app scheduling notifications failed", extra=log_context)

    try:
        queue_scheduling_emails(db, intervention, outcome, actor_id, event_id)
    except Exception:
        db.rollback()
        logger.exception("Could not queue scheduling emails", extra=log_context)
