"""Intervention email job handlers.

These run in the worker, after the triggering request has returned. They
re-resolve everything from the database and never raise for a single
recipient's failure: the summary lands in ``job.result`` and the log.
"""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.structured_logging import build_log_context
from app.db.enums import AssignmentRole, PlanningType
from app.db.models import Intervention
from app.services import assignment_service, intervention_email_service, time_slot_service
from app.services.time_slot_service import SlotSnapshot

logger = logging.getLogger(__name__)

EMPTY_RESULT = {"sent_count": 0, "failed_count": 0, "skipped_count": 0}


def _coerce_uuid(raw_id: str | None) -> UUID | None:
    if not raw_id:
        return None
    try:
        return UUID(str(raw_id))
    except (TypeError, ValueError):
        logger.warning("Invalid UUID value '%s' in job payload", raw_id)
        return None


def _load_intervention(db, payload: dict) -> Intervention | None:
    intervention_id = _coerce_uuid(payload.get("intervention_id"))
    if not intervention_id:
        return None
    return db.query(Intervention).filter(Intervention.id == intervention_id).first()


def _email_recipients(db, intervention: Intervention, actor_id: UUID | None):
    """Same audience as personal in-app notifications: tenants and providers only."""
    resolved = assignment_service.resolve_assignments(db, intervention)
    recipients = assignment_service.build_recipients(resolved, actor_user_id=actor_id)
    return assignment_service.filter_recipients(
        recipients,
        exclude_user_id=actor_id,
        exclude_roles=[AssignmentRole.MANAGER],
        exclude_non_personal=True,
    )


async def process_intervention_scheduling_email(db, job) -> dict:
    """
    Send scheduling emails for one scheduling event.

    Payload:
        - intervention_id: UUID of the intervention
        - event_id: id of the scheduling action (idempotency)
        - planning_type: direct | propose | organize
        - actor_user_id: manager who scheduled
        - slot_ids: persisted slot ids created by the action
    """
    payload = job.payload or {}
    intervention = _load_intervention(db, payload)
    if not intervention:
        logger.warning(
            "Scheduling email job %s: intervention not found", job.id,
            extra=build_log_context(job_id=job.id),
        )
        return dict(EMPTY_RESULT)

    planning_type = PlanningType(payload.get("planning_type", PlanningType.PROPOSE.value))
    actor_id = _coerce_uuid(payload.get("actor_user_id"))
    slot_ids = [sid for sid in map(_coerce_uuid, payload.get("slot_ids") or []) if sid]
    slots = [
        SlotSnapshot.from_model(slot)
        for slot in time_slot_service.get_slots_by_ids(db, intervention.id, slot_ids)
    ]

    context = intervention_email_service.build_scheduling_context(
        db, intervention, planning_type, actor_id, slots
    )
    recipients = _email_recipients(db, intervention, actor_id)
    result = await intervention_email_service.send_scheduling_batch(
        db,
        intervention,
        recipients,
        context,
        event_id=str(payload.get("event_id") or job.id),
    )

    logger.info(
        "Scheduling emails for intervention=%s planning_type=%s sent=%d failed=%d skipped=%d",
        intervention.id,
        planning_type.value,
        result.sent_count,
        result.failed_count,
        result.skipped_count,
        extra=build_log_context(intervention_id=intervention.id, job_id=job.id),
    )
    return result.as_dict()


async def process_intervention_status_email(db, job) -> dict:
    """
    Send "intervention scheduled" emails after a slot was selected.

    Payload:
        - intervention_id: UUID of the intervention
        - slot_id: selected slot
        - actor_user_id: user who selected the slot
    """
    payload = job.payload or {}
    intervention = _load_intervention(db, payload)
    slot_id = _coerce_uuid(payload.get("slot_id"))
    if not intervention or not slot_id:
        logger.warning("Status email job %s: intervention or slot missing", job.id)
        return dict(EMPTY_RESULT)

    slots = time_slot_service.get_slots_by_ids(db, intervention.id, [slot_id])
    if not slots:
        logger.warning("Status email job %s: slot %s not found", job.id, slot_id)
        return dict(EMPTY_RESULT)

    actor_id = _coerce_uuid(payload.get("actor_user_id"))
    recipients = _email_recipients(db, intervention, actor_id)
    result = await intervention_email_service.send_scheduled_batch(
        db, intervention, recipients, SlotSnapshot.from_model(slots[0])
    )
    logger.info(
        "Scheduled emails for intervention=%s sent=%d failed=%d skipped=%d",
        intervention.id,
        result.sent_count,
        result.failed_count,
        result.skipped_count,
        extra=build_log_context(intervention_id=intervention.id, job_id=job.id),
    )
    return result.as_dict()
