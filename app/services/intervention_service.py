"""Intervention service - reads, creation and counterpart slot selection."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationError,
    InterventionServiceError,
    NotFoundError,
    StateConflictError,
    TransientStoreError,
    ValidationError,
)
from app.core.structured_logging import build_log_context
from app.db.enums import (
    AssignmentRole,
    InterventionStatus,
    InterventionUrgency,
    JobType,
    Role,
    ROLES_TEAM_WIDE_ACCESS,
)
from app.db.models import (
    Intervention,
    InterventionAssignment,
    InterventionComment,
    InterventionTimeSlot,
    Lot,
    Membership,
    User,
)
from app.schemas.auth import UserSession
from app.services import (
    intervention_status,
    job_service,
    notification_service,
    time_slot_service,
)

logger = logging.getLogger(__name__)

# Role a creator is assigned with, by membership role.
CREATOR_ASSIGNMENT_ROLES = {
    Role.TENANT: AssignmentRole.TENANT,
    Role.MANAGER: AssignmentRole.MANAGER,
}


@dataclass
class SlotSelectionResult:
    intervention: Intervention
    slot: InterventionTimeSlot
    message: str


def get_intervention(db: Session, intervention_id: UUID) -> Intervention | None:
    return db.query(Intervention).filter(Intervention.id == intervention_id).first()


def _is_assigned(db: Session, intervention_id: UUID, user_id: UUID) -> bool:
    return (
        db.query(InterventionAssignment.id)
        .filter(
            InterventionAssignment.intervention_id == intervention_id,
            InterventionAssignment.user_id == user_id,
        )
        .first()
        is not None
    )


def can_access(db: Session, intervention: Intervention, session: UserSession) -> bool:
    """Team managers/admins see the team's interventions; others only their own."""
    if session.role in ROLES_TEAM_WIDE_ACCESS and intervention.team_id == session.team_id:
        return True
    return _is_assigned(db, intervention.id, session.user_id)


def get_intervention_for_session(
    db: Session, intervention_id: UUID, session: UserSession
) -> Intervention:
    """
    Raises:
        NotFoundError: missing, or not visible to the caller
    """
    intervention = get_intervention(db, intervention_id)
    if not intervention or not can_access(db, intervention, session):
        raise NotFoundError("Intervention not found")
    return intervention


def create_intervention(
    db: Session,
    session: UserSession,
    title: str,
    lot_id: UUID | None = None,
    description: str | None = None,
    urgency: InterventionUrgency = InterventionUrgency.NORMAL,
    assignments: list[tuple[UUID, AssignmentRole]] | None = None,
) -> Intervention:
    """
    Create an intervention in ``requested`` status and notify the people linked to it.

    The creator is assigned (primary) in their own capacity. Extra assignees
    must belong to the caller's team.
    """
    if lot_id:
        lot = db.query(Lot).filter(Lot.id == lot_id, Lot.team_id == session.team_id).first()
        if not lot:
            raise ValidationError("Lot not found in your team")

    extra = assignments or []
    if extra:
        member_ids = {
            row.user_id
            for row in db.query(Membership.user_id)
            .filter(
                Membership.team_id == session.team_id,
                Membership.user_id.in_([user_id for user_id, _ in extra]),
            )
            .all()
        }
        unknown = [str(user_id) for user_id, _ in extra if user_id not in member_ids]
        if unknown:
            raise ValidationError("Assignees must belong to your team", details={"user_ids": unknown})

    intervention = Intervention(
        title=title,
        description=description,
        urgency=urgency.value,
        status=InterventionStatus.REQUESTED.value,
        team_id=session.team_id,
        lot_id=lot_id,
        created_by_user_id=session.user_id,
    )
    db.add(intervention)
    db.flush()

    seen: set[tuple[UUID, AssignmentRole]] = set()
    creator_role = CREATOR_ASSIGNMENT_ROLES.get(session.role)
    rows = [(session.user_id, creator_role, True)] if creator_role else []
    rows += [(user_id, role, False) for user_id, role in extra]
    for user_id, role, is_primary in rows:
        if (user_id, role) in seen:
            continue
        seen.add((user_id, role))
        db.add(
            InterventionAssignment(
                intervention_id=intervention.id,
                user_id=user_id,
                role=role.value,
                is_primary=is_primary,
            )
        )
    intervention.reference = f"INT-{intervention.id.hex[:8].upper()}"
    db.commit()
    db.refresh(intervention)

    actor = db.query(User).filter(User.id == session.user_id).first()
    try:
        notification_service.notify_intervention_created(db, intervention, actor)
    except Exception:
        db.rollback()
        logger.exception(
            "Creation notifications failed",
            extra=build_log_context(user_id=session.user_id, intervention_id=intervention.id),
        )
    return intervention


def select_time_slot(
    db: Session,
    intervention_id: UUID,
    slot_id: UUID,
    session: UserSession,
) -> SlotSelectionResult:
    """
    Confirm a proposed slot: slot -> selected, intervention -> scheduled.

    Open to anyone assigned to the intervention and to the team's managers.

    Raises:
        NotFoundError: intervention or slot missing / not visible
        AuthorizationError: caller is neither assigned nor a team manager
        StateConflictError: status does not accept a selection, or a slot is already selected
        TransientStoreError: database failure; nothing was persisted
    """
    log_context = build_log_context(
        user_id=session.user_id, team_id=session.team_id, intervention_id=intervention_id
    )
    try:
        intervention = (
            db.query(Intervention)
            .filter(Intervention.id == intervention_id)
            .with_for_update()
            .first()
        )
        if not intervention:
            raise NotFoundError("Intervention not found")
        if not can_access(db, intervention, session):
            raise AuthorizationError("You are not allowed to select a slot for this intervention")
        if not intervention_status.is_slot_selectable(intervention.status):
            raise StateConflictError(
                f"A time slot cannot be selected while the intervention is {intervention.status}",
                details={"current_status": intervention.status},
            )

        slot = time_slot_service.select_slot(db, intervention.id, slot_id)

        old_status = intervention.status
        intervention_status.assert_transition(old_status, InterventionStatus.SCHEDULED)
        intervention.status = InterventionStatus.SCHEDULED.value
        intervention.scheduled_date = datetime.combine(
            slot.slot_date, slot.start_time, tzinfo=timezone.utc
        )
        intervention.updated_at = datetime.now(timezone.utc)
        db.add(
            InterventionComment(
                intervention_id=intervention.id,
                author_user_id=session.user_id,
                body=(
                    f"Time slot selected: {slot.slot_date.isoformat()} "
                    f"{time_slot_service.format_time(slot.start_time)}-"
                    f"{time_slot_service.format_time(slot.end_time)}"
                ),
                is_internal=False,
            )
        )
        db.commit()
    except InterventionServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Slot selection failed, rolled back", extra=log_context)
        raise TransientStoreError("Error while selecting the time slot") from e

    db.refresh(intervention)
    db.refresh(slot)
    logger.info("Intervention %s scheduled via slot %s", intervention.id, slot.id, extra=log_context)

    message = (
        f'The intervention "{intervention.title}" is scheduled on '
        f"{slot.slot_date.isoformat()} from {time_slot_service.format_time(slot.start_time)} "
        f"to {time_slot_service.format_time(slot.end_time)}."
    )
    try:
        actor = db.query(User).filter(User.id == session.user_id).one()
        notification_service.notify_status_change(
            db, intervention, old_status, InterventionStatus.SCHEDULED, actor, message=message
        )
    except Exception:
        db.rollback()
        logger.exception("Status change notifications failed", extra=log_context)

    try:
        job_service.schedule_job(
            db,
            team_id=intervention.team_id,
            job_type=JobType.INTERVENTION_STATUS_EMAIL,
            payload={
                "intervention_id": str(intervention.id),
                "slot_id": str(slot.id),
                "actor_user_id": str(session.user_id),
            },
            idempotency_key=f"intervention_status_email:{slot.id}",
        )
    except Exception:
        db.rollback()
        logger.exception("Could not queue scheduled emails", extra=log_context)

    return SlotSelectionResult(
        intervention=intervention,
        slot=slot,
        message="Time slot selected and intervention scheduled",
    )
