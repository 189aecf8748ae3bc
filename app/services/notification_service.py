"""
Notification Service - handles in-app notifications.

Provides CRUD for notifications and the fan-out triggers for intervention
events (creation, scheduling, status change).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.structured_logging import build_log_context
from app.db.enums import (
    AssignmentRole,
    InterventionStatus,
    NotificationEntityType,
    NotificationType,
    PlanningType,
)
from app.db.models import Intervention, Lot, Notification, User
from app.services import assignment_service
from app.services.assignment_service import Recipient
from app.services.intervention_status import status_label
from app.services.time_slot_service import SchedulingOutcome, format_time

logger = logging.getLogger(__name__)

DEDUPE_WINDOW = timedelta(hours=1)

SCHEDULING_TITLES = {
    PlanningType.DIRECT: "New time slot proposed",
    PlanningType.PROPOSE: "New time slot proposed",
    PlanningType.ORGANIZE: "Autonomous scheduling",
}


@dataclass
class DispatchSummary:
    """Outcome of one in-app fan-out."""

    created: int = 0
    skipped: int = 0  # deduped
    failed: int = 0


# =============================================================================
# Notification CRUD
# =============================================================================


def create_notification(
    db: Session,
    team_id: UUID | None,
    user_id: UUID,
    type: NotificationType,
    title: str,
    message: Optional[str] = None,
    is_personal: bool = True,
    metadata: Optional[dict] = None,
    created_by_user_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    dedupe_key: Optional[str] = None,
) -> Optional[Notification]:
    """
    Create a notification.

    Dedupes by dedupe_key + user_id within a 1 hour window.
    Returns None when an identical notification already exists.
    """
    if dedupe_key:
        window_start = datetime.now(timezone.utc) - DEDUPE_WINDOW
        existing = db.query(Notification).filter(
            Notification.dedupe_key == dedupe_key,
            Notification.user_id == user_id,
            Notification.created_at > window_start,
        ).first()

        if existing:
            return None  # Already notified

    notification = Notification(
        team_id=team_id,
        user_id=user_id,
        created_by_user_id=created_by_user_id,
        type=type.value,
        title=title,
        message=message,
        is_personal=is_personal,
        metadata_=metadata or {},
        entity_type=entity_type,
        entity_id=entity_id,
        dedupe_key=dedupe_key,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def get_notifications(
    db: Session,
    user_id: UUID,
    unread_only: bool = False,
    notification_types: list[str] | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Notification]:
    """Get notifications for user."""
    query = db.query(Notification).filter(Notification.user_id == user_id)

    if unread_only:
        query = query.filter(Notification.read_at.is_(None))

    if notification_types:
        query = query.filter(Notification.type.in_(notification_types))

    return query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()


def get_unread_count(db: Session, user_id: UUID) -> int:
    """Get count of unread notifications."""
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
    ).count()


def mark_read(db: Session, notification_id: UUID, user_id: UUID) -> Optional[Notification]:
    """Mark a notification as read (scoped to its recipient)."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()

    if notification and not notification.read_at:
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)

    return notification


def mark_all_read(db: Session, user_id: UUID) -> int:
    """Mark all notifications as read. Returns count updated."""
    count = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
    ).update({"read_at": datetime.now(timezone.utc)})
    db.commit()
    return count


# =============================================================================
# Fan-out
# =============================================================================


def _fan_out(
    db: Session,
    intervention: Intervention,
    recipients: list[Recipient],
    type: NotificationType,
    title: str,
    message: str,
    metadata: dict,
    actor_id: UUID | None,
    dedupe_prefix: str,
) -> DispatchSummary:
    """
    Create one notification per recipient.

    Each recipient is an independent attempt: a failure is rolled back,
    logged and counted, and the loop moves on.
    """
    summary = DispatchSummary()
    intervention_id = intervention.id
    team_id = intervention.team_id

    for recipient in recipients:
        try:
            notification = create_notification(
                db=db,
                team_id=team_id,
                user_id=recipient.user_id,
                type=type,
                title=title,
                message=message,
                is_personal=recipient.is_personal,
                metadata={**metadata, "recipient_role": recipient.role.value},
                created_by_user_id=actor_id,
                entity_type=NotificationEntityType.INTERVENTION.value,
                entity_id=intervention_id,
                dedupe_key=f"{dedupe_prefix}:{recipient.user_id}",
            )
        except Exception:
            db.rollback()
            summary.failed += 1
            logger.exception(
                "Notification delivery failed",
                extra=build_log_context(
                    user_id=recipient.user_id,
                    team_id=team_id,
                    intervention_id=intervention_id,
                ),
            )
            continue

        if notification is None:
            summary.skipped += 1
        else:
            summary.created += 1

    logger.info(
        "Notifications dispatched for intervention=%s created=%d skipped=%d failed=%d",
        intervention_id,
        summary.created,
        summary.skipped,
        summary.failed,
    )
    return summary


def _lot_reference(db: Session, intervention: Intervention) -> str | None:
    if not intervention.lot_id:
        return None
    lot = db.query(Lot).filter(Lot.id == intervention.lot_id).first()
    return lot.reference if lot else None


def _scheduling_message(intervention: Intervention, outcome: SchedulingOutcome) -> str:
    if outcome.mode == PlanningType.DIRECT and outcome.created_slots:
        slot = outcome.created_slots[0]
        return (
            f'An appointment was proposed for your intervention "{intervention.title}" '
            f"on {slot.slot_date.isoformat()} at {format_time(slot.start_time)}. "
            "Please confirm your availability."
        )
    if outcome.mode == PlanningType.PROPOSE:
        return (
            f'{len(outcome.created_slots)} time slots were proposed for your intervention '
            f'"{intervention.title}". Please indicate your preferences.'
        )
    return (
        f'Your intervention "{intervention.title}" is being scheduled. The tenant and the '
        "provider can propose time slots and organize directly."
    )


def notify_scheduling_event(
    db: Session,
    intervention: Intervention,
    outcome: SchedulingOutcome,
    actor: User,
    event_id: str,
) -> DispatchSummary:
    """
    Fan out one scheduling action.

    Personal: directly assigned tenants and providers.
    Team: team managers not directly assigned. The actor gets nothing.
    """
    resolved = assignment_service.resolve_assignments(db, intervention)
    recipients = assignment_service.build_recipients(
        resolved,
        actor_user_id=actor.id,
        personal_roles=(AssignmentRole.TENANT, AssignmentRole.PROVIDER),
        include_team=True,
    )
    metadata = {
        "intervention_id": str(intervention.id),
        "intervention_title": intervention.title,
        "planning_type": outcome.mode.value,
        "lot_reference": _lot_reference(db, intervention),
        "actor_name": actor.display_name,
        "slot_count": len(outcome.created_slots),
    }
    return _fan_out(
        db,
        intervention,
        recipients,
        type=NotificationType.INTERVENTION,
        title=SCHEDULING_TITLES[outcome.mode],
        message=_scheduling_message(intervention, outcome),
        metadata=metadata,
        actor_id=actor.id,
        dedupe_prefix=f"intervention_scheduling:{intervention.id}:{event_id}",
    )


def notify_intervention_created(
    db: Session,
    intervention: Intervention,
    actor: User | None,
) -> DispatchSummary:
    """
    Notify everyone linked to a new intervention.

    Direct managers are personal recipients here, so a manager who is both
    directly assigned and on the team gets a single personal notification.
    """
    resolved = assignment_service.resolve_assignments(db, intervention)
    actor_id = actor.id if actor else None
    recipients = assignment_service.build_recipients(
        resolved,
        actor_user_id=actor_id,
        personal_roles=(
            AssignmentRole.MANAGER,
            AssignmentRole.TENANT,
            AssignmentRole.PROVIDER,
        ),
        include_team=True,
    )
    actor_name = actor.display_name if actor else "Someone"
    return _fan_out(
        db,
        intervention,
        recipients,
        type=NotificationType.INTERVENTION,
        title=f"New intervention: {intervention.title[:80]}",
        message=f'{actor_name} created the intervention "{intervention.title}"',
        metadata={
            "intervention_id": str(intervention.id),
            "intervention_title": intervention.title,
            "lot_reference": _lot_reference(db, intervention),
            "urgency": intervention.urgency,
            "actor_name": actor_name,
        },
        actor_id=actor_id,
        dedupe_prefix=f"intervention_created:{intervention.id}",
    )


def notify_status_change(
    db: Session,
    intervention: Intervention,
    old_status: InterventionStatus | str,
    new_status: InterventionStatus | str,
    actor: User,
    reason: str | None = None,
    message: str | None = None,
) -> DispatchSummary:
    """Notify participants (personal) and the rest of the team (informational)."""
    resolved = assignment_service.resolve_assignments(db, intervention)
    recipients = assignment_service.build_recipients(
        resolved,
        actor_user_id=actor.id,
        personal_roles=(
            AssignmentRole.MANAGER,
            AssignmentRole.TENANT,
            AssignmentRole.PROVIDER,
        ),
        include_team=True,
    )
    old_value = InterventionStatus(old_status).value
    new_value = InterventionStatus(new_status).value
    body = message or (
        f'{actor.display_name} moved "{intervention.title}" from '
        f"{status_label(old_value)} to {status_label(new_value)}"
    )
    if reason:
        body += f": {reason}"
    return _fan_out(
        db,
        intervention,
        recipients,
        type=NotificationType.STATUS_CHANGE,
        title=f"Intervention {status_label(new_value).lower()}",
        message=body,
        metadata={
            "intervention_id": str(intervention.id),
            "intervention_title": intervention.title,
            "old_status": old_value,
            "new_status": new_value,
            "actor_name": actor.display_name,
        },
        actor_id=actor.id,
        dedupe_prefix=f"intervention_status:{intervention.id}:{new_value}",
    )
