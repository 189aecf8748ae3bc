"""Time slot store - proposal replacement, selection lock and end-time rules."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, SlotLockedError, StateConflictError
from app.db.enums import PlanningType, TimeSlotStatus
from app.db.models import InterventionTimeSlot

logger = logging.getLogger(__name__)

# Slots that a new scheduling action may discard.
REPLACEABLE_STATUSES = (TimeSlotStatus.PENDING.value, TimeSlotStatus.REJECTED.value)


@dataclass(frozen=True)
class SlotSpec:
    """A slot to insert (not yet persisted)."""

    slot_date: date
    start_time: time
    end_time: time
    notes: str | None = None


@dataclass(frozen=True)
class SlotSnapshot:
    """Persisted slot, detached from the session."""

    id: UUID
    slot_date: date
    start_time: time
    end_time: time

    @classmethod
    def from_model(cls, slot: InterventionTimeSlot) -> "SlotSnapshot":
        return cls(
            id=slot.id,
            slot_date=slot.slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
        )


@dataclass(frozen=True)
class SchedulingOutcome:
    """What one scheduling action produced, handed from the mode handler to dispatch."""

    mode: PlanningType
    created_slots: tuple[SlotSnapshot, ...] = ()


def compute_direct_end_time(start: time) -> time:
    """
    Synthetic end time for a fixed appointment: one hour later on a 24h wheel.

    23:30 -> 00:30, 09:15 -> 10:15. Only used to give the slot a minimal window.
    """
    return start.replace(hour=(start.hour + 1) % 24)


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def get_selected_slot(db: Session, intervention_id: UUID) -> InterventionTimeSlot | None:
    return (
        db.query(InterventionTimeSlot)
        .filter(
            InterventionTimeSlot.intervention_id == intervention_id,
            InterventionTimeSlot.status == TimeSlotStatus.SELECTED.value,
        )
        .first()
    )


def list_slots(
    db: Session,
    intervention_id: UUID,
    statuses: list[TimeSlotStatus] | None = None,
) -> list[InterventionTimeSlot]:
    query = db.query(InterventionTimeSlot).filter(
        InterventionTimeSlot.intervention_id == intervention_id
    )
    if statuses:
        query = query.filter(InterventionTimeSlot.status.in_([s.value for s in statuses]))
    return query.order_by(
        InterventionTimeSlot.slot_date, InterventionTimeSlot.start_time
    ).all()


def get_slots_by_ids(
    db: Session, intervention_id: UUID, slot_ids: list[UUID]
) -> list[InterventionTimeSlot]:
    if not slot_ids:
        return []
    return (
        db.query(InterventionTimeSlot)
        .filter(
            InterventionTimeSlot.intervention_id == intervention_id,
            InterventionTimeSlot.id.in_(slot_ids),
        )
        .order_by(InterventionTimeSlot.slot_date, InterventionTimeSlot.start_time)
        .all()
    )


def replace_unconfirmed_slots(
    db: Session,
    intervention_id: UUID,
    specs: list[SlotSpec],
    proposed_by: UUID,
) -> list[InterventionTimeSlot]:
    """
    Replace every pending/rejected slot with ``specs``.

    Runs inside the caller's transaction and does not commit. The caller must
    hold the intervention row lock (SELECT ... FOR UPDATE) so the selected-slot
    check and the delete+insert cannot interleave with a concurrent selection.

    Raises:
        SlotLockedError: a selected slot exists; nothing is modified.
    """
    selected = get_selected_slot(db, intervention_id)
    if selected:
        raise SlotLockedError(
            "A time slot has already been confirmed for this intervention",
            details={"selected_slot_id": str(selected.id)},
        )

    removed = (
        db.query(InterventionTimeSlot)
        .filter(
            InterventionTimeSlot.intervention_id == intervention_id,
            InterventionTimeSlot.status.in_(REPLACEABLE_STATUSES),
        )
        .delete(synchronize_session="fetch")
    )

    slots = [
        InterventionTimeSlot(
            intervention_id=intervention_id,
            slot_date=spec.slot_date,
            start_time=spec.start_time,
            end_time=spec.end_time,
            status=TimeSlotStatus.PENDING.value,
            proposed_by_user_id=proposed_by,
            notes=spec.notes,
        )
        for spec in specs
    ]
    db.add_all(slots)
    db.flush()

    logger.debug(
        "Replaced %d unconfirmed slots with %d for intervention=%s",
        removed,
        len(slots),
        intervention_id,
    )
    return slots


def select_slot(db: Session, intervention_id: UUID, slot_id: UUID) -> InterventionTimeSlot:
    """
    Confirm one pending slot and reject the other pending ones.

    Does not commit. A concurrent selection trips the partial unique index on
    selected slots and is reported as SlotLockedError.
    """
    slot = (
        db.query(InterventionTimeSlot)
        .filter(
            InterventionTimeSlot.id == slot_id,
            InterventionTimeSlot.intervention_id == intervention_id,
        )
        .first()
    )
    if not slot:
        raise NotFoundError("Time slot not found")

    if get_selected_slot(db, intervention_id):
        raise SlotLockedError("A time slot has already been confirmed for this intervention")

    if slot.status != TimeSlotStatus.PENDING.value:
        raise StateConflictError(
            f"Time slot is {slot.status} and cannot be selected",
            details={"slot_status": slot.status},
        )

    slot.status = TimeSlotStatus.SELECTED.value
    slot.selected_at = datetime.now(timezone.utc)
    (
        db.query(InterventionTimeSlot)
        .filter(
            InterventionTimeSlot.intervention_id == intervention_id,
            InterventionTimeSlot.id != slot_id,
            InterventionTimeSlot.status == TimeSlotStatus.PENDING.value,
        )
        .update(
            {InterventionTimeSlot.status: TimeSlotStatus.REJECTED.value},
            synchronize_session="fetch",
        )
    )
    try:
        db.flush()
    except IntegrityError as exc:
        raise SlotLockedError(
            "A time slot has already been confirmed for this intervention"
        ) from exc
    return slot
