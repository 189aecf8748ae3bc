"""Intervention status state machine and transition guards."""

from app.core.exceptions import StateConflictError
from app.db.enums import InterventionStatus

S = InterventionStatus

ALLOWED_TRANSITIONS: dict[InterventionStatus, frozenset[InterventionStatus]] = {
    S.REQUESTED: frozenset({S.APPROVED, S.REJECTED, S.CANCELLED}),
    S.APPROVED: frozenset({S.QUOTE_REQUESTED, S.SCHEDULING, S.SCHEDULED, S.CANCELLED}),
    S.QUOTE_REQUESTED: frozenset({S.SCHEDULING, S.CANCELLED}),
    # Re-proposal keeps the intervention in scheduling
    S.SCHEDULING: frozenset({S.SCHEDULING, S.SCHEDULED, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.SCHEDULING, S.SCHEDULED, S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.REJECTED: frozenset(),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# A scheduling action is only accepted from these statuses.
SCHEDULABLE_STATUSES = frozenset({S.APPROVED, S.SCHEDULING, S.QUOTE_REQUESTED})

# Counterpart slot selection is accepted from these statuses.
SLOT_SELECTABLE_STATUSES = frozenset({S.APPROVED, S.SCHEDULING, S.SCHEDULED})

STATUS_LABELS: dict[InterventionStatus, str] = {
    S.REQUESTED: "Requested",
    S.APPROVED: "Approved",
    S.REJECTED: "Rejected",
    S.QUOTE_REQUESTED: "Quote requested",
    S.SCHEDULING: "Scheduling",
    S.SCHEDULED: "Scheduled",
    S.IN_PROGRESS: "In progress",
    S.COMPLETED: "Completed",
    S.CANCELLED: "Cancelled",
}


def _coerce(status: InterventionStatus | str) -> InterventionStatus | None:
    try:
        return InterventionStatus(status)
    except ValueError:
        return None


def _value(status: InterventionStatus | str) -> str:
    return status.value if isinstance(status, InterventionStatus) else str(status)


def status_label(status: InterventionStatus | str | None) -> str:
    if not status:
        return "Unknown"
    known = _coerce(status)
    if known is None:
        return str(status).replace("_", " ").capitalize()
    return STATUS_LABELS[known]


def can_transition(current: InterventionStatus | str, target: InterventionStatus | str) -> bool:
    """Return True if ``current -> target`` is a defined transition."""
    source = _coerce(current)
    dest = _coerce(target)
    if source is None or dest is None:
        return False
    return dest in ALLOWED_TRANSITIONS[source]


def assert_transition(current: InterventionStatus | str, target: InterventionStatus | str) -> None:
    """Raise StateConflictError when ``current -> target`` is not allowed."""
    if not can_transition(current, target):
        raise StateConflictError(
            f"Cannot move intervention from '{_value(current)}' to '{_value(target)}'",
            details={"current_status": _value(current)},
        )


def is_schedulable(status: InterventionStatus | str) -> bool:
    return _coerce(status) in SCHEDULABLE_STATUSES


def assert_schedulable(status: InterventionStatus | str) -> None:
    """Scheduling-entry guard. Echoes the current status back on refusal."""
    if not is_schedulable(status):
        raise StateConflictError(
            f"Intervention cannot be scheduled from status '{_value(status)}'",
            details={"current_status": _value(status)},
        )


def is_slot_selectable(status: InterventionStatus | str) -> bool:
    return _coerce(status) in SLOT_SELECTABLE_STATUSES
