"""Intervention and time-slot enums."""

from enum import Enum


class InterventionStatus(str, Enum):
    """
    Intervention lifecycle status.

    Flow: requested → approved → (quote_requested) → scheduling → scheduled
              ↘ rejected                                  ↘ in_progress → completed
    Any non-terminal status can move to cancelled.
    """

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    QUOTE_REQUESTED = "quote_requested"
    SCHEDULING = "scheduling"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InterventionUrgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AssignmentRole(str, Enum):
    """Role a user holds on a single intervention."""

    TENANT = "tenant"
    MANAGER = "manager"
    PROVIDER = "provider"


class TimeSlotStatus(str, Enum):
    """Time slot negotiation status. At most one slot per intervention is selected."""

    PENDING = "pending"  # Proposed, awaiting the counterpart
    SELECTED = "selected"  # Confirmed, locks the slot set
    REJECTED = "rejected"  # Declined or superseded by a selection


class PlanningType(str, Enum):
    """How a manager schedules an intervention."""

    DIRECT = "direct"  # One fixed appointment
    PROPOSE = "propose"  # Several candidate slots
    ORGANIZE = "organize"  # Tenant and provider negotiate between themselves
