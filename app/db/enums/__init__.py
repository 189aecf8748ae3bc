"""Enum definitions for application constants."""

from app.db.enums.auth import Role
from app.db.enums.interventions import (
    AssignmentRole,
    InterventionStatus,
    InterventionUrgency,
    PlanningType,
    TimeSlotStatus,
)
from app.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from app.db.enums.notifications import NotificationEntityType, NotificationType
from app.db.enums.permissions import ROLES_CAN_SCHEDULE, ROLES_TEAM_WIDE_ACCESS

__all__ = [
    "AssignmentRole",
    "DEFAULT_JOB_STATUS",
    "InterventionStatus",
    "InterventionUrgency",
    "JobStatus",
    "JobType",
    "NotificationEntityType",
    "NotificationType",
    "PlanningType",
    "ROLES_CAN_SCHEDULE",
    "ROLES_TEAM_WIDE_ACCESS",
    "Role",
    "TimeSlotStatus",
]
