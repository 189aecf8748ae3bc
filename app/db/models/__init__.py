"""SQLAlchemy ORM models."""

from app.db.models.auth import Membership, Team, User
from app.db.models.interventions import (
    Intervention,
    InterventionAssignment,
    InterventionComment,
    InterventionTimeSlot,
)
from app.db.models.jobs import Job
from app.db.models.lots import Lot
from app.db.models.notifications import Notification

__all__ = [
    "Intervention",
    "InterventionAssignment",
    "InterventionComment",
    "InterventionTimeSlot",
    "Job",
    "Lot",
    "Membership",
    "Notification",
    "Team",
    "User",
]
