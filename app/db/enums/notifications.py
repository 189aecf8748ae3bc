"""Notification-related enums."""

from enum import Enum


class NotificationType(str, Enum):
    """Types of in-app notifications."""

    INTERVENTION = "intervention"  # Created, scheduling proposed
    STATUS_CHANGE = "status_change"  # Slot selected, status moved


class NotificationEntityType(str, Enum):
    """Entity a notification links to."""

    INTERVENTION = "intervention"
