"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    Team membership roles.

    - TENANT: Occupant of a lot, requests interventions
    - MANAGER: Approves and schedules interventions for the team's lots
    - PROVIDER: Executes interventions
    - ADMIN: Team administration (members, lots)
    """

    TENANT = "tenant"
    MANAGER = "manager"
    PROVIDER = "provider"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
