"""Role sets used for authorization checks."""

from app.db.enums.auth import Role

# Roles holding the "manager" capability (approve, schedule).
ROLES_CAN_SCHEDULE = frozenset({Role.MANAGER})

# Roles that see every intervention of their team.
ROLES_TEAM_WIDE_ACCESS = frozenset({Role.MANAGER, Role.ADMIN})
