"""Assignment resolver - who is linked to an intervention, and in what capacity."""

from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.enums import AssignmentRole, Role
from app.db.models import Intervention, InterventionAssignment, Membership, User


@dataclass
class ResolvedAssignments:
    """
    Users linked to one intervention.

    direct_* come from the intervention's own assignment rows. team_managers
    is every manager of the owning team, whether or not linked to the lot.
    """

    direct_tenants: list[UUID] = field(default_factory=list)
    direct_providers: list[UUID] = field(default_factory=list)
    direct_managers: list[UUID] = field(default_factory=list)
    team_managers: list[UUID] = field(default_factory=list)


@dataclass(frozen=True)
class Recipient:
    user_id: UUID
    role: AssignmentRole
    is_personal: bool


def _unique(ids: Iterable[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    ordered: list[UUID] = []
    for user_id in ids:
        if user_id not in seen:
            seen.add(user_id)
            ordered.append(user_id)
    return ordered


def get_team_manager_ids(db: Session, team_id: UUID | None) -> list[UUID]:
    """All active managers of a team."""
    if not team_id:
        return []
    rows = (
        db.query(Membership.user_id)
        .join(User, User.id == Membership.user_id)
        .filter(
            Membership.team_id == team_id,
            Membership.role == Role.MANAGER.value,
            User.is_active.is_(True),
        )
        .order_by(Membership.created_at, Membership.user_id)
        .all()
    )
    return _unique(row.user_id for row in rows)


def list_assignments(db: Session, intervention_id: UUID) -> list[InterventionAssignment]:
    return (
        db.query(InterventionAssignment)
        .filter(InterventionAssignment.intervention_id == intervention_id)
        .order_by(
            InterventionAssignment.is_primary.desc(),
            InterventionAssignment.created_at,
        )
        .all()
    )


def resolve_assignments(db: Session, intervention: Intervention) -> ResolvedAssignments:
    """Partition the intervention's assignments by role and load team managers."""
    by_role: dict[str, list[UUID]] = {role.value: [] for role in AssignmentRole}
    for assignment in list_assignments(db, intervention.id):
        by_role.setdefault(assignment.role, []).append(assignment.user_id)

    return ResolvedAssignments(
        direct_tenants=_unique(by_role[AssignmentRole.TENANT.value]),
        direct_providers=_unique(by_role[AssignmentRole.PROVIDER.value]),
        direct_managers=_unique(by_role[AssignmentRole.MANAGER.value]),
        team_managers=get_team_manager_ids(db, intervention.team_id),
    )


def build_recipients(
    resolved: ResolvedAssignments,
    actor_user_id: UUID | None,
    personal_roles: Iterable[AssignmentRole] = (
        AssignmentRole.TENANT,
        AssignmentRole.PROVIDER,
    ),
    include_team: bool = True,
) -> list[Recipient]:
    """
    Compute the deduplicated recipient list for one event.

    Personal track: direct assignees holding one of ``personal_roles``.
    Team track: team managers minus direct managers, marked non-personal.
    The actor is excluded from both, and a user never appears twice; the
    personal entry wins when both tracks would include someone.
    """
    role_sources = {
        AssignmentRole.TENANT: resolved.direct_tenants,
        AssignmentRole.PROVIDER: resolved.direct_providers,
        AssignmentRole.MANAGER: resolved.direct_managers,
    }
    recipients: dict[UUID, Recipient] = {}

    for role in personal_roles:
        for user_id in role_sources[role]:
            if user_id == actor_user_id or user_id in recipients:
                continue
            recipients[user_id] = Recipient(user_id=user_id, role=role, is_personal=True)

    if include_team:
        direct_managers = set(resolved.direct_managers)
        for user_id in resolved.team_managers:
            if user_id == actor_user_id or user_id in direct_managers or user_id in recipients:
                continue
            recipients[user_id] = Recipient(
                user_id=user_id, role=AssignmentRole.MANAGER, is_personal=False
            )

    return list(recipients.values())


def filter_recipients(
    recipients: Iterable[Recipient],
    exclude_user_id: UUID | None = None,
    exclude_roles: Iterable[AssignmentRole] = (),
    exclude_non_personal: bool = False,
) -> list[Recipient]:
    """Apply delivery exclusion filters (used for email)."""
    excluded = set(exclude_roles)
    result = []
    for recipient in recipients:
        if exclude_user_id and recipient.user_id == exclude_user_id:
            continue
        if recipient.role in excluded:
            continue
        if exclude_non_personal and not recipient.is_personal:
            continue
        result.append(recipient)
    return result
