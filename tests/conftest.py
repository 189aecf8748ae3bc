"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite schema per test (app code commits freely)
- Team, users, lot and intervention factories
- JWT session cookies and HTTPX AsyncClient with CSRF header
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Generator

# Must be set before app modules read settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RESEND_API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from app.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from app.core.security import create_session_token
from app.db.base import Base
from app.db.enums import AssignmentRole, InterventionStatus, Role
from app.db.models import (
    Intervention,
    InterventionAssignment,
    Lot,
    Membership,
    Team,
    User,
)
from app.db.session import SessionLocal, engine
from app.main import app
from app.schemas.auth import UserSession


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def db_engine():
    return engine


@pytest.fixture(scope="function")
def db(db_engine) -> Generator[Session, None, None]:
    """
    Session on a freshly created schema.

    Services commit as they would in production; the schema is dropped
    after each test instead of rolling back.
    """
    Base.metadata.create_all(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=db_engine)


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_team(db: Session) -> Team:
    team = Team(id=uuid.uuid4(), name="Riverside Property Management")
    db.add(team)
    db.commit()
    return team


@pytest.fixture(scope="function")
def other_team(db: Session) -> Team:
    team = Team(id=uuid.uuid4(), name="Other Agency")
    db.add(team)
    db.commit()
    return team


@pytest.fixture(scope="function")
def make_user(db: Session, test_team: Team) -> Callable[..., User]:
    """Factory: create a user with a membership (defaults to test_team)."""

    def _make(role: Role, name: str | None = None, team: Team | None = None) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
            display_name=name or f"{role.value.title()} User",
        )
        db.add(user)
        db.flush()
        db.add(
            Membership(
                id=uuid.uuid4(),
                user_id=user.id,
                team_id=(team or test_team).id,
                role=role.value,
            )
        )
        db.commit()
        return user

    return _make


@pytest.fixture(scope="function")
def manager(make_user) -> User:
    return make_user(Role.MANAGER, name="Alice Manager")


@pytest.fixture(scope="function")
def tenant(make_user) -> User:
    return make_user(Role.TENANT, name="Tom Tenant")


@pytest.fixture(scope="function")
def provider(make_user) -> User:
    return make_user(Role.PROVIDER, name="Paula Plumber")


@pytest.fixture(scope="function")
def test_lot(db: Session, test_team: Team) -> Lot:
    lot = Lot(id=uuid.uuid4(), team_id=test_team.id, reference="A-101", building_name="Riverside")
    db.add(lot)
    db.commit()
    return lot


@pytest.fixture(scope="function")
def make_intervention(db: Session, test_team: Team, test_lot: Lot) -> Callable[..., Intervention]:
    """Factory: create an intervention with the given status and assignments."""

    def _make(
        status: InterventionStatus = InterventionStatus.APPROVED,
        assignments: list[tuple[User, AssignmentRole]] | None = None,
        team: Team | None = None,
    ) -> Intervention:
        intervention = Intervention(
            id=uuid.uuid4(),
            reference=f"INT-{uuid.uuid4().hex[:8].upper()}",
            title="Leaking kitchen sink",
            status=status.value,
            team_id=(team or test_team).id,
            lot_id=test_lot.id,
        )
        db.add(intervention)
        db.flush()
        for user, role in assignments or []:
            db.add(
                InterventionAssignment(
                    intervention_id=intervention.id,
                    user_id=user.id,
                    role=role.value,
                )
            )
        db.commit()
        return intervention

    return _make


@pytest.fixture(scope="function")
def intervention(make_intervention, manager, tenant, provider) -> Intervention:
    """Approved intervention with one tenant, one provider and the manager assigned."""
    return make_intervention(
        assignments=[
            (tenant, AssignmentRole.TENANT),
            (provider, AssignmentRole.PROVIDER),
            (manager, AssignmentRole.MANAGER),
        ]
    )


def _session_for(db: Session, user: User) -> UserSession:
    membership = db.query(Membership).filter(Membership.user_id == user.id).one()
    return UserSession(
        user_id=user.id,
        team_id=membership.team_id,
        role=Role(membership.role),
        email=user.email,
        display_name=user.display_name,
    )


@pytest.fixture(scope="function")
def session_of(db: Session) -> Callable[[User], UserSession]:
    """Factory: the UserSession a request from ``user`` would carry."""
    return lambda user: _session_for(db, user)


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def auth_for(db: Session, user: User) -> TestAuth:
    membership = db.query(Membership).filter(Membership.user_id == user.id).one()
    token = create_session_token(
        user_id=user.id,
        team_id=membership.team_id,
        role=membership.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_for(db: Session):
    """
    Factory for authenticated AsyncClients (JWT cookie + CSRF header).

    Usage:
        async with client_for(manager) as c:
            await c.post(...)
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    def _make(user: User, csrf: bool = True) -> AsyncClient:
        auth = auth_for(db, user)
        headers = {CSRF_HEADER: CSRF_HEADER_VALUE} if csrf else {}
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={auth.cookie_name: auth.token},
            headers=headers,
        )

    yield _make

    app.dependency_overrides.clear()
