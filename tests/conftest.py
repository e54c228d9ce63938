"""Shared test fixtures.

Every test gets its own file-backed SQLite database. SQLite transactions
start with BEGIN IMMEDIATE, so helpers open a short-lived session per check
and close it before the next write.
"""
from types import SimpleNamespace
from typing import Optional
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from kanban_core import crud, models, schemas
from kanban_core.api.main import create_app
from kanban_core.config import Settings
from kanban_core.database import create_db_engine, create_session_factory


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'kanban.db'}",
        sqlite_busy_timeout_s=30.0,
        log_level="DEBUG",
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings=settings)
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    """A session for tests that call the services directly."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(session_factory) -> SimpleNamespace:
    """Two organizations and four users.

    - alice: owner of org A
    - bob: member of org A
    - carol: member of org B only
    - dave: no memberships
    """
    with session_factory() as session:
        org_a = models.Organization(name="Acme", slug="acme")
        org_b = models.Organization(name="Globex", slug="globex")
        alice = models.User(email="alice@example.com", name="Alice")
        bob = models.User(email="bob@example.com", name="Bob", avatar="https://example.com/bob.png")
        carol = models.User(email="carol@example.com", name="Carol")
        dave = models.User(email="dave@example.com", name="Dave")
        session.add_all([org_a, org_b, alice, bob, carol, dave])
        session.flush()
        session.add_all([
            models.OrganizationMember(organization_id=org_a.id, user_id=alice.id, role=models.MemberRole.OWNER),
            models.OrganizationMember(organization_id=org_a.id, user_id=bob.id, role=models.MemberRole.MEMBER),
            models.OrganizationMember(organization_id=org_b.id, user_id=carol.id, role=models.MemberRole.OWNER),
        ])
        session.commit()
        return SimpleNamespace(
            org_a=org_a.id,
            org_b=org_b.id,
            alice=alice.id,
            bob=bob.id,
            carol=carol.id,
            dave=dave.id,
        )


@pytest.fixture
def client(session_factory, settings):
    app = create_app(session_factory=session_factory, settings=settings)
    with TestClient(app) as test_client:
        yield test_client


def make_issue(
    session_factory,
    organization_id: UUID,
    reporter_id: UUID,
    title: str,
    status: models.IssueStatus = models.IssueStatus.TODO,
    position: Optional[int] = None,
    **fields,
) -> UUID:
    """Create an issue through the service and return its id."""
    with session_factory() as session:
        data = schemas.IssueCreate(title=title, status=status, position=position, **fields)
        issue = crud.create_issue(session, organization_id, reporter_id, data)
        return issue.id


def make_column(session_factory, organization_id: UUID, reporter_id: UUID, status: models.IssueStatus, *titles: str) -> dict[str, UUID]:
    """Append issues to a column in order; returns title -> id."""
    return {
        title: make_issue(session_factory, organization_id, reporter_id, title, status=status)
        for title in titles
    }


def column_titles(session_factory, organization_id: UUID, status: models.IssueStatus) -> list[str]:
    """Titles of a column in position order."""
    with session_factory() as session:
        rows = (
            session.query(models.Issue.title)
            .filter(models.Issue.organization_id == organization_id, models.Issue.status == status)
            .order_by(models.Issue.position.asc())
            .all()
        )
        return [title for (title,) in rows]


def column_positions(session_factory, organization_id: UUID, status: models.IssueStatus) -> list[int]:
    with session_factory() as session:
        rows = (
            session.query(models.Issue.position)
            .filter(models.Issue.organization_id == organization_id, models.Issue.status == status)
            .order_by(models.Issue.position.asc())
            .all()
        )
        return [position for (position,) in rows]


def load_issue(session_factory, issue_id: UUID) -> models.Issue:
    with session_factory() as session:
        return session.get(models.Issue, issue_id)


def history_rows(session_factory, issue_id: UUID) -> list[models.IssueHistory]:
    """History entries newest first."""
    with session_factory() as session:
        return (
            session.query(models.IssueHistory)
            .filter(models.IssueHistory.issue_id == issue_id)
            .order_by(models.IssueHistory.created_at.desc(), models.IssueHistory.id.desc())
            .all()
        )


def auth_headers(user_id: UUID, organization_id: Optional[UUID] = None) -> dict:
    headers = {"X-User-Id": str(user_id)}
    if organization_id is not None:
        headers["X-Organization-Id"] = str(organization_id)
    return headers
