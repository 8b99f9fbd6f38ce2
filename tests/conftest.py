"""
Shared pytest fixtures for the Elevator Workspace test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB reset inside an app context (autouse)
    - client: Flask test client (function-scoped)
    - make_user / add_member / make_task / make_ticket: ORM factories that
      bypass the services to set up arbitrary starting states
    - auth_headers: Bearer header for a user (optionally acting as a role)
    - audit_outage: audit repository that keeps losing its connection
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app import create_app
from app.models import db as _db
from app.models.audit import AuditLog
from app.models.auth import Profile, User
from app.models.project import ProjectMember
from app.models.support import Department, SupportTicket
from app.models.task import Task
from app.repositories import get_backend
from app.repositories.resilience import backend_call
from app.repositories.sql import SqlRepository
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password

DEFAULT_PASSWORD = "secret123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


def _make_user(email, *, role="user", full_name=None, password=DEFAULT_PASSWORD, with_profile=True):
    user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        display_name=full_name or email.split("@")[0].title(),
        status="active",
    )
    _db.session.add(user)
    _db.session.flush()
    if with_profile:
        _db.session.add(Profile(user_id=user.id, full_name=user.display_name, global_role=role))
    _db.session.commit()
    return user


def _add_member(project_id, user_id, role):
    now = datetime.now(timezone.utc)
    member = ProjectMember(
        project_id=project_id, user_id=user_id, role=role, invited_at=now, joined_at=now,
    )
    _db.session.add(member)
    _db.session.commit()
    return member


def _make_task(project_id, *, title="Task", status="pending", floor_position=None, **fields):
    if floor_position is None:
        floor_position = (
            _db.session.query(_db.func.max(Task.floor_position))
            .filter(Task.project_id == project_id)
            .scalar() or 0
        ) + 1
    task = Task(
        project_id=project_id, title=title, status=status,
        floor_position=floor_position, version=1, **fields,
    )
    _db.session.add(task)
    _db.session.commit()
    return task


def _make_ticket(submitter_id, *, subject="Cannot upload files", status="open", priority="medium", **fields):
    fields.setdefault("description", "The upload button does nothing.")
    ticket = SupportTicket(
        subject=subject, status=status, priority=priority, submitter_id=submitter_id, **fields,
    )
    _db.session.add(ticket)
    _db.session.commit()
    return ticket


def _make_department(name="Technical", description=None):
    dept = Department(name=name, description=description)
    _db.session.add(dept)
    _db.session.commit()
    return dept


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def add_member():
    return _add_member


@pytest.fixture()
def make_task():
    return _make_task


@pytest.fixture()
def make_ticket():
    return _make_ticket


@pytest.fixture()
def make_department():
    return _make_department


@pytest.fixture()
def auth_headers():
    """Return a function building an Authorization header for a user."""

    def _headers(user, acting_role=None):
        role = user.profile.global_role if user.profile else "user"
        token = generate_access_token(user.id, role, acting_role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def owner():
    return _make_user("owner@example.com", full_name="Olive Owner")


@pytest.fixture()
def operator():
    """A persisted super_admin (the privileged support operator)."""
    return _make_user("ops@example.com", role="super_admin", full_name="Sam Operator")


@pytest.fixture()
def project(owner):
    """A project owned by ``owner`` created through the service (owner membership included)."""
    from app.services.project_service import create_project
    return create_project(owner.id, {"name": "Website Redesign"})


class _UnreachableAuditRepository(SqlRepository):
    """Audit repository whose every insert loses the database connection."""

    def __init__(self):
        super().__init__(AuditLog)
        self.attempts = 0

    @backend_call
    def insert(self, record):
        self.attempts += 1
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("server closed the connection"))


@pytest.fixture()
def audit_outage(monkeypatch):
    repo = _UnreachableAuditRepository()
    monkeypatch.setattr(get_backend(), "audit", repo)
    return repo
