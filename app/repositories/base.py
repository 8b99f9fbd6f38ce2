"""
Abstract backend interface.

The services only ever talk to these two interfaces. ``app.repositories.sql``
implements them on Flask-SQLAlchemy; any other store (a hosted REST backend,
an in-memory fake) plugs in by implementing the same methods.

Contract every implementation honours:
  - every call may fail and raises ``NetworkError`` when it does
  - each write is its own unit; there is no transaction spanning entities
  - ``update``/``delete`` return the number of affected records so callers can
    build conditional writes (``filter_equals`` with ``None`` matches NULL)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class Repository(ABC):
    """Per-entity CRUD surface."""

    resource = "record"

    @abstractmethod
    def select(self, filter_equals=None, *, order_by=None, limit=None, search=None) -> list:
        """Return records matching every ``filter_equals`` pair.

        ``order_by`` is a sequence of field names, ``-name`` for descending.
        ``search`` is an optional ``(fields, text)`` pair matched
        case-insensitively against any of the fields.
        """

    @abstractmethod
    def get(self, record_id):
        """Return one record by primary key, or None."""

    @abstractmethod
    def insert(self, record: dict):
        """Insert and return the stored record."""

    @abstractmethod
    def update(self, filter_equals: dict, patch: dict) -> int:
        """Apply ``patch`` to matching records; return how many changed."""

    @abstractmethod
    def delete(self, filter_equals: dict) -> int:
        """Delete matching records; return how many were removed."""

    @abstractmethod
    def max_value(self, field: str, filter_equals=None):
        """Largest value of ``field`` among matching records, or None."""

    @abstractmethod
    def count(self, filter_equals=None) -> int:
        """Number of matching records."""


class AuthBackend(ABC):
    """Identity sub-interface: credentials, sessions, auth-state events."""

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str, **context):
        """Return a session; raise AuthError on bad credentials."""

    @abstractmethod
    def sign_up(self, email: str, password: str, *, full_name: str | None = None, **context):
        """Create the principal and return a session; raise AuthError on rejection."""

    @abstractmethod
    def sign_out(self) -> None:
        """End the current session. Local session state is dropped even if this raises."""

    @abstractmethod
    def update_user(self, *, password: str | None = None) -> None:
        """Change credentials of the signed-in principal."""

    @abstractmethod
    def get_session(self):
        """Return the current session, or None."""

    @abstractmethod
    def on_auth_state_change(self, callback):
        """Register ``callback(event, session)``; return an unsubscribe callable."""


@dataclass
class Backend:
    """One repository per entity."""

    users: Repository
    profiles: Repository
    sessions: Repository
    projects: Repository
    members: Repository
    tasks: Repository
    comments: Repository
    departments: Repository
    tickets: Repository
    messages: Repository
    audit: Repository
