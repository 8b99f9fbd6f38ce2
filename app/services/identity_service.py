"""
Identity Service — current principal, cached profile, and profile mutations.

``IdentityProvider`` is the client-side view of auth:

    loading ──resolve()/sign_in()/sign_up()──▶ authenticated
       │                                           │
       └───────resolve() without session──▶ anonymous ◀──sign_out()

The module-level functions (``load_profile``, ``update_profile``,
``validate_password``) are what the HTTP layer calls for an already
authenticated request.
"""

import logging

from flask import current_app

from app.core.exceptions import AuthError, NetworkError, NotFoundError, ValidationError
from app.repositories import get_backend

logger = logging.getLogger(__name__)

LOADING = "loading"
AUTHENTICATED = "authenticated"
ANONYMOUS = "anonymous"

ENTRY_PATH = "/login"

UNSET = object()


# ═════════════════════════════════════════════════════════════════════════════
# Profile operations
# ═════════════════════════════════════════════════════════════════════════════

def load_profile(user_id: int, backend=None):
    """Return the Profile for ``user_id``, provisioning an empty one if missing."""
    backend = backend or get_backend()
    rows = backend.profiles.select({"user_id": user_id}, limit=1)
    if rows:
        return rows[0]

    user = backend.users.get(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    logger.info("Provisioning missing profile", extra={"user_id": user_id})
    return backend.profiles.insert({
        "user_id": user_id,
        "full_name": user.display_name,
        "global_role": "user",
        "timezone": user.timezone,
    })


def update_profile(user_id: int, full_name, timezone=UNSET, backend=None):
    """Persist a new display name and, when given, a timezone.

    ``timezone`` left as UNSET keeps the stored value; ``None`` clears it.

    Raises:
        ValidationError: full_name is empty after trimming. Nothing is written.
    """
    name = (full_name or "").strip()
    if not name:
        raise ValidationError("Full name is required", details={"full_name": "must not be empty"})

    backend = backend or get_backend()
    profile = load_profile(user_id, backend)

    patch = {"full_name": name}
    user_patch = {"display_name": name}
    if timezone is not UNSET:
        patch["timezone"] = timezone
        user_patch["timezone"] = timezone

    backend.profiles.update({"id": profile.id}, patch)
    backend.users.update({"id": user_id}, user_patch)
    return load_profile(user_id, backend)


def validate_password(new_password: str) -> None:
    minimum = int(current_app.config.get("MIN_PASSWORD_LENGTH", 6))
    if not new_password or len(new_password) < minimum:
        raise ValidationError(
            f"Password must be at least {minimum} characters",
            details={"password": f"min length {minimum}"},
        )


# ═════════════════════════════════════════════════════════════════════════════
# Client-side provider
# ═════════════════════════════════════════════════════════════════════════════

class IdentityProvider:
    """Holds session + profile for one client and drives the auth state machine."""

    def __init__(self, auth_backend, backend=None):
        self.auth = auth_backend
        self._backend = backend or get_backend()
        self.state = LOADING
        self.session = None
        self.profile = None
        self.redirect_to = None

    @property
    def user_id(self):
        return self.session.user_id if self.session else None

    @property
    def is_authenticated(self) -> bool:
        return self.state == AUTHENTICATED

    def _establish(self, session):
        self.session = session
        self.profile = load_profile(session.user_id, self._backend)
        self.state = AUTHENTICATED
        self.redirect_to = None

    def _clear(self):
        self.session = None
        self.profile = None
        self.state = ANONYMOUS

    def resolve(self) -> str:
        """Leave ``loading`` based on whatever session the auth backend holds."""
        session = self.auth.get_session()
        if session is None:
            self._clear()
        else:
            self._establish(session)
        return self.state

    def sign_in(self, email: str, password: str):
        session = self.auth.sign_in_with_password(email, password)
        self._establish(session)
        return session

    def sign_up(self, email: str, password: str, full_name: str | None = None):
        session = self.auth.sign_up(email, password, full_name=full_name)
        self._establish(session)
        return session

    def sign_out(self) -> None:
        """Drop local session state; a failing remote sign-out is logged, never fatal."""
        try:
            self.auth.sign_out()
        except (NetworkError, AuthError) as exc:
            logger.warning("Remote sign-out failed; local session cleared anyway: %s", exc)
        finally:
            self._clear()
            self.redirect_to = ENTRY_PATH

    def update_profile(self, full_name, timezone=UNSET):
        if not self.is_authenticated:
            raise AuthError()
        self.profile = update_profile(self.user_id, full_name, timezone, backend=self._backend)
        return self.profile

    def update_password(self, new_password: str) -> None:
        if not self.is_authenticated:
            raise AuthError()
        validate_password(new_password)
        self.auth.update_user(password=new_password)

    def refresh_profile(self):
        if self.session is None:
            return None
        self.profile = load_profile(self.user_id, self._backend)
        return self.profile
