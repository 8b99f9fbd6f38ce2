"""
Local auth backend — bcrypt credentials + PyJWT token pairs.

One instance represents one client's view of auth: it holds the current
session (if any) and the auth-state listeners registered by that client.
Refresh-token sessions are persisted through the ``sessions`` repository as
SHA-256 hashes.

Events emitted to listeners: ``SIGNED_IN``, ``SIGNED_OUT``, ``TOKEN_REFRESHED``,
``USER_UPDATED``.
"""

import logging
from dataclasses import dataclass

import jwt as pyjwt
from email_validator import EmailNotValidError, validate_email
from flask import current_app

from app.core.exceptions import AuthError, ConflictError
from app.repositories.base import AuthBackend
from app.services.jwt_service import decode_refresh_token, generate_token_pair, hash_token
from app.utils.crypto import hash_password, verify_password
from app.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SessionInfo:
    user_id: int
    email: str
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self):
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }


def normalize_email(email: str) -> str:
    """Validate syntax and return the lower-cased, trimmed address."""
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise AuthError(f"Invalid email: {e}") from e
    return valid.normalized.lower()


def min_password_length() -> int:
    return int(current_app.config.get("MIN_PASSWORD_LENGTH", 6))


class LocalAuthBackend(AuthBackend):
    def __init__(self, backend, session: SessionInfo | None = None, *, ip_address=None, user_agent=None):
        self._backend = backend
        self._session = session
        self._listeners = []
        self._ip_address = ip_address
        self._user_agent = (user_agent or "")[:500]

    # ── listeners ──────────────────────────────────────────────
    def on_auth_state_change(self, callback):
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, session):
        for callback in list(self._listeners):
            callback(event, session)

    # ── sessions ───────────────────────────────────────────────
    def _issue(self, user, role: str) -> SessionInfo:
        tokens = generate_token_pair(user.id, role)
        self._backend.sessions.insert({
            "user_id": user.id,
            "token_hash": tokens["token_hash"],
            "ip_address": self._ip_address,
            "user_agent": self._user_agent,
            "expires_at": tokens["expires_at"],
        })
        return SessionInfo(
            user_id=user.id,
            email=user.email,
            access_token=tokens["access_token"],
            refresh_token=tokens["refresh_token"],
            expires_in=tokens["expires_in"],
        )

    def _role_for(self, user_id: int) -> str:
        rows = self._backend.profiles.select({"user_id": user_id}, limit=1)
        return rows[0].global_role if rows else "user"

    def get_session(self):
        return self._session

    # ── credentials ────────────────────────────────────────────
    def sign_in_with_password(self, email, password, **context):
        try:
            email = normalize_email(email)
        except AuthError:
            raise AuthError("Invalid email or password") from None

        rows = self._backend.users.select({"email": email}, limit=1)
        user = rows[0] if rows else None
        if not user or not verify_password(password or "", user.password_hash):
            logger.info("Sign-in rejected", extra={"event_type": "auth_failed"})
            raise AuthError("Invalid email or password")
        if user.status != "active":
            raise AuthError(f"Account is {user.status}")

        self._backend.users.update({"id": user.id}, {"last_login_at": utcnow()})
        self._session = self._issue(user, self._role_for(user.id))
        self._emit("SIGNED_IN", self._session)
        return self._session

    def sign_up(self, email, password, *, full_name=None, **context):
        email = normalize_email(email)
        if not password or len(password) < min_password_length():
            raise AuthError(f"Password must be at least {min_password_length()} characters")
        if self._backend.users.count({"email": email}):
            raise AuthError("User already registered")

        name = (full_name or "").strip() or None
        try:
            user = self._backend.users.insert({
                "email": email,
                "password_hash": hash_password(password),
                "display_name": name,
            })
        except ConflictError:
            raise AuthError("User already registered") from None
        self._backend.profiles.insert({
            "user_id": user.id,
            "full_name": name,
            "global_role": "user",
        })
        logger.info("User signed up", extra={"event_type": "auth_sign_up"})
        self._session = self._issue(user, "user")
        self._emit("SIGNED_IN", self._session)
        return self._session

    def refresh(self, refresh_token: str) -> SessionInfo:
        """Rotate a refresh token: revoke the old session row and issue a new pair."""
        try:
            payload = decode_refresh_token(refresh_token)
        except pyjwt.ExpiredSignatureError:
            raise AuthError("Refresh token expired") from None
        except pyjwt.InvalidTokenError:
            raise AuthError("Invalid refresh token") from None

        user_id = int(payload["sub"])
        token_hash = hash_token(refresh_token)
        rows = self._backend.sessions.select(
            {"user_id": user_id, "token_hash": token_hash, "is_active": True}, limit=1,
        )
        if not rows or as_utc(rows[0].expires_at) < utcnow():
            raise AuthError("Session expired or revoked")

        self._backend.sessions.update(
            {"id": rows[0].id}, {"is_active": False, "last_used_at": utcnow()},
        )
        user = self._backend.users.get(user_id)
        if user is None or user.status != "active":
            raise AuthError("Account is not active")
        self._session = self._issue(user, self._role_for(user.id))
        self._emit("TOKEN_REFRESHED", self._session)
        return self._session

    def sign_out(self):
        session, self._session = self._session, None
        try:
            if session is not None:
                self._backend.sessions.update(
                    {"token_hash": hash_token(session.refresh_token), "is_active": True},
                    {"is_active": False},
                )
        finally:
            self._emit("SIGNED_OUT", None)

    def update_user(self, *, password=None):
        if self._session is None:
            raise AuthError()
        if password is not None:
            self._backend.users.update(
                {"id": self._session.user_id}, {"password_hash": hash_password(password)},
            )
        self._emit("USER_UPDATED", self._session)
