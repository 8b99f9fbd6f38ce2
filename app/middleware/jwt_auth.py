"""
JWT Auth Middleware — parses the Bearer token and builds the request's RoleContext.

Sets, for every /api/v1/ request:
    g.jwt_user_id    int or None
    g.jwt_error      why a presented token was rejected ("expired" / "invalid"), else None
    g.profile        the caller's Profile (auto-provisioned) or None
    g.role_context   RoleContext or None

The persisted global role is always re-read from the profile, never trusted
from the token. An ``acting_role`` claim (issued by POST /auth/assume-role,
which writes the audit record) is honoured only while the persisted role is
still ``super_admin``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.identity_service import load_profile
from app.services.jwt_service import decode_access_token
from app.services.roles import ASSUMABLE_ROLES, SUPER_ADMIN, RoleContext

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/sign-in",
    "/api/v1/auth/sign-up",
    "/api/v1/auth/refresh",
    "/api/v1/health",
    "/static/",
)


def build_role_context(user_id: int, persisted_role: str, acting_role: str | None) -> RoleContext:
    if acting_role and (persisted_role != SUPER_ADMIN or acting_role not in ASSUMABLE_ROLES):
        logger.warning(
            "Ignoring acting role %r for persisted role %r", acting_role, persisted_role,
            extra={"user_id": user_id},
        )
        acting_role = None
    return RoleContext(user_id=user_id, persisted_role=persisted_role, acting_role=acting_role)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_error = None
        g.profile = None
        g.role_context = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "expired"
            return
        except pyjwt.InvalidTokenError:
            g.jwt_error = "invalid"
            return

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            g.jwt_error = "invalid"
            return

        profile = load_profile(user_id)
        g.jwt_user_id = user_id
        g.profile = profile
        g.role_context = build_role_context(user_id, profile.global_role, payload.get("acting_role"))
