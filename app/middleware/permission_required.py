"""
Route guards built on the request's RoleContext (set by ``jwt_auth``).

Usage:
    @bp.route("/tickets", methods=["GET"])
    @require_login
    def list_tickets():
        ctx = g.role_context
        ...

    @bp.route("/analytics", methods=["GET"])
    @require_privileged
    def analytics():
        ...

Project-scoped capability checks happen in the services, which read
PROJECT_ROLE_CAPABILITIES; these decorators only cover authentication and
the global privileged tier.
"""

import functools
import logging

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_TOKEN_MESSAGES = {
    "expired": "Access token expired",
    "invalid": "Invalid access token",
}


def require_login(f):
    """401 unless a valid access token identified the caller."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "role_context", None) is None:
            reason = getattr(g, "jwt_error", None)
            return api_error(E.UNAUTHORIZED, _TOKEN_MESSAGES.get(reason, "Authentication required"))
        return f(*args, **kwargs)
    return decorated


def require_privileged(f):
    """401 when anonymous, 403 unless the effective global role is super_admin."""
    @functools.wraps(f)
    @require_login
    def decorated(*args, **kwargs):
        ctx = g.role_context
        if not ctx.is_privileged:
            logger.warning(
                "Privileged endpoint %s denied", f.__name__,
                extra={"user_id": ctx.user_id, "acting_role": ctx.acting_role},
            )
            return api_error(E.FORBIDDEN, "Operator access required")
        return f(*args, **kwargs)
    return decorated
