"""
Auth Blueprint — sign-in, sessions, profile and the assumed-role switch.

Endpoints:
  POST /api/v1/auth/sign-up       — Email + password (+ full_name) → JWT pair
  POST /api/v1/auth/sign-in       — Email + password → JWT pair
  POST /api/v1/auth/refresh       — Refresh token → rotated JWT pair
  POST /api/v1/auth/sign-out      — Revoke the refresh token; always succeeds
  GET  /api/v1/auth/me            — Current user, profile and role context
  PUT  /api/v1/auth/profile       — Update full name / timezone
  PUT  /api/v1/auth/password      — Set a new password
  POST /api/v1/auth/assume-role   — super_admin previews the app as another role
  GET  /api/v1/auth/navigation    — Navigation entries for the effective role
"""

from flask import Blueprint, g, jsonify, request

from app.repositories import get_backend
from app.repositories.auth_backend import LocalAuthBackend, SessionInfo
from app.middleware.permission_required import require_login
from app.services.identity_service import UNSET, IdentityProvider, update_profile
from app.services.jwt_service import generate_access_token
from app.services.roles import assume_role, can_access_admin_panel, navigation_items
from app.utils.errors import E, api_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


def _auth_backend(session=None):
    return LocalAuthBackend(
        get_backend(),
        session,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", ""),
    )


def _signed_in_response(provider, status=200):
    body = provider.session.to_dict()
    body["user"] = get_backend().users.get(provider.user_id).to_dict()
    body["profile"] = provider.profile.to_dict()
    return jsonify(body), status


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    return data, email, password


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/sign-up
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/sign-up", methods=["POST"])
def sign_up():
    """
    Register a principal and sign them in.

    Body: { "email": "...", "password": "...", "full_name": "..." }
    """
    data, email, password = _credentials()
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    provider = IdentityProvider(_auth_backend())
    provider.sign_up(email, password, full_name=data.get("full_name"))
    return _signed_in_response(provider, 201)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/sign-in
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/sign-in", methods=["POST"])
def sign_in():
    """
    Authenticate with email + password, return JWT pair.

    Body: { "email": "...", "password": "..." }
    """
    _, email, password = _credentials()
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    provider = IdentityProvider(_auth_backend())
    provider.sign_in(email, password)
    return _signed_in_response(provider)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """Body: { "refresh_token": "..." }"""
    data = request.get_json(silent=True) or {}
    token = data.get("refresh_token", "")
    if not token:
        return api_error(E.VALIDATION_REQUIRED, "refresh_token is required")

    session = _auth_backend().refresh(token)
    return jsonify(session.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/sign-out
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/sign-out", methods=["POST"])
def sign_out():
    """
    Revoke the given refresh token. Local state is gone regardless of the
    backend outcome, so this always answers 200 with the entry path.

    Body: { "refresh_token": "..." }
    """
    data = request.get_json(silent=True) or {}
    session = None
    if data.get("refresh_token"):
        session = SessionInfo(
            user_id=g.jwt_user_id,
            email="",
            access_token="",
            refresh_token=data["refresh_token"],
            expires_in=0,
        )
    provider = IdentityProvider(_auth_backend(session))
    provider.sign_out()
    return jsonify({"message": "Signed out", "redirect_to": provider.redirect_to}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_login
def me():
    ctx = g.role_context
    user = get_backend().users.get(ctx.user_id)
    return jsonify({
        "user": user.to_dict() if user else None,
        "profile": g.profile.to_dict(),
        "role_context": ctx.to_dict(),
        "can_access_admin_panel": can_access_admin_panel(ctx.effective_role),
    }), 200


# ═══════════════════════════════════════════════════════════════
# PUT /api/v1/auth/profile
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/profile", methods=["PUT"])
@require_login
def profile():
    """Body: { "full_name": "...", "timezone": "Europe/Istanbul" | null }"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    saved = update_profile(g.jwt_user_id, data.get("full_name"), data.get("timezone", UNSET))
    return jsonify(saved.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# PUT /api/v1/auth/password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/password", methods=["PUT"])
@require_login
def change_password():
    """Body: { "new_password": "..." }"""
    data = request.get_json(silent=True) or {}
    new_pw = data.get("new_password", "")
    if not new_pw:
        return api_error(E.VALIDATION_REQUIRED, "new_password is required")

    session = SessionInfo(
        user_id=g.jwt_user_id, email="", access_token="", refresh_token="", expires_in=0,
    )
    provider = IdentityProvider(_auth_backend(session))
    provider.resolve()
    provider.update_password(new_pw)
    return jsonify({"message": "Password changed successfully"}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/assume-role
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/assume-role", methods=["POST"])
@require_login
def assume():
    """
    Issue an access token acting as ``role`` (null drops back to the persisted role).
    Only a persisted super_admin may assume; every assumption is audited.

    Body: { "role": "developer" }
    """
    data = request.get_json(silent=True) or {}
    ctx = g.role_context
    new_ctx = assume_role(ctx.user_id, ctx.persisted_role, data.get("role"))
    token = generate_access_token(new_ctx.user_id, new_ctx.persisted_role, new_ctx.acting_role)
    return jsonify({"access_token": token, "role_context": new_ctx.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/navigation
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/navigation", methods=["GET"])
@require_login
def navigation():
    return jsonify(navigation_items(g.role_context.effective_role)), 200
