"""
Elevator Workspace
Project Blueprint — projects, membership and ownership.

Endpoints:
    Projects:
        GET    /api/v1/projects                                  — My projects (+ my_role)
        POST   /api/v1/projects                                  — Create (caller becomes owner)
        GET    /api/v1/projects/<id>                             — Detail
        PUT    /api/v1/projects/<id>                             — Update (edit_project)
        DELETE /api/v1/projects/<id>                             — Delete (edit_project)

    Members:
        GET    /api/v1/projects/<id>/members                     — List
        POST   /api/v1/projects/<id>/members                     — Invite by email
        DELETE /api/v1/projects/<id>/members/<user_id>           — Remove / leave
        GET    /api/v1/projects/<id>/capabilities                — Caller's role + capabilities
        POST   /api/v1/projects/<id>/transfer-ownership          — Hand over the owner role
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import require_login
from app.services import membership_service, project_service
from app.services.roles import capabilities_for
from app.utils.errors import E, api_error

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


# ── Projects ─────────────────────────────────────────────────────────────────

@project_bp.route("/projects", methods=["GET"])
@require_login
def list_projects():
    return jsonify(project_service.list_projects(g.jwt_user_id)), 200


@project_bp.route("/projects", methods=["POST"])
@require_login
def create_project():
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    return jsonify(project_service.create_project(g.jwt_user_id, data)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_login
def get_project(project_id):
    return jsonify(project_service.get_project(project_id, g.jwt_user_id)), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_login
def update_project(project_id):
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    return jsonify(project_service.update_project(project_id, g.jwt_user_id, data)), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_login
def delete_project(project_id):
    project_service.delete_project(project_id, g.jwt_user_id)
    return jsonify({"message": "Project deleted"}), 200


# ── Members ──────────────────────────────────────────────────────────────────

@project_bp.route("/projects/<int:project_id>/members", methods=["GET"])
@require_login
def list_members(project_id):
    return jsonify(membership_service.list_members(project_id, g.jwt_user_id)), 200


@project_bp.route("/projects/<int:project_id>/members", methods=["POST"])
@require_login
def invite_member(project_id):
    """Body: { "email": "...", "role": "developer" }"""
    data = _json_body()
    if data is None or not data.get("email"):
        return api_error(E.VALIDATION_REQUIRED, "email is required")
    member = membership_service.invite(
        project_id, g.jwt_user_id, data["email"], data.get("role") or "viewer",
    )
    return jsonify(member), 201


@project_bp.route("/projects/<int:project_id>/members/<int:user_id>", methods=["DELETE"])
@require_login
def remove_member(project_id, user_id):
    membership_service.remove_member(project_id, g.jwt_user_id, user_id)
    return jsonify({"message": "Member removed"}), 200


@project_bp.route("/projects/<int:project_id>/capabilities", methods=["GET"])
@require_login
def my_capabilities(project_id):
    role = membership_service.require_member(project_id, g.jwt_user_id)
    return jsonify({"role": role, "capabilities": sorted(capabilities_for(role))}), 200


@project_bp.route("/projects/<int:project_id>/transfer-ownership", methods=["POST"])
@require_login
def transfer_ownership(project_id):
    """Body: { "user_id": 12 }"""
    data = _json_body() or {}
    new_owner_id = data.get("user_id")
    if not isinstance(new_owner_id, int) or isinstance(new_owner_id, bool):
        return api_error(E.VALIDATION_REQUIRED, "user_id (integer) is required")
    project = membership_service.transfer_ownership(project_id, g.jwt_user_id, new_owner_id)
    return jsonify(project), 200
