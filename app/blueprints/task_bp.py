"""
Elevator Workspace
Task Blueprint — the task stack of a project, reviews and comments.

Endpoints:
    GET    /api/v1/projects/<pid>/tasks                 — Stack, top floor first
    POST   /api/v1/projects/<pid>/tasks                 — Create on the next floor
    GET    /api/v1/tasks/<id>                           — Detail
    PUT    /api/v1/tasks/<id>                           — Edit details
    PATCH  /api/v1/tasks/<id>/status                    — Manual status change
    POST   /api/v1/tasks/<id>/approve                   — Review: approve
    POST   /api/v1/tasks/<id>/request-revisions         — Review: send back with comments
    GET    /api/v1/tasks/<id>/comments                  — Thread, oldest first
    POST   /api/v1/tasks/<id>/comments                  — Add comment
    PUT    /api/v1/comments/<id>                        — Edit own comment
    DELETE /api/v1/comments/<id>                        — Delete own comment

Writes accept an optional ``version`` in the body: the task version the
client last saw. A mismatch answers 409.

The stack listing goes through the app ListRefresher: a failed backend read
answers 200 with an empty list.
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import require_login
from app.services import task_service
from app.services.refresh import get_refresher
from app.utils.errors import E, api_error

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _expected_version(data):
    version = data.get("version")
    if version is None or (isinstance(version, int) and not isinstance(version, bool)):
        return version, None
    return None, api_error(E.VALIDATION_INVALID, "version must be an integer", status=400)


@task_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
@require_login
def list_tasks(project_id):
    return jsonify(get_refresher().refresh_tasks(project_id, g.jwt_user_id)), 200


@task_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
@require_login
def create_task(project_id):
    data = _body()
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    return jsonify(task_service.create_task(project_id, g.jwt_user_id, data)), 201


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_login
def get_task(task_id):
    return jsonify(task_service.get_task(task_id, g.jwt_user_id)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PUT"])
@require_login
def update_task(task_id):
    data = _body()
    version, err = _expected_version(data)
    if err:
        return err
    task = task_service.update_task(task_id, g.jwt_user_id, data, expected_version=version)
    return jsonify(task), 200


@task_bp.route("/tasks/<int:task_id>/status", methods=["PATCH"])
@require_login
def change_status(task_id):
    """Body: { "status": "in-progress", "version": 3 }"""
    data = _body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    version, err = _expected_version(data)
    if err:
        return err
    task = task_service.change_status(task_id, g.jwt_user_id, data["status"], expected_version=version)
    return jsonify(task), 200


@task_bp.route("/tasks/<int:task_id>/approve", methods=["POST"])
@require_login
def approve_task(task_id):
    version, err = _expected_version(_body())
    if err:
        return err
    return jsonify(task_service.approve_task(task_id, g.jwt_user_id, expected_version=version)), 200


@task_bp.route("/tasks/<int:task_id>/request-revisions", methods=["POST"])
@require_login
def request_revisions(task_id):
    """Body: { "comments": "What needs to change", "version": 3 }"""
    data = _body()
    version, err = _expected_version(data)
    if err:
        return err
    task = task_service.request_revisions(
        task_id, g.jwt_user_id, data.get("comments"), expected_version=version,
    )
    return jsonify(task), 200


# ── Comments ─────────────────────────────────────────────────────────────────

@task_bp.route("/tasks/<int:task_id>/comments", methods=["GET"])
@require_login
def list_comments(task_id):
    return jsonify(task_service.list_comments(task_id, g.jwt_user_id)), 200


@task_bp.route("/tasks/<int:task_id>/comments", methods=["POST"])
@require_login
def add_comment(task_id):
    return jsonify(task_service.add_comment(task_id, g.jwt_user_id, _body().get("content"))), 201


@task_bp.route("/comments/<int:comment_id>", methods=["PUT"])
@require_login
def edit_comment(comment_id):
    return jsonify(task_service.edit_comment(comment_id, g.jwt_user_id, _body().get("content"))), 200


@task_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
@require_login
def delete_comment(comment_id):
    task_service.delete_comment(comment_id, g.jwt_user_id)
    return jsonify({"message": "Comment deleted"}), 200
