"""
Elevator Workspace
Support Blueprint — departments, tickets, message threads and analytics.

Endpoints:
    GET    /api/v1/support/departments                     — Departments by name
    GET    /api/v1/support/tickets                         — Visible tickets
           ?status=&priority=&department_id=&search=&view=all|assigned|unassigned
    POST   /api/v1/support/tickets                         — File a ticket
    GET    /api/v1/support/tickets/<id>                    — Detail
    POST   /api/v1/support/tickets/<id>/assign             — Operator claims the ticket
    PATCH  /api/v1/support/tickets/<id>                    — Operator status/priority/department
    GET    /api/v1/support/tickets/<id>/messages           — Thread
    POST   /api/v1/support/tickets/<id>/messages           — Reply
    GET    /api/v1/support/stats                           — Status/priority counts
    GET    /api/v1/support/analytics                       — Trends, departments, SLA (operator)

The ticket listing goes through the app ListRefresher: a failed backend read
answers 200 with an empty list.
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import require_login, require_privileged
from app.services import ticket_service
from app.services.refresh import get_refresher
from app.utils.errors import E, api_error

support_bp = Blueprint("support_bp", __name__, url_prefix="/api/v1/support")


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


@support_bp.route("/departments", methods=["GET"])
@require_login
def list_departments():
    return jsonify(ticket_service.list_departments()), 200


@support_bp.route("/tickets", methods=["GET"])
@require_login
def list_tickets():
    tickets = get_refresher().refresh_tickets(
        g.role_context,
        status=request.args.get("status") or None,
        priority=request.args.get("priority") or None,
        department_id=request.args.get("department_id", type=int),
        search=request.args.get("search") or None,
        view=request.args.get("view") or "all",
    )
    return jsonify(tickets), 200


@support_bp.route("/tickets", methods=["POST"])
@require_login
def create_ticket():
    """Body: { "subject": "...", "description": "...", "priority": "high", "department_id": 2 }"""
    data = _body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    return jsonify(ticket_service.create_ticket(g.role_context, data)), 201


@support_bp.route("/tickets/<int:ticket_id>", methods=["GET"])
@require_login
def get_ticket(ticket_id):
    return jsonify(ticket_service.get_ticket(ticket_id, g.role_context)), 200


@support_bp.route("/tickets/<int:ticket_id>/assign", methods=["POST"])
@require_privileged
def assign_ticket(ticket_id):
    return jsonify(ticket_service.assign_to_self(ticket_id, g.role_context)), 200


@support_bp.route("/tickets/<int:ticket_id>", methods=["PATCH"])
@require_privileged
def admin_update(ticket_id):
    """Body: any of { "status", "priority", "department_id" } (department_id null clears it)."""
    data = _body()
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "status, priority or department_id is required")
    kwargs = {"status": data.get("status"), "priority": data.get("priority")}
    if "department_id" in data:
        kwargs["department_id"] = data["department_id"]
    return jsonify(ticket_service.admin_update(ticket_id, g.role_context, **kwargs)), 200


@support_bp.route("/tickets/<int:ticket_id>/messages", methods=["GET"])
@require_login
def list_messages(ticket_id):
    return jsonify(ticket_service.list_messages(ticket_id, g.role_context)), 200


@support_bp.route("/tickets/<int:ticket_id>/messages", methods=["POST"])
@require_login
def post_message(ticket_id):
    data = _body() or {}
    return jsonify(ticket_service.post_message(ticket_id, g.role_context, data.get("content"))), 201


@support_bp.route("/stats", methods=["GET"])
@require_login
def stats():
    return jsonify(ticket_service.ticket_stats(g.role_context)), 200


@support_bp.route("/analytics", methods=["GET"])
@require_privileged
def analytics():
    return jsonify(ticket_service.ticket_analytics(g.role_context)), 200
