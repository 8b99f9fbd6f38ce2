"""
Ticket Service — the support desk workflow.

Any principal files tickets and follows their own threads. The privileged
operator (effective global role ``super_admin``) sees every ticket, claims
unassigned ones, routes them to departments and moves them through
TICKET_TRANSITIONS.

Claiming is a single conditional UPDATE on ``assigned_to_user_id IS NULL``,
so of two operators racing for one ticket exactly one wins and the other
gets AlreadyAssignedError.
"""

import logging

from flask import current_app

from app.core.exceptions import (
    AlreadyAssignedError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models.audit import write_audit
from app.models.support import (
    DEFAULT_DEPARTMENTS,
    RESOLVED_STATUSES,
    TICKET_PRIORITIES,
    TICKET_STATUSES,
    validate_ticket_transition,
)
from app.repositories import get_backend
from app.services.ticket_analytics import build_ticket_analytics
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

UNSET = object()

TICKET_VIEWS = ("all", "assigned", "unassigned")
_SEARCH_FIELDS = ("subject", "description")


def _require_privileged(ctx, action: str) -> None:
    if not ctx.is_privileged:
        raise PermissionDenied(action, role=ctx.effective_role)


def _visible_ticket(backend, ticket_id, ctx):
    """Fetch a ticket the caller may see; others' tickets look missing to non-operators."""
    ticket = backend.tickets.get(ticket_id)
    if ticket is None or (not ctx.is_privileged and ticket.submitter_id != ctx.user_id):
        raise NotFoundError("SupportTicket", ticket_id)
    return ticket


def _require_department(backend, department_id):
    if backend.departments.get(department_id) is None:
        raise ValidationError(
            "Unknown department", details={"department_id": f"department {department_id} does not exist"},
        )


def _check_choice(field: str, value, choices) -> None:
    if value not in choices:
        raise ValidationError(
            f"Invalid {field} '{value}'", details={field: f"must be one of {', '.join(choices)}"},
        )


# ═════════════════════════════════════════════════════════════════════════════
# Departments
# ═════════════════════════════════════════════════════════════════════════════

def list_departments() -> list[dict]:
    return [d.to_dict() for d in get_backend().departments.select(order_by=["name"])]


def seed_departments() -> int:
    """Create the default departments that do not exist yet; return how many were added."""
    backend = get_backend()
    existing = {d.name for d in backend.departments.select()}
    added = 0
    for name, description in DEFAULT_DEPARTMENTS:
        if name in existing:
            continue
        try:
            backend.departments.insert({"name": name, "description": description})
        except ConflictError:
            continue
        added += 1
    if added:
        logger.info("Seeded %d support departments", added)
    return added


# ═════════════════════════════════════════════════════════════════════════════
# Tickets
# ═════════════════════════════════════════════════════════════════════════════

def create_ticket(ctx, data: dict) -> dict:
    subject = (data.get("subject") or "").strip()
    description = (data.get("description") or "").strip()
    errors = {}
    if not subject:
        errors["subject"] = "must not be empty"
    elif len(subject) > 300:
        errors["subject"] = "max 300 characters"
    if not description:
        errors["description"] = "must not be empty"
    if errors:
        raise ValidationError("Invalid ticket data", details=errors)

    priority = data.get("priority") or "medium"
    _check_choice("priority", priority, TICKET_PRIORITIES)

    backend = get_backend()
    department_id = data.get("department_id")
    if department_id is not None:
        _require_department(backend, department_id)

    now = utcnow()
    ticket = backend.tickets.insert({
        "subject": subject,
        "description": description,
        "status": "open",
        "priority": priority,
        "department_id": department_id,
        "submitter_id": ctx.user_id,
        "created_at": now,
        "updated_at": now,
    })
    ticket_id = ticket.id
    logger.info("Ticket created", extra={"ticket_id": ticket_id, "user_id": ctx.user_id})
    return backend.tickets.get(ticket_id).to_dict()


def _ticket_filters(ctx, *, status=None, priority=None, department_id=None, view="all") -> dict:
    filters = {}
    if not ctx.is_privileged:
        filters["submitter_id"] = ctx.user_id
    if status:
        _check_choice("status", status, TICKET_STATUSES)
        filters["status"] = status
    if priority:
        _check_choice("priority", priority, TICKET_PRIORITIES)
        filters["priority"] = priority
    if department_id is not None:
        filters["department_id"] = department_id
    view = view or "all"
    _check_choice("view", view, TICKET_VIEWS)
    if view == "assigned":
        filters["assigned_to_user_id"] = ctx.user_id
    elif view == "unassigned":
        filters["assigned_to_user_id"] = None
    return filters


def list_tickets(ctx, *, status=None, priority=None, department_id=None, search=None, view="all") -> list[dict]:
    """Visible tickets, newest first. Non-operators only ever see their own."""
    filters = _ticket_filters(
        ctx, status=status, priority=priority, department_id=department_id, view=view,
    )
    rows = get_backend().tickets.select(
        filters, order_by=["-created_at", "-id"], search=(_SEARCH_FIELDS, search) if search else None,
    )
    return [t.to_dict() for t in rows]


def get_ticket(ticket_id: int, ctx) -> dict:
    return _visible_ticket(get_backend(), ticket_id, ctx).to_dict()


def assign_to_self(ticket_id: int, ctx) -> dict:
    """Claim an unassigned ticket; an ``open`` ticket moves to ``in_progress``."""
    _require_privileged(ctx, "assign_ticket")
    backend = get_backend()
    ticket = backend.tickets.get(ticket_id)
    if ticket is None:
        raise NotFoundError("SupportTicket", ticket_id)

    now = utcnow()
    claimed = backend.tickets.update(
        {"id": ticket_id, "assigned_to_user_id": None},
        {"assigned_to_user_id": ctx.user_id, "updated_at": now},
    )
    if not claimed:
        current = backend.tickets.get(ticket_id)
        if current is None:
            raise NotFoundError("SupportTicket", ticket_id)
        raise AlreadyAssignedError(ticket_id, current.assigned_to_user_id)

    moved = backend.tickets.update(
        {"id": ticket_id, "status": "open"}, {"status": "in_progress", "updated_at": now},
    )
    diff = {"assigned_to_user_id": {"old": None, "new": ctx.user_id}}
    if moved:
        diff["status"] = {"old": "open", "new": "in_progress"}
    write_audit(
        entity_type="ticket", entity_id=ticket_id, action="ticket.assign_to_self",
        actor_user_id=ctx.user_id, diff=diff,
    )
    logger.info("Ticket claimed", extra={"ticket_id": ticket_id, "user_id": ctx.user_id})
    return backend.tickets.get(ticket_id).to_dict()


def admin_update(ticket_id: int, ctx, *, status=None, priority=None, department_id=UNSET) -> dict:
    """Operator edit of status, priority and department.

    Routing an ``open`` ticket to a department starts work on it
    (``in_progress``) unless a different status is requested in the same call.
    Closing is allowed from any state.
    """
    _require_privileged(ctx, "admin_update_ticket")
    backend = get_backend()
    ticket = backend.tickets.get(ticket_id)
    if ticket is None:
        raise NotFoundError("SupportTicket", ticket_id)

    current = ticket.status
    old = {"status": current, "priority": ticket.priority, "department_id": ticket.department_id}
    patch = {}

    if priority is not None and priority != ticket.priority:
        _check_choice("priority", priority, TICKET_PRIORITIES)
        patch["priority"] = priority

    routed = False
    if department_id is not UNSET and department_id != ticket.department_id:
        if department_id is not None:
            _require_department(backend, department_id)
            routed = True
        patch["department_id"] = department_id

    target = current
    if status is not None:
        _check_choice("status", status, TICKET_STATUSES)
        target = status
    if routed and target == "open" and current == "open":
        target = "in_progress"

    if target != current:
        if target != "closed" and not validate_ticket_transition(current, target):
            raise InvalidTransitionError("ticket", ticket_id, current, target)
        patch["status"] = target
        if target in RESOLVED_STATUSES and current not in RESOLVED_STATUSES:
            patch["resolved_at"] = utcnow()
        elif target not in RESOLVED_STATUSES:
            patch["resolved_at"] = None

    if not patch:
        return ticket.to_dict()

    patch["updated_at"] = utcnow()
    if not backend.tickets.update({"id": ticket_id, "status": current}, patch):
        raise ConflictError(
            "SupportTicket", "status", current,
            message=f"Ticket {ticket_id} changed while it was being updated; reload and retry",
        )

    write_audit(
        entity_type="ticket", entity_id=ticket_id, action="ticket.admin_update",
        actor_user_id=ctx.user_id,
        diff={k: {"old": old[k], "new": patch[k]} for k in old if k in patch},
    )
    logger.info("Ticket updated by operator", extra={"ticket_id": ticket_id, "user_id": ctx.user_id})
    return backend.tickets.get(ticket_id).to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Messages
# ═════════════════════════════════════════════════════════════════════════════

def list_messages(ticket_id: int, ctx) -> list[dict]:
    backend = get_backend()
    _visible_ticket(backend, ticket_id, ctx)
    rows = backend.messages.select({"ticket_id": ticket_id}, order_by=["created_at", "id"])
    return [m.to_dict() for m in rows]


def post_message(ticket_id: int, ctx, content: str) -> dict:
    """Append to the thread. The first reply from anyone but the submitter stamps first_response_at."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty", details={"content": "must not be empty"})

    backend = get_backend()
    ticket = _visible_ticket(backend, ticket_id, ctx)
    is_response = ticket.submitter_id != ctx.user_id

    now = utcnow()
    message = backend.messages.insert({
        "ticket_id": ticket_id,
        "author_id": ctx.user_id,
        "content": text,
        "created_at": now,
    })
    result = message.to_dict()
    backend.tickets.update({"id": ticket_id}, {"updated_at": now})
    if is_response:
        backend.tickets.update({"id": ticket_id, "first_response_at": None}, {"first_response_at": now})
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Stats & analytics
# ═════════════════════════════════════════════════════════════════════════════

def ticket_stats(ctx) -> dict:
    rows = get_backend().tickets.select(_ticket_filters(ctx))
    by_status = {s: 0 for s in TICKET_STATUSES}
    by_priority = {p: 0 for p in TICKET_PRIORITIES}
    for t in rows:
        by_status[t.status] = by_status.get(t.status, 0) + 1
        by_priority[t.priority] = by_priority.get(t.priority, 0) + 1
    return {"total": len(rows), "by_status": by_status, "by_priority": by_priority}


def ticket_analytics(ctx, now=None) -> dict:
    _require_privileged(ctx, "view_ticket_analytics")
    backend = get_backend()
    return build_ticket_analytics(
        backend.tickets.select(),
        backend.departments.select(order_by=["name"]),
        now=now,
        resolution_targets=current_app.config.get("TICKET_SLA_RESOLUTION_HOURS"),
        first_response_targets=current_app.config.get("TICKET_SLA_FIRST_RESPONSE_HOURS"),
    )
