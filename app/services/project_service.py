"""
Project Service — project CRUD and progress roll-up.

Creating a project takes two backend writes (project row, owner membership).
The backend offers no cross-entity transaction, so a failed membership write
deletes the just-created project row before the error propagates.
"""

import logging
from decimal import Decimal, InvalidOperation

from app.core.exceptions import NetworkError, NotFoundError, ValidationError
from app.models.project import PROJECT_PRIORITIES, PROJECT_STATUSES
from app.models.task import DONE_STATUSES
from app.repositories import get_backend
from app.services.membership_service import require_member
from app.services.roles import EDIT_PROJECT, require_capability
from app.utils.helpers import parse_date, utcnow

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("name", "description", "status", "priority", "progress", "due_date", "budget", "tags")


def _clean_fields(data: dict, *, creating: bool) -> dict:
    """Validate and normalise project fields; only keys present in ``data`` are returned."""
    out = {}
    errors = {}

    if "name" in data or creating:
        name = (data.get("name") or "").strip()
        if not name:
            errors["name"] = "must not be empty"
        elif len(name) > 200:
            errors["name"] = "max 200 characters"
        out["name"] = name

    if "description" in data:
        out["description"] = (data.get("description") or "").strip() or None

    if "status" in data:
        if data["status"] not in PROJECT_STATUSES:
            errors["status"] = f"must be one of {', '.join(PROJECT_STATUSES)}"
        out["status"] = data["status"]

    if "priority" in data:
        if data["priority"] not in PROJECT_PRIORITIES:
            errors["priority"] = f"must be one of {', '.join(PROJECT_PRIORITIES)}"
        out["priority"] = data["priority"]

    if "progress" in data:
        progress = data["progress"]
        if isinstance(progress, bool) or not isinstance(progress, int) or not 0 <= progress <= 100:
            errors["progress"] = "must be an integer between 0 and 100"
        out["progress"] = progress

    if "due_date" in data:
        due = parse_date(data["due_date"])
        if data["due_date"] and due is None:
            errors["due_date"] = "must be an ISO date"
        out["due_date"] = due

    if "budget" in data:
        raw = data["budget"]
        if raw is None or raw == "":
            out["budget"] = None
        else:
            try:
                budget = Decimal(str(raw))
            except InvalidOperation:
                budget = None
            if budget is None or budget < 0:
                errors["budget"] = "must be a non-negative number"
            out["budget"] = budget

    if "tags" in data:
        tags = data["tags"] or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            errors["tags"] = "must be a list of strings"
        else:
            seen = []
            for tag in (t.strip() for t in tags):
                if tag and tag not in seen:
                    seen.append(tag)
            out["tags"] = seen

    if errors:
        raise ValidationError("Invalid project data", details=errors)
    return out


def create_project(owner_id: int, data: dict) -> dict:
    """Create a project and make ``owner_id`` its owner member."""
    fields = _clean_fields(data, creating=True)
    fields.setdefault("status", "active")
    fields.setdefault("priority", "medium")
    fields["progress"] = 0
    fields["owner_id"] = owner_id

    backend = get_backend()
    project = backend.projects.insert(fields)
    project_id = project.id
    now = utcnow()
    try:
        backend.members.insert({
            "project_id": project_id,
            "user_id": owner_id,
            "role": "owner",
            "invited_by": owner_id,
            "invited_at": now,
            "joined_at": now,
        })
    except NetworkError:
        logger.error("Owner membership write failed; removing project %s", project_id)
        backend.projects.delete({"id": project_id})
        raise

    logger.info("Project created", extra={"project_id": project_id, "user_id": owner_id})
    result = backend.projects.get(project_id).to_dict()
    result["my_role"] = "owner"
    return result


def list_projects(user_id: int) -> list[dict]:
    """Projects the user is a member of, newest first, each with the caller's role."""
    backend = get_backend()
    memberships = backend.members.select({"user_id": user_id})
    if not memberships:
        return []
    roles = {m.project_id: m.role for m in memberships}
    projects = backend.projects.select({"id": list(roles)}, order_by=["-created_at", "-id"])
    out = []
    for project in projects:
        d = project.to_dict()
        d["my_role"] = roles.get(project.id)
        out.append(d)
    return out


def get_project(project_id: int, user_id: int) -> dict:
    backend = get_backend()
    role = require_member(project_id, user_id, backend)
    d = backend.projects.get(project_id).to_dict()
    d["my_role"] = role
    return d


def update_project(project_id: int, actor_id: int, data: dict) -> dict:
    backend = get_backend()
    role = require_member(project_id, actor_id, backend)
    require_capability(role, EDIT_PROJECT)

    patch = _clean_fields({k: v for k, v in data.items() if k in _EDITABLE_FIELDS}, creating=False)
    if patch:
        patch["updated_at"] = utcnow()
        backend.projects.update({"id": project_id}, patch)
    d = backend.projects.get(project_id).to_dict()
    d["my_role"] = role
    return d


def delete_project(project_id: int, actor_id: int) -> None:
    backend = get_backend()
    role = require_member(project_id, actor_id, backend)
    require_capability(role, EDIT_PROJECT)
    backend.projects.delete({"id": project_id})
    logger.info("Project deleted", extra={"project_id": project_id, "user_id": actor_id})


def recompute_progress(project_id: int) -> int:
    """Set progress to the rounded share of complete tasks (0 without tasks).

    Approved tasks still await their final ``complete`` step and do not count.
    """
    backend = get_backend()
    if backend.projects.get(project_id) is None:
        raise NotFoundError("Project", project_id)
    total = backend.tasks.count({"project_id": project_id})
    done = backend.tasks.count({"project_id": project_id, "status": list(DONE_STATUSES)}) if total else 0
    progress = round(done / total * 100) if total else 0
    backend.projects.update({"id": project_id}, {"progress": progress, "updated_at": utcnow()})
    return progress
