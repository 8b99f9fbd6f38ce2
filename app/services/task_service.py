"""
Task Service — the floor-stacked task workflow and task comments.

Creation
    Requires ``create_task``. New tasks start ``pending`` on floor
    ``1 + max(floor_position)`` of their project (1 when empty). The
    (project_id, floor_position) unique constraint turns a concurrent
    creation into a ConflictError, and the insert is retried on the next floor.

Review
    ``approve_task`` / ``request_revisions`` require ``review_task`` and a task
    in ``ready-for-review``; they are the only way into ``approved`` and
    ``revisions-requested``.

Writes
    Every write bumps ``version`` and stamps ``updated_at`` through a single
    conditional UPDATE on the version the caller read. Callers may pass
    ``expected_version`` (the version their client last saw) to turn a lost
    update into a ConflictError.
"""

import logging

from app.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models.audit import write_audit
from app.models.task import (
    REVIEW_ONLY_STATUSES,
    TASK_PRIORITIES,
    TASK_STATUSES,
    validate_task_transition,
)
from app.repositories import get_backend
from app.services.membership_service import effective_project_role, require_member
from app.services.project_service import recompute_progress
from app.services.roles import (
    COMMENT,
    CREATE_TASK,
    REVIEW_TASK,
    can_see_deliverable_link,
    has_capability,
    require_capability,
)
from app.utils.helpers import parse_date, utcnow

logger = logging.getLogger(__name__)

_FLOOR_ATTEMPTS = 5


def _get_task(backend, task_id):
    task = backend.tasks.get(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _serialize(task, role) -> dict:
    return task.to_dict(include_deliverable=can_see_deliverable_link(role))


def _clean_fields(backend, project_id: int, data: dict, *, creating: bool) -> dict:
    out = {}
    errors = {}

    if "title" in data or creating:
        title = (data.get("title") or "").strip()
        if not title:
            errors["title"] = "must not be empty"
        out["title"] = title

    if "description" in data:
        out["description"] = (data.get("description") or "").strip() or None

    if "priority" in data:
        if data["priority"] not in TASK_PRIORITIES:
            errors["priority"] = f"must be one of {', '.join(TASK_PRIORITIES)}"
        out["priority"] = data["priority"]

    if "due_date" in data:
        due = parse_date(data["due_date"])
        if data["due_date"] and due is None:
            errors["due_date"] = "must be an ISO date"
        out["due_date"] = due

    if "deliverable_link" in data:
        link = (data.get("deliverable_link") or "").strip() or None
        if link and not link.startswith(("http://", "https://")):
            errors["deliverable_link"] = "must be an http(s) URL"
        out["deliverable_link"] = link

    if "completion_percentage" in data:
        pct = data["completion_percentage"]
        if isinstance(pct, bool) or not isinstance(pct, int) or not 0 <= pct <= 100:
            errors["completion_percentage"] = "must be an integer between 0 and 100"
        out["completion_percentage"] = pct

    if "assignee_id" in data:
        assignee_id = data["assignee_id"]
        if assignee_id is not None and not backend.members.count(
            {"project_id": project_id, "user_id": assignee_id}
        ):
            errors["assignee_id"] = "assignee must be a project member"
        out["assignee_id"] = assignee_id

    if errors:
        raise ValidationError("Invalid task data", details=errors)
    return out


def _write(backend, task, patch: dict, expected_version: int | None = None):
    """Apply ``patch`` only if the stored version still matches; return the fresh row."""
    task_id = task.id
    version = task.version if expected_version is None else expected_version
    patch = dict(patch, updated_at=utcnow(), version=version + 1)
    if not backend.tasks.update({"id": task_id, "version": version}, patch):
        raise ConflictError(
            "Task", "version", version,
            message=f"Task {task_id} was modified by someone else; reload and retry",
        )
    return backend.tasks.get(task_id)


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════

def create_task(project_id: int, actor_id: int, data: dict) -> dict:
    backend = get_backend()
    role = require_member(project_id, actor_id, backend)
    require_capability(role, CREATE_TASK)
    fields = _clean_fields(backend, project_id, data, creating=True)

    task = None
    for attempt in range(1, _FLOOR_ATTEMPTS + 1):
        floor = (backend.tasks.max_value("floor_position", {"project_id": project_id}) or 0) + 1
        try:
            task = backend.tasks.insert(dict(
                fields,
                project_id=project_id,
                status="pending",
                floor_position=floor,
                created_by=actor_id,
                version=1,
            ))
            break
        except ConflictError:
            if attempt == _FLOOR_ATTEMPTS:
                raise
            logger.info(
                "Floor %d taken concurrently, retrying", floor, extra={"project_id": project_id},
            )

    task_id = task.id
    recompute_progress(project_id)
    logger.info("Task created", extra={"project_id": project_id, "task_id": task_id})
    return _serialize(backend.tasks.get(task_id), role)


def list_tasks(project_id: int, user_id: int) -> list[dict]:
    """Tasks of a project, top floor (newest) first."""
    backend = get_backend()
    role = require_member(project_id, user_id, backend)
    rows = backend.tasks.select({"project_id": project_id}, order_by=["-floor_position"])
    return [_serialize(t, role) for t in rows]


def get_task(task_id: int, user_id: int) -> dict:
    backend = get_backend()
    task = _get_task(backend, task_id)
    role = require_member(task.project_id, user_id, backend)
    return _serialize(task, role)


def update_task(task_id: int, actor_id: int, data: dict, expected_version: int | None = None) -> dict:
    """Edit task details. Status and floor position are never touched here."""
    backend = get_backend()
    task = _get_task(backend, task_id)
    role = require_member(task.project_id, actor_id, backend)
    if not (has_capability(role, CREATE_TASK) or task.assignee_id == actor_id):
        raise PermissionDenied("update_task", role=role)

    data = {k: v for k, v in data.items() if k not in ("status", "floor_position", "project_id", "version")}
    patch = _clean_fields(backend, task.project_id, data, creating=False)
    if not patch:
        return _serialize(task, role)
    return _serialize(_write(backend, task, patch, expected_version), role)


def change_status(task_id: int, actor_id: int, new_status: str, expected_version: int | None = None) -> dict:
    """Manual status edit by the assignee or a task creator.

    Completing a task straight from ``ready-for-review`` is a review decision
    and needs ``review_task``.
    """
    if new_status not in TASK_STATUSES:
        raise ValidationError(
            f"Invalid status '{new_status}'", details={"status": f"must be one of {', '.join(TASK_STATUSES)}"},
        )
    backend = get_backend()
    task = _get_task(backend, task_id)
    role = require_member(task.project_id, actor_id, backend)
    current = task.status

    if new_status in REVIEW_ONLY_STATUSES:
        raise InvalidTransitionError("task", task_id, current, new_status, reason="use the review actions")
    if current == "ready-for-review" and new_status == "complete":
        require_capability(role, REVIEW_TASK)
    elif not (has_capability(role, CREATE_TASK) or task.assignee_id == actor_id):
        raise PermissionDenied("update_task_status", role=role)

    if new_status == current:
        return _serialize(task, role)
    if not validate_task_transition(current, new_status):
        raise InvalidTransitionError("task", task_id, current, new_status)

    project_id = task.project_id
    task = _write(backend, task, {"status": new_status}, expected_version)
    recompute_progress(project_id)
    logger.info(
        "Task status %s -> %s", current, new_status,
        extra={"project_id": project_id, "task_id": task_id},
    )
    return _serialize(task, role)


def _review_guard(backend, task_id: int, actor_id: int):
    task = _get_task(backend, task_id)
    role = effective_project_role(task.project_id, actor_id, backend)
    if role is None:
        raise NotFoundError("Task", task_id)
    require_capability(role, REVIEW_TASK)
    return task, role


def approve_task(task_id: int, actor_id: int, expected_version: int | None = None) -> dict:
    backend = get_backend()
    task, role = _review_guard(backend, task_id, actor_id)
    if task.status != "ready-for-review":
        raise InvalidTransitionError("task", task_id, task.status, "approved")

    project_id = task.project_id
    task = _write(backend, task, {"status": "approved", "review_comments": None}, expected_version)
    write_audit(
        entity_type="task", entity_id=task_id, action="task.approve",
        actor_user_id=actor_id, project_id=project_id,
        diff={"status": {"old": "ready-for-review", "new": "approved"}},
    )
    recompute_progress(project_id)
    return _serialize(backend.tasks.get(task_id), role)


def request_revisions(task_id: int, actor_id: int, comments: str, expected_version: int | None = None) -> dict:
    backend = get_backend()
    task, role = _review_guard(backend, task_id, actor_id)
    text = (comments or "").strip()
    if not text:
        raise ValidationError(
            "Review comments are required", details={"comments": "must not be empty"},
        )
    if task.status != "ready-for-review":
        raise InvalidTransitionError("task", task_id, task.status, "revisions-requested")

    project_id = task.project_id
    _write(backend, task, {"status": "revisions-requested", "review_comments": text}, expected_version)
    write_audit(
        entity_type="task", entity_id=task_id, action="task.request_revisions",
        actor_user_id=actor_id, project_id=project_id,
        diff={"status": {"old": "ready-for-review", "new": "revisions-requested"}},
    )
    return _serialize(backend.tasks.get(task_id), role)


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════

def _clean_content(content) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty", details={"content": "must not be empty"})
    return text


def _get_comment_for_author(backend, comment_id: int, actor_id: int, action: str):
    comment = backend.comments.get(comment_id)
    if comment is None:
        raise NotFoundError("TaskComment", comment_id)
    task = _get_task(backend, comment.task_id)
    role = require_member(task.project_id, actor_id, backend)
    if comment.author_id != actor_id:
        raise PermissionDenied(action, role=role, message=f"Only the author can {action.split('_')[0]} this comment")
    return comment


def list_comments(task_id: int, user_id: int) -> list[dict]:
    backend = get_backend()
    task = _get_task(backend, task_id)
    require_member(task.project_id, user_id, backend)
    rows = backend.comments.select({"task_id": task_id}, order_by=["created_at", "id"])
    return [c.to_dict() for c in rows]


def add_comment(task_id: int, actor_id: int, content: str) -> dict:
    backend = get_backend()
    task = _get_task(backend, task_id)
    role = require_member(task.project_id, actor_id, backend)
    require_capability(role, COMMENT)
    comment = backend.comments.insert({
        "task_id": task_id,
        "author_id": actor_id,
        "content": _clean_content(content),
    })
    return comment.to_dict()


def edit_comment(comment_id: int, actor_id: int, content: str) -> dict:
    backend = get_backend()
    comment = _get_comment_for_author(backend, comment_id, actor_id, "edit_comment")
    backend.comments.update(
        {"id": comment.id}, {"content": _clean_content(content), "updated_at": utcnow()},
    )
    return backend.comments.get(comment_id).to_dict()


def delete_comment(comment_id: int, actor_id: int) -> None:
    backend = get_backend()
    comment = _get_comment_for_author(backend, comment_id, actor_id, "delete_comment")
    backend.comments.delete({"id": comment.id})
