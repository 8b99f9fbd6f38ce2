"""
Membership Service — project roles, invitations, ownership.

Rules:
  - at most one membership row per (project, user)
  - exactly one ``owner`` per project; ownership only moves through
    ``transfer_ownership`` (invitations cannot grant ``owner``)
  - invitations are auto-accepted: ``joined_at`` is stamped at insert time
  - a failed role lookup degrades to ``viewer``; a successful lookup that finds
    no row means "not a member" (None)
"""

import logging

from app.core.exceptions import (
    AlreadyMemberError,
    ConflictError,
    NetworkError,
    NotFoundError,
    ValidationError,
)
from app.models.audit import write_audit
from app.repositories import get_backend
from app.services.roles import (
    FALLBACK_PROJECT_ROLE,
    INVITE_MEMBERS,
    PROJECT_ROLES,
    TRANSFER_OWNERSHIP,
    require_capability,
)
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

NOT_A_MEMBER = None

USER_NOT_FOUND_MESSAGE = (
    "User with this email address not found. They need to create an account first."
)


def _get_project(backend, project_id):
    project = backend.projects.get(project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _membership(backend, project_id, user_id):
    rows = backend.members.select({"project_id": project_id, "user_id": user_id}, limit=1)
    return rows[0] if rows else None


def get_role(project_id: int, user_id: int, backend=None) -> str | None:
    """Project role of ``user_id`` or NOT_A_MEMBER. Backend errors propagate."""
    backend = backend or get_backend()
    member = _membership(backend, project_id, user_id)
    return member.role if member else NOT_A_MEMBER


def effective_project_role(project_id: int, user_id: int, backend=None) -> str | None:
    """Role used for capability checks.

    A lookup that fails (backend error, unrecognised role value) yields the
    least-privileged ``viewer`` role instead of an error.
    """
    try:
        role = get_role(project_id, user_id, backend)
    except NetworkError as exc:
        logger.warning(
            "Role lookup failed, falling back to %s: %s", FALLBACK_PROJECT_ROLE, exc,
            extra={"project_id": project_id, "user_id": user_id},
        )
        return FALLBACK_PROJECT_ROLE
    if role is NOT_A_MEMBER:
        return NOT_A_MEMBER
    if role not in PROJECT_ROLES:
        logger.warning(
            "Unknown project role %r, falling back to %s", role, FALLBACK_PROJECT_ROLE,
            extra={"project_id": project_id, "user_id": user_id},
        )
        return FALLBACK_PROJECT_ROLE
    return role


def require_member(project_id: int, user_id: int, backend=None) -> str:
    """Return the caller's role; non-members get NotFoundError for the project."""
    backend = backend or get_backend()
    _get_project(backend, project_id)
    role = effective_project_role(project_id, user_id, backend)
    if role is NOT_A_MEMBER:
        raise NotFoundError("Project", project_id)
    return role


# ═════════════════════════════════════════════════════════════════════════════
# Invitations
# ═════════════════════════════════════════════════════════════════════════════

def invite(project_id: int, inviter_id: int, target_email: str, role: str = "viewer") -> dict:
    """Add the user registered under ``target_email`` to the project.

    Raises:
        NotFoundError: project missing, or no principal has that email.
        PermissionDenied: inviter's role lacks ``invite_members``.
        ValidationError: role unknown or ``owner``.
        AlreadyMemberError: the user already has a membership row.
    """
    backend = get_backend()
    _get_project(backend, project_id)
    require_capability(effective_project_role(project_id, inviter_id, backend), INVITE_MEMBERS)

    if role not in PROJECT_ROLES:
        raise ValidationError(
            f"Invalid role '{role}'", details={"role": f"must be one of {', '.join(PROJECT_ROLES)}"},
        )
    if role == "owner":
        raise ValidationError(
            "A project has exactly one owner; use transfer-ownership instead",
            details={"role": "owner cannot be invited"},
        )

    email = (target_email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required", details={"email": "must not be empty"})
    users = backend.users.select({"email": email}, limit=1)
    if not users:
        raise NotFoundError("User", message=USER_NOT_FOUND_MESSAGE)
    target = users[0]

    existing = _membership(backend, project_id, target.id)
    if existing is not None:
        raise AlreadyMemberError(project_id, target.id, existing.role)

    now = utcnow()
    try:
        member = backend.members.insert({
            "project_id": project_id,
            "user_id": target.id,
            "role": role,
            "invited_by": inviter_id,
            "invited_at": now,
            "joined_at": now,
        })
    except ConflictError:
        current = _membership(backend, project_id, target.id)
        raise AlreadyMemberError(project_id, target.id, current.role if current else role) from None

    write_audit(
        entity_type="project", entity_id=project_id, action="member.invite",
        actor_user_id=inviter_id, project_id=project_id,
        diff={"user_id": target.id, "role": role},
    )
    logger.info("Member invited", extra={"project_id": project_id, "user_id": target.id})
    return member.to_dict()


def list_members(project_id: int, user_id: int) -> list[dict]:
    backend = get_backend()
    require_member(project_id, user_id, backend)
    rows = backend.members.select({"project_id": project_id}, order_by=["invited_at", "id"])
    return [m.to_dict() for m in rows]


def remove_member(project_id: int, actor_id: int, user_id: int) -> None:
    """Remove a membership. Owners remove others; anyone may leave; the owner may not be removed."""
    backend = get_backend()
    actor_role = require_member(project_id, actor_id, backend)
    target = _membership(backend, project_id, user_id)
    if target is None:
        raise NotFoundError("ProjectMember", user_id)
    removed_role = target.role
    if removed_role == "owner":
        raise ValidationError("The project owner cannot be removed; transfer ownership first")
    if actor_id != user_id:
        require_capability(actor_role, INVITE_MEMBERS)

    backend.members.delete({"project_id": project_id, "user_id": user_id})
    write_audit(
        entity_type="project", entity_id=project_id, action="member.remove",
        actor_user_id=actor_id, project_id=project_id,
        diff={"user_id": user_id, "role": removed_role},
    )


def transfer_ownership(project_id: int, actor_id: int, new_owner_id: int) -> dict:
    """Hand the owner role to another member; the previous owner becomes ``developer``.

    Writes are ordered promote → repoint project → demote. A failure after the
    promotion reverts it so the project never ends up ownerless or with two owners.
    """
    backend = get_backend()
    project = _get_project(backend, project_id)
    old_owner_id = project.owner_id
    require_capability(effective_project_role(project_id, actor_id, backend), TRANSFER_OWNERSHIP)

    if new_owner_id == actor_id:
        raise ValidationError("User already owns this project")
    target = _membership(backend, project_id, new_owner_id)
    if target is None:
        raise ValidationError(
            "New owner must already be a project member", details={"user_id": new_owner_id},
        )

    previous_role = target.role
    backend.members.update({"project_id": project_id, "user_id": new_owner_id}, {"role": "owner"})
    try:
        backend.projects.update({"id": project_id}, {"owner_id": new_owner_id})
        backend.members.update({"project_id": project_id, "user_id": actor_id}, {"role": "developer"})
    except NetworkError:
        backend.members.update(
            {"project_id": project_id, "user_id": new_owner_id}, {"role": previous_role},
        )
        backend.projects.update({"id": project_id}, {"owner_id": actor_id})
        raise

    write_audit(
        entity_type="project", entity_id=project_id, action="project.transfer_ownership",
        actor_user_id=actor_id, project_id=project_id,
        diff={"owner_id": {"old": old_owner_id, "new": new_owner_id}},
    )
    logger.info("Ownership transferred", extra={"project_id": project_id, "user_id": new_owner_id})
    return backend.projects.get(project_id).to_dict()

