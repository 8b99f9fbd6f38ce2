"""
Role model — global roles, the assume-role context, and the project capability table.

Two independent tiers:

  Global role (Profile.global_role)
      Coarse tier for navigation and the admin/support desk. ``super_admin`` is
      the only privileged value. A persisted super_admin may *assume* a lesser
      role to preview the workspace as that role; the assumption travels as an
      explicit ``RoleContext`` and is written to the audit log.

  Project role (ProjectMember.role)
      Fine tier scoped to one project. Every project-level check reads
      ``PROJECT_ROLE_CAPABILITIES``; nothing else maps roles to permissions.
"""

import logging
from dataclasses import dataclass

from app.core.exceptions import PermissionDenied, ValidationError
from app.models.audit import write_audit

logger = logging.getLogger(__name__)

# ═════════════════════════════════════════════════════════════════════════════
# Global roles
# ═════════════════════════════════════════════════════════════════════════════

SUPER_ADMIN = "super_admin"
ASSUMABLE_ROLES = ("super_admin", "admin", "developer", "client", "viewer")
GLOBAL_ROLES = ("user",) + ASSUMABLE_ROLES


def resolve_global_role(persisted_role: str | None, acting_role: str | None = None) -> str:
    """Effective global role: explicit acting role wins over the persisted one."""
    if acting_role:
        return acting_role
    return persisted_role or "user"


@dataclass(frozen=True)
class RoleContext:
    """Who is acting, and as which global role.

    Built once per request (``app.middleware.jwt_auth``) and passed explicitly
    to the services that gate on global role.
    """

    user_id: int
    persisted_role: str = "user"
    acting_role: str | None = None

    @property
    def effective_role(self) -> str:
        return resolve_global_role(self.persisted_role, self.acting_role)

    @property
    def is_privileged(self) -> bool:
        return self.effective_role == SUPER_ADMIN

    @property
    def is_assumed(self) -> bool:
        return self.acting_role is not None and self.acting_role != self.persisted_role

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "persisted_role": self.persisted_role,
            "acting_role": self.acting_role,
            "effective_role": self.effective_role,
        }


def assume_role(user_id: int, persisted_role: str, acting_role: str | None) -> RoleContext:
    """Build a RoleContext, validating and auditing any assumed role.

    Raises:
        ValidationError: acting_role is not one of ASSUMABLE_ROLES.
        PermissionDenied: the persisted role is not super_admin.
    """
    if not acting_role or acting_role == persisted_role:
        return RoleContext(user_id=user_id, persisted_role=persisted_role)

    if acting_role not in ASSUMABLE_ROLES:
        raise ValidationError(
            f"Unknown role '{acting_role}'",
            details={"acting_role": f"must be one of {', '.join(ASSUMABLE_ROLES)}"},
        )
    if persisted_role != SUPER_ADMIN:
        raise PermissionDenied("assume_role", role=persisted_role)

    write_audit(
        entity_type="user",
        entity_id=user_id,
        action="role.assume",
        actor_user_id=user_id,
        diff={"persisted_role": persisted_role, "acting_role": acting_role},
        required=True,
    )
    logger.info(
        "Role assumed",
        extra={"user_id": user_id, "event_type": "role_assume", "acting_role": acting_role},
    )
    return RoleContext(user_id=user_id, persisted_role=persisted_role, acting_role=acting_role)


def can_access_admin_panel(role: str) -> bool:
    return role == SUPER_ADMIN


# Navigation entries; "roles" = None means every signed-in principal
NAVIGATION_ITEMS = (
    {"key": "dashboard", "label": "Dashboard", "path": "/dashboard", "roles": None},
    {"key": "projects", "label": "Projects", "path": "/projects", "roles": None},
    {"key": "team", "label": "Team", "path": "/team", "roles": frozenset({"admin", "super_admin"})},
    {"key": "messages", "label": "Messages", "path": "/chat", "roles": None},
    {"key": "support", "label": "Support", "path": "/support", "roles": None},
    {"key": "admin", "label": "Admin", "path": "/admin", "roles": frozenset({"super_admin"})},
    {"key": "settings", "label": "Settings", "path": "/settings", "roles": None},
)


def navigation_items(role: str) -> list[dict]:
    """Navigation entries visible to ``role``, in display order."""
    return [
        {"key": item["key"], "label": item["label"], "path": item["path"]}
        for item in NAVIGATION_ITEMS
        if item["roles"] is None or role in item["roles"]
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Project roles & capabilities
# ═════════════════════════════════════════════════════════════════════════════

PROJECT_ROLES = ("owner", "developer", "client", "viewer")
FALLBACK_PROJECT_ROLE = "viewer"

CREATE_TASK = "create_task"
REVIEW_TASK = "review_task"
INVITE_MEMBERS = "invite_members"
SEE_DELIVERABLE_LINK = "see_deliverable_link"
COMMENT = "comment"
EDIT_PROJECT = "edit_project"
TRANSFER_OWNERSHIP = "transfer_ownership"

PROJECT_ROLE_CAPABILITIES = {
    "owner": frozenset({
        CREATE_TASK, REVIEW_TASK, INVITE_MEMBERS, SEE_DELIVERABLE_LINK,
        COMMENT, EDIT_PROJECT, TRANSFER_OWNERSHIP,
    }),
    "developer": frozenset({CREATE_TASK, SEE_DELIVERABLE_LINK, COMMENT}),
    "client": frozenset({REVIEW_TASK, SEE_DELIVERABLE_LINK, COMMENT}),
    "viewer": frozenset({COMMENT}),
}


def capabilities_for(role: str | None) -> frozenset:
    """Capability set for a project role; None (not a member) has none."""
    if role is None:
        return frozenset()
    return PROJECT_ROLE_CAPABILITIES.get(role, PROJECT_ROLE_CAPABILITIES[FALLBACK_PROJECT_ROLE])


def has_capability(role: str | None, capability: str) -> bool:
    return capability in capabilities_for(role)


def can_create_task(role):
    return has_capability(role, CREATE_TASK)


def can_review_task(role):
    return has_capability(role, REVIEW_TASK)


def can_invite_members(role):
    return has_capability(role, INVITE_MEMBERS)


def can_see_deliverable_link(role):
    return has_capability(role, SEE_DELIVERABLE_LINK)


def require_capability(role: str | None, capability: str) -> None:
    if not has_capability(role, capability):
        raise PermissionDenied(capability, role=role)
