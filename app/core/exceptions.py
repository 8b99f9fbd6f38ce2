"""
Workspace-wide exception hierarchy.

All services raise these types; the application factory registers one error
handler per type so every blueprint answers with the same HTTP status and
JSON body shape.

Usage:
    from app.core.exceptions import NotFoundError, PermissionDenied

    raise NotFoundError(resource="Project", resource_id=42)
    raise PermissionDenied("review_task", role="viewer")
"""


class AuthError(Exception):
    """Bad credentials, expired or missing session, or a rejected sign-up.

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        self.message = message
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed request body, caught in the blueprint):
    the data was well-formed but violates a rule (empty name after trimming,
    progress outside 0..100, unknown role).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDenied(Exception):
    """The caller's role lacks the capability the action requires.

    Maps to HTTP 403.

    Args:
        capability: Capability name that was checked (e.g. "invite_members").
        role: The role that was evaluated, or None for a non-member.
    """

    def __init__(self, capability: str, role: str | None = None, message: str | None = None) -> None:
        self.capability = capability
        self.role = role
        if message is None:
            message = f"Role {role or 'none'!r} is not allowed to {capability.replace('_', ' ')}"
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a referenced record does not exist or is not visible to the caller.

    Used for both missing rows and rows outside the caller's visibility (another
    user's ticket, a project the caller is not a member of). A 403 would confirm
    the record exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Project", "SupportTicket").
        resource_id: The key that was looked up. Logged, not echoed to clients.
        message: Optional override for the user-facing message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write would violate a uniqueness rule or a stale version is written.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field that conflicts.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value=None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message)


class AlreadyMemberError(ConflictError):
    """The target user already holds a membership row on the project."""

    def __init__(self, project_id: int, user_id: int, role: str) -> None:
        self.project_id = project_id
        self.user_id = user_id
        self.existing_role = role
        super().__init__(
            "ProjectMember", "user_id", user_id,
            message=f"User is already a member of this project with role: {role}",
        )


class AlreadyAssignedError(ConflictError):
    """A second operator tried to claim a ticket someone else already holds."""

    def __init__(self, ticket_id: int, assignee_id: int | None) -> None:
        self.ticket_id = ticket_id
        self.assignee_id = assignee_id
        super().__init__(
            "SupportTicket", "assigned_to_user_id", assignee_id,
            message=f"Ticket {ticket_id} is already assigned",
        )


class InvalidTransitionError(Exception):
    """Raised when a workflow guard rejects a status change.

    Maps to HTTP 409.

    Args:
        entity: "task" or "ticket".
        entity_id: Primary key of the record.
        current: Status the record is in.
        target: Status (or action) that was requested.
        reason: Optional extra explanation.
    """

    def __init__(self, entity: str, entity_id, current: str, target: str, reason: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current
        self.target = target
        msg = f"Cannot move {entity} {entity_id} from '{current}' to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class NetworkError(Exception):
    """Transport or backend failure after timeout/retry handling gave up.

    Maps to HTTP 503.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Backend call '{operation}' failed"
        if cause is not None:
            msg += f": {cause.__class__.__name__}"
        super().__init__(msg)


class StaleResponseError(Exception):
    """A list response arrived after a newer request of the same kind was issued."""

    def __init__(self, key: str, ticket: int, latest: int) -> None:
        self.key = key
        self.ticket = ticket
        self.latest = latest
        super().__init__(f"Response #{ticket} for {key!r} superseded by #{latest}")
