"""
Elevator Workspace
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for privileged and lifecycle events.
"""

import json
import logging
from datetime import datetime, timezone

from app.core.exceptions import NetworkError
from app.models import db
from app.repositories import get_backend
from app.utils.helpers import iso

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = {
    # Global role
    "role.assume",
    # Membership
    "member.invite",
    "member.remove",
    "project.transfer_ownership",
    # Task review
    "task.approve",
    "task.request_revisions",
    # Support desk
    "ticket.assign_to_self",
    "ticket.admin_update",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every privileged or lifecycle event.

    One row per action. ``diff_json`` carries an old→new snapshot for
    field-level changes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_user_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="user | project | task | ticket",
    )
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    project_id = db.Column(db.Integer, nullable=True)
    diff_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "project_id": self.project_id,
            "diff": self.diff,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor_user_id: int | None = None,
    project_id: int | None = None,
    diff: dict | None = None,
    required: bool = False,
    backend=None,
) -> AuditLog | None:
    """
    Append a single audit row through the backend's ``audit`` repository.

    Most audits follow a write that has already committed, so a backend
    failure is logged and ``None`` returned; the caller's result stands.
    ``required=True`` is for actions whose only effect comes after the
    audit row (assume-role): there the NetworkError propagates.
    """
    backend = backend or get_backend()
    record = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "actor_user_id": actor_user_id,
        "project_id": project_id,
        "diff_json": json.dumps(diff or {}, default=str),
    }
    try:
        return backend.audit.insert(record)
    except NetworkError:
        if required:
            raise
        logger.warning(
            "Audit log failed for %s on %s/%s, main flow unaffected", action, entity_type, entity_id,
            exc_info=True, extra={"operation": "audit.insert", "event_type": action},
        )
        return None
