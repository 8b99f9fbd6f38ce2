"""
Support desk models — departments, tickets, ticket message threads.

Ticket status lifecycle (TICKET_TRANSITIONS):

    open        → in_progress, resolved, closed
    in_progress → resolved, closed, open
    resolved    → closed, in_progress
    closed      → open          # privileged reopen
"""

from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import iso

TICKET_STATUSES = ("open", "in_progress", "resolved", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
RESOLVED_STATUSES = frozenset({"resolved", "closed"})

TICKET_TRANSITIONS = {
    "open":        ["in_progress", "resolved", "closed"],
    "in_progress": ["resolved", "closed", "open"],
    "resolved":    ["closed", "in_progress"],
    "closed":      ["open"],
}

DEFAULT_DEPARTMENTS = (
    ("General", "General questions and requests"),
    ("Technical", "Bugs, errors and technical problems"),
    ("Billing", "Invoices, payments and plans"),
    ("Account", "Access, sign-in and profile issues"),
)


def validate_ticket_transition(old_status, new_status):
    """Return True if SupportTicket status transition is valid."""
    return new_status in TICKET_TRANSITIONS.get(old_status, [])


def _now():
    return datetime.now(timezone.utc)


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }


class SupportTicket(db.Model):
    __tablename__ = "support_tickets"

    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="open")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    submitter_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    first_response_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        db.Index("ix_support_tickets_submitter", "submitter_id"),
        db.Index("ix_support_tickets_status", "status"),
        db.Index("ix_support_tickets_department", "department_id"),
    )

    department = db.relationship("Department")
    messages = db.relationship(
        "TicketMessage", back_populates="ticket", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "subject": self.subject,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "department_id": self.department_id,
            "department": self.department.name if self.department else None,
            "assigned_to_user_id": self.assigned_to_user_id,
            "submitter_id": self.submitter_id,
            "first_response_at": iso(self.first_response_at),
            "resolved_at": iso(self.resolved_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TicketMessage(db.Model):
    """Append-only thread entry on a ticket."""

    __tablename__ = "ticket_messages"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer, db.ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False
    )
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        db.Index("ix_ticket_messages_ticket_id", "ticket_id"),
    )

    ticket = db.relationship("SupportTicket", back_populates="messages")

    def to_dict(self):
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": iso(self.created_at),
        }
