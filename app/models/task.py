"""
Task domain model — tasks stacked as floors on a project, and their comments.

Status lifecycle (TASK_TRANSITIONS):

    pending              → in-progress
    in-progress          → ready-for-review, pending
    ready-for-review     → approved, revisions-requested, complete, in-progress
    revisions-requested  → in-progress
    approved             → complete
    complete             → (terminal)

``approved`` and ``revisions-requested`` are only entered through the review
operations in ``app.services.task_service``.
"""

from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import iso

TASK_STATUSES = (
    "pending",
    "in-progress",
    "ready-for-review",
    "revisions-requested",
    "approved",
    "complete",
)
TASK_PRIORITIES = ("low", "medium", "high", "urgent")

TASK_TRANSITIONS = {
    "pending":             ["in-progress"],
    "in-progress":         ["ready-for-review", "pending"],
    "ready-for-review":    ["approved", "revisions-requested", "complete", "in-progress"],
    "revisions-requested": ["in-progress"],
    "approved":            ["complete"],
    "complete":            [],
}

REVIEW_ONLY_STATUSES = frozenset({"approved", "revisions-requested"})
DONE_STATUSES = frozenset({"complete"})


def validate_task_transition(old_status, new_status):
    """Return True if Task status transition is valid."""
    return new_status in TASK_TRANSITIONS.get(old_status, [])


def _now():
    return datetime.now(timezone.utc)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(30), nullable=False, default="pending")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    floor_position = db.Column(db.Integer, nullable=False)
    deliverable_link = db.Column(db.String(1000), nullable=True)
    review_comments = db.Column(db.Text, nullable=True)
    completion_percentage = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        db.UniqueConstraint("project_id", "floor_position", name="uq_task_project_floor"),
        db.CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_tasks_completion_range",
        ),
        db.Index("ix_tasks_project_id", "project_id"),
    )

    comments = db.relationship(
        "TaskComment", back_populates="task", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self, include_deliverable=True):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "due_date": iso(self.due_date),
            "floor_position": self.floor_position,
            "deliverable_link": self.deliverable_link if include_deliverable else None,
            "review_comments": self.review_comments,
            "completion_percentage": self.completion_percentage,
            "created_by": self.created_by,
            "version": self.version,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TaskComment(db.Model):
    __tablename__ = "task_comments"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        db.Index("ix_task_comments_task_id", "task_id"),
    )

    task = db.relationship("Task", back_populates="comments")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
