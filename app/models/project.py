"""Project domain model: projects and their per-project memberships."""

from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import iso

PROJECT_STATUSES = ("active", "completed", "on-hold", "cancelled")
PROJECT_PRIORITIES = ("low", "medium", "high", "urgent")
PROJECT_ROLES = ("owner", "developer", "client", "viewer")


def _now():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """A unit of work shared by its members; tasks stack on it as floors."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="active",
        comment="active | completed | on-hold | cancelled",
    )
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="low | medium | high | urgent",
    )
    progress = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True)
    budget = db.Column(db.Numeric(14, 2), nullable=True)
    tags = db.Column(db.JSON, default=list)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        db.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_projects_progress_range"),
        db.Index("ix_projects_owner_id", "owner_id"),
    )

    members = db.relationship(
        "ProjectMember", back_populates="project", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "progress": self.progress,
            "due_date": iso(self.due_date),
            "budget": float(self.budget) if self.budget is not None else None,
            "tags": list(self.tags or []),
            "owner_id": self.owner_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class ProjectMember(db.Model):
    """User ↔ Project relation carrying the project-scoped role."""

    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(db.String(20), nullable=False, default="viewer")
    invited_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    invited_at = db.Column(db.DateTime(timezone=True), default=_now)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        db.Index("ix_project_members_project", "project_id"),
        db.Index("ix_project_members_user", "user_id"),
    )

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "invited_by": self.invited_by,
            "invited_at": iso(self.invited_at),
            "joined_at": iso(self.joined_at),
            "user": self.user.to_dict() if self.user else None,
        }
