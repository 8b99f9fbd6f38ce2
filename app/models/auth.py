"""
Auth Models — users (principals), profiles, refresh-token sessions.

A User is the authenticated principal. Its Profile carries the global role
and display preferences and is auto-provisioned the first time the principal
authenticates without one.
"""

import uuid
from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import as_utc, iso

GLOBAL_ROLES = ("user", "super_admin", "admin", "developer", "client", "viewer")


def _now():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    display_name = db.Column(db.String(200))
    timezone = db.Column(db.String(64))
    status = db.Column(db.String(20), default="active")  # active, inactive
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        db.Index("ix_users_email", "email"),
    )

    # Relationships
    profile = db.relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan",
    )
    sessions = db.relationship("AuthSession", back_populates="user", lazy="dynamic", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "timezone": self.timezone,
            "status": self.status,
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
        }


# ═══════════════════════════════════════════════════════════════
# 2. PROFILES (1:1 with users)
# ═══════════════════════════════════════════════════════════════
class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    full_name = db.Column(db.String(200))
    global_role = db.Column(db.String(30), nullable=False, default="user")
    is_verified = db.Column(db.Boolean, default=False)
    timezone = db.Column(db.String(64))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    user = db.relationship("User", back_populates="profile")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "full_name": self.full_name,
            "global_role": self.global_role,
            "is_verified": bool(self.is_verified),
            "timezone": self.timezone,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ═══════════════════════════════════════════════════════════════
# 3. AUTH SESSIONS (refresh tokens & login tracking)
# ═══════════════════════════════════════════════════════════════
class AuthSession(db.Model):
    __tablename__ = "auth_sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash = db.Column(db.String(256), nullable=False)  # SHA-256 of refresh token
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True))

    __table_args__ = (
        db.Index("ix_auth_sessions_token_hash", "token_hash"),
    )

    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        return _now() > as_utc(self.expires_at)

    def to_dict(self):
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "expires_at": iso(self.expires_at),
            "last_used_at": iso(self.last_used_at),
        }
