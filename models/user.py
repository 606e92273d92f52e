""" Represents a user in the system.

Users must login to get access to the system.
A User owns the Projects they create
A User can be a member of Projects owned by other Users (see ProjectMember)
A User can be assigned Tasks and comment on them
A User can edit its profile (name, email, avatar, timezone, theme)

"""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from werkzeug.security import generate_password_hash, check_password_hash
from database import db


class Theme(StrEnum):
    """Display theme preferred by a user."""

    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.Text)
    name = db.Column(db.String(80), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    avatar = db.Column(db.String(255), nullable=False, default="")
    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    theme = db.Column(db.String(20), nullable=False, default=Theme.LIGHT.value)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    last_active_at = db.Column(db.DateTime, nullable=True)

    owned_projects = db.relationship(
        "Project",
        back_populates="owner",
        lazy=True,
        cascade="all, delete-orphan",
    )
    memberships = db.relationship(
        "ProjectMember",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def theme_enum(self) -> Theme:
        return Theme(self.theme)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar or "",
            "timezone": self.timezone,
            "theme": self.theme,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_active_at": self.last_active_at.isoformat() if self.last_active_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}>"
