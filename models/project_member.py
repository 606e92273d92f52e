"""Models representing project membership."""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from database import db


class ProjectRole(StrEnum):
    """Role assigned to a user within a project."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


# Roles allowed to create and modify tasks.
EDITOR_ROLES = frozenset({ProjectRole.OWNER, ProjectRole.ADMIN, ProjectRole.MEMBER})
# Roles allowed to change project settings and membership.
MANAGER_ROLES = frozenset({ProjectRole.OWNER, ProjectRole.ADMIN})


class ProjectMember(db.Model):
    """Join model linking projects to collaborating users."""

    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("project.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=ProjectRole.MEMBER.value)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    __table_args__ = (db.UniqueConstraint("project_id", "user_id", name="uq_project_member_user"),)

    @property
    def role_enum(self) -> ProjectRole:
        """Return the role as an enum value."""

        return ProjectRole(self.role)

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "name": self.user.name if self.user else None,
            "role": self.role,
            "is_active": self.is_active,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }

    def __repr__(self):
        return f"<ProjectMember project={self.project_id} user={self.user_id} role={self.role}>"
