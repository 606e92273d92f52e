"""A Project is the container of Tasks.

A User can create multiple Projects and is the owner of the ones they create
A Project keeps two derived counters: the number of its Tasks and the number
of its done Tasks (see services.task_service)
A Project can be public (visible to every User) or private
A Project can be shared with other Users through ProjectMember entries
Deleting a Project deletes its Tasks, their Comments and its memberships

"""
from __future__ import annotations

from datetime import datetime

from database import db

DEFAULT_PROJECT_COLOR = "#3b82f6"
DEFAULT_PROJECT_EMOJI = "📋"


class Project(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    color = db.Column(db.String(7), nullable=False, default=DEFAULT_PROJECT_COLOR)
    emoji = db.Column(db.String(16), nullable=False, default=DEFAULT_PROJECT_EMOJI)
    owner_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
    task_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    completed_task_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    owner = db.relationship("User", back_populates="owned_projects")
    tasks = db.relationship(
        "Task",
        back_populates="project",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Task.order",
    )
    members = db.relationship(
        "ProjectMember",
        back_populates="project",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def remaining_task_count(self) -> int:
        return max((self.task_count or 0) - (self.completed_task_count or 0), 0)

    @property
    def completion_percentage(self) -> int:
        """Share of done tasks, rounded to a whole percent."""
        total = self.task_count or 0
        if total <= 0:
            return 0
        return round((self.completed_task_count or 0) / total * 100)

    @property
    def active_members(self):
        return [member for member in self.members if member.is_active]

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "color": self.color,
            "emoji": self.emoji,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "is_public": self.is_public,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "task_count": self.task_count or 0,
            "completed_task_count": self.completed_task_count or 0,
            "remaining_task_count": self.remaining_task_count,
            "completion_percentage": self.completion_percentage,
        }

    def __repr__(self):
        return f"<Project {self.name}>"
