"""A task represents a unit of work that belongs to a Project

A Task always belongs to exactly one Project and is addressed through it
A Task moves through the statuses todo, in-progress, completed and archived
A Task is considered done when it is completed or archived
A User can create Tasks in any Project they can edit
A Task can be assigned to a User, carries free-form tags and a priority
Changes to a Task status are reflected in the Project counters

"""
from __future__ import annotations
from datetime import datetime
from enum import StrEnum
from typing import Optional

import bleach
from database import db
from markdown import markdown as render_markdown
from markupsafe import Markup


class TaskStatus(StrEnum):
    """Lifecycle states for a task."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskPriority(StrEnum):
    """Urgency of a task."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


DONE_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.ARCHIVED})

_ALLOWED_DESCRIPTION_TAGS = list(bleach.sanitizer.ALLOWED_TAGS) + [
    "p",
    "pre",
    "code",
    "ul",
    "ol",
    "li",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "div",
    "span",
    "strong",
    "em",
    "blockquote",
    "br",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "hr",
]
_ALLOWED_DESCRIPTION_ATTRIBUTES = {
    **bleach.sanitizer.ALLOWED_ATTRIBUTES,
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title"],
    "code": ["class"],
}


def render_task_description_html(description: Optional[str]) -> Markup:
    """Render task description Markdown into sanitized HTML."""
    if not description:
        return Markup("")
    html = render_markdown(
        description,
        extensions=["extra", "sane_lists"],
        output_format="html5",
        tab_length=2,
    )
    sanitized_html = bleach.clean(
        html,
        tags=_ALLOWED_DESCRIPTION_TAGS,
        attributes=_ALLOWED_DESCRIPTION_ATTRIBUTES,
    )
    return Markup(sanitized_html)


def is_done_status(status: Optional[str]) -> bool:
    return status in DONE_STATUSES


class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("project.id"), nullable=False, index=True)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default=TaskStatus.TODO.value)
    priority = db.Column(db.String(20), nullable=False, default=TaskPriority.MEDIUM.value)
    assignee_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    due_date = db.Column(db.DateTime, nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    comment_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
    completed_at = db.Column(db.DateTime, nullable=True)

    project = db.relationship("Project", back_populates="tasks")
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    creator = db.relationship("User", foreign_keys=[creator_id])
    comments = db.relationship(
        "Comment",
        back_populates="task",
        lazy=True,
        cascade="all, delete-orphan",
    )

    @property
    def is_done(self) -> bool:
        return is_done_status(self.status)

    @property
    def is_overdue(self) -> bool:
        if self.due_date is None or self.is_done:
            return False
        return self.due_date < datetime.utcnow()

    def has_info(self):
        if self.description or self.due_date or self.tags:
            return True
        else:
            return False

    @property
    def description_html(self):
        return render_task_description_html(self.description)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description or "",
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "creator_id": self.creator_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "tags": list(self.tags or []),
            "is_active": self.is_active,
            "order": self.order,
            "comment_count": self.comment_count or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<Task {self.title}>"
