"""Project data access and aggregate statistics."""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Optional

import sqlalchemy as sa
from flask import current_app

from database import db, transaction
from models.project import DEFAULT_PROJECT_COLOR, DEFAULT_PROJECT_EMOJI, Project
from models.project_member import ProjectMember
from models.task import DONE_STATUSES, Task, TaskStatus
from services.task_service import ProjectNotFound

logger = logging.getLogger(__name__)

HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

PROJECT_UPDATABLE_FIELDS = frozenset(
    {"name", "description", "color", "emoji", "is_active", "is_public"}
)
PROJECT_READ_ONLY_FIELDS = frozenset(
    {
        "id",
        "owner_id",
        "created_at",
        "updated_at",
        "task_count",
        "completed_task_count",
        "remaining_task_count",
        "completion_percentage",
    }
)

__all__ = [
    "ProjectNotFound",
    "create_project",
    "delete_project",
    "get_project",
    "get_user_projects",
    "require_project",
    "recount_project_counters",
    "summarize_projects",
    "update_project",
]


def _default_color() -> str:
    return current_app.config.get("DEFAULT_PROJECT_COLOR") or DEFAULT_PROJECT_COLOR


def _default_emoji() -> str:
    return current_app.config.get("DEFAULT_PROJECT_EMOJI") or DEFAULT_PROJECT_EMOJI


def _normalize_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise ValueError("Project name is required.")
    return name


def _normalize_color(value: Any) -> str:
    if value is None or str(value).strip() == "":
        return _default_color()
    color = str(value).strip()
    if not HEX_COLOR_PATTERN.match(color):
        raise ValueError(f"Invalid project color: {value!r}")
    return color.lower()


def _normalize_emoji(value: Any) -> str:
    emoji = str(value or "").strip()
    return emoji or _default_emoji()


def create_project(
    owner_id: int,
    *,
    name: str,
    description: str = "",
    color: Optional[str] = None,
    emoji: Optional[str] = None,
    is_public: bool = False,
    is_active: bool = True,
) -> Project:
    """Create a project; counters always start at zero."""
    if owner_id is None:
        raise ValueError("Project owner is required.")
    project = Project(
        owner_id=owner_id,
        name=_normalize_name(name),
        description=(description or "").strip(),
        color=_normalize_color(color),
        emoji=_normalize_emoji(emoji),
        is_public=bool(is_public),
        is_active=bool(is_active),
        task_count=0,
        completed_task_count=0,
    )
    with transaction() as session:
        session.add(project)
    logger.info("Created project %s for user %s", project.id, owner_id)
    return project


def get_project(project_id: Any) -> Optional[Project]:
    return db.session.get(Project, project_id)


def require_project(project_id: Any) -> Project:
    project = get_project(project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    return project


def _clean_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    unknown = sorted(
        key
        for key in updates
        if key not in PROJECT_UPDATABLE_FIELDS and key not in PROJECT_READ_ONLY_FIELDS
    )
    if unknown:
        raise ValueError(f"Unknown project field(s): {', '.join(unknown)}")
    cleaned: dict[str, Any] = {}
    for key, value in updates.items():
        if key not in PROJECT_UPDATABLE_FIELDS:
            continue
        if key == "name":
            cleaned[key] = _normalize_name(value)
        elif key == "color":
            cleaned[key] = _normalize_color(value)
        elif key == "emoji":
            cleaned[key] = _normalize_emoji(value)
        elif key == "description":
            cleaned[key] = (value or "").strip()
        else:
            cleaned[key] = bool(value)
    return cleaned


def update_project(project_id: Any, updates: Mapping[str, Any]) -> Project:
    """Apply a partial update. Counters and ownership cannot be changed here."""
    changes = _clean_updates(updates)
    with transaction() as session:
        project = session.get(Project, project_id, with_for_update=True, populate_existing=True)
        if project is None:
            raise ProjectNotFound(project_id)
        for field, value in changes.items():
            setattr(project, field, value)
    return project


def delete_project(project_id: Any) -> None:
    with transaction() as session:
        project = session.get(Project, project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        session.delete(project)
    logger.info("Deleted project %s", project_id)


def get_user_projects(user_id: Any) -> list[Project]:
    """Return projects owned by the user or shared with them, newest first."""
    if user_id is None:
        return []
    member_project_ids = sa.select(ProjectMember.project_id).where(
        ProjectMember.user_id == user_id,
        ProjectMember.is_active.is_(True),
    )
    return (
        Project.query.filter(
            sa.or_(Project.owner_id == user_id, Project.id.in_(member_project_ids))
        )
        .order_by(Project.created_at.desc(), Project.id.desc())
        .all()
    )


def recount_project_counters(project_id: Any) -> Project:
    """Recompute both counters from the project's tasks."""
    with transaction() as session:
        project = session.get(Project, project_id, with_for_update=True, populate_existing=True)
        if project is None:
            raise ProjectNotFound(project_id)
        total = session.execute(
            sa.select(sa.func.count(Task.id)).where(Task.project_id == project.id)
        ).scalar_one()
        completed = session.execute(
            sa.select(sa.func.count(Task.id)).where(
                Task.project_id == project.id,
                Task.status.in_([status.value for status in DONE_STATUSES]),
            )
        ).scalar_one()
        if (project.task_count, project.completed_task_count) != (total, completed):
            logger.warning(
                "Project %s counters drifted: stored=(%s, %s) actual=(%s, %s)",
                project.id,
                project.task_count,
                project.completed_task_count,
                total,
                completed,
            )
        project.task_count = total
        project.completed_task_count = completed
    return project


def summarize_projects(projects: Iterable[Project]) -> dict[str, int]:
    """Totals shown on the dashboard for the given projects."""
    projects = list(projects)
    project_ids = [project.id for project in projects]
    in_progress = 0
    if project_ids:
        in_progress = db.session.execute(
            sa.select(sa.func.count(Task.id)).where(
                Task.project_id.in_(project_ids),
                Task.status == TaskStatus.IN_PROGRESS.value,
            )
        ).scalar_one()
    return {
        "projects": len(projects),
        "tasks": sum(project.task_count or 0 for project in projects),
        "in_progress": in_progress,
        "completed": sum(project.completed_task_count or 0 for project in projects),
    }
