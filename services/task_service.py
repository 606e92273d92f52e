"""Task data access and project counter maintenance.

Every write that touches a task also keeps the owning project's
``task_count`` and ``completed_task_count`` in step, inside the same
transaction as the task change itself.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

import sqlalchemy as sa

from database import db, transaction
from models.project import Project
from models.task import DONE_STATUSES, Task, TaskPriority, TaskStatus
from models.user import User

logger = logging.getLogger(__name__)

STATUS_UNCHANGED = "unchanged"
STATUS_COMPLETE = "complete"
STATUS_INCOMPLETE = "incomplete"

TASK_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "assignee_id",
        "due_date",
        "tags",
        "is_active",
        "order",
    }
)
TASK_READ_ONLY_FIELDS = frozenset(
    {
        "id",
        "project_id",
        "creator_id",
        "comment_count",
        "created_at",
        "updated_at",
        "completed_at",
    }
)


class ProjectNotFound(LookupError):
    """Raised when the project addressed by an operation does not exist."""

    def __init__(self, project_id: Any):
        super().__init__("Project not found")
        self.project_id = project_id


class TaskNotFound(LookupError):
    """Raised when the task addressed by an operation does not exist."""

    def __init__(self, project_id: Any, task_id: Any):
        super().__init__("Task not found")
        self.project_id = project_id
        self.task_id = task_id


def classify_status_change(previous: Optional[str], current: Optional[str]) -> str:
    """Return how a status transition affects the completed-task counter.

    ``complete`` when a task moves from not done to done, ``incomplete``
    for the opposite move, ``unchanged`` otherwise (including when no new
    status is supplied).
    """
    if current is None or previous == current:
        return STATUS_UNCHANGED
    was_done = previous in DONE_STATUSES
    is_done = current in DONE_STATUSES
    if was_done and not is_done:
        return STATUS_INCOMPLETE
    if is_done and not was_done:
        return STATUS_COMPLETE
    return STATUS_UNCHANGED


def normalize_status(value: Any) -> str:
    try:
        return TaskStatus(str(value).strip().lower()).value
    except ValueError:
        raise ValueError(f"Invalid task status: {value!r}") from None


def normalize_priority(value: Any) -> str:
    try:
        return TaskPriority(str(value).strip().lower()).value
    except ValueError:
        raise ValueError(f"Invalid task priority: {value!r}") from None


def normalize_tags(tags: Optional[Iterable[Any]]) -> list[str]:
    """Strip tags, drop empty ones and remove duplicates keeping first order."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    normalized: list[str] = []
    seen: set[str] = set()
    for value in tags:
        tag = str(value or "").strip()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        normalized.append(tag)
    return normalized


def parse_due_date(value: Any) -> Optional[datetime]:
    """Accept a datetime, an ISO-8601 string or unix seconds; 0/empty means no date."""
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        raise ValueError("Invalid due date.")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)
    text = str(value).strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid due date: {value!r}") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _normalize_title(value: Any) -> str:
    title = str(value or "").strip()
    if not title:
        raise ValueError("Task title is required.")
    return title


def _lock_project(session, project_id: Any) -> Project:
    project = session.get(Project, project_id, with_for_update=True, populate_existing=True)
    if project is None:
        raise ProjectNotFound(project_id)
    return project


def _decrement(column):
    return sa.case((column > 0, column - 1), else_=0)


def _adjust_counters(project: Project, *, total: int = 0, completed: int = 0) -> None:
    """Apply counter deltas as SQL expressions evaluated by the database."""
    if total > 0:
        project.task_count = Project.task_count + total
    elif total < 0:
        project.task_count = _decrement(Project.task_count)
    if completed > 0:
        project.completed_task_count = Project.completed_task_count + completed
    elif completed < 0:
        project.completed_task_count = _decrement(Project.completed_task_count)
    if total or completed:
        logger.debug(
            "Adjusting counters for project %s: total=%+d completed=%+d",
            project.id,
            total,
            completed,
        )


def _require_assignee(session, user_id: Any) -> None:
    if user_id is not None and session.get(User, user_id) is None:
        raise ValueError(f"Assignee does not exist: {user_id!r}")


def _next_task_order(session, project_id: Any) -> int:
    current = session.execute(
        sa.select(sa.func.max(Task.order)).where(Task.project_id == project_id)
    ).scalar()
    return (current or 0) + 1


def create_task(
    project_id: Any,
    *,
    title: str,
    creator_id: int,
    description: str = "",
    status: str = TaskStatus.TODO.value,
    priority: str = TaskPriority.MEDIUM.value,
    assignee_id: Optional[int] = None,
    due_date: Any = None,
    tags: Optional[Iterable[Any]] = None,
    is_active: bool = True,
    order: Optional[int] = None,
) -> Task:
    """Create a task and count it on its project in one transaction."""
    if creator_id is None:
        raise ValueError("Task creator is required.")
    title = _normalize_title(title)
    status = normalize_status(status)
    priority = normalize_priority(priority)
    due = parse_due_date(due_date)
    tag_list = normalize_tags(tags)

    with transaction() as session:
        project = _lock_project(session, project_id)
        assignee_id = assignee_id if assignee_id is not None else creator_id
        _require_assignee(session, assignee_id)
        task = Task(
            project_id=project.id,
            title=title,
            description=(description or "").strip(),
            status=status,
            priority=priority,
            assignee_id=assignee_id,
            creator_id=creator_id,
            due_date=due,
            tags=tag_list,
            is_active=bool(is_active),
            order=order if order is not None else _next_task_order(session, project.id),
            comment_count=0,
            completed_at=datetime.utcnow() if status == TaskStatus.COMPLETED else None,
        )
        session.add(task)
        _adjust_counters(project, total=1, completed=1 if status in DONE_STATUSES else 0)

    logger.info("Created task %s in project %s", task.id, project_id)
    return task


def get_task(project_id: Any, task_id: Any) -> Optional[Task]:
    """Return the task addressed by project and task id, or None."""
    task = db.session.get(Task, task_id)
    if task is None or task.project_id != project_id:
        return None
    return task


def _coerce_update(field: str, value: Any) -> Any:
    if field == "title":
        return _normalize_title(value)
    if field == "description":
        return (value or "").strip()
    if field == "status":
        return normalize_status(value)
    if field == "priority":
        return normalize_priority(value)
    if field == "due_date":
        return parse_due_date(value)
    if field == "tags":
        return normalize_tags(value)
    if field == "is_active":
        return bool(value)
    if field == "order":
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid task order: {value!r}") from None
    if field == "assignee_id":
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid assignee: {value!r}") from None
    return value


def _clean_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    unknown = sorted(
        key for key in updates if key not in TASK_UPDATABLE_FIELDS and key not in TASK_READ_ONLY_FIELDS
    )
    if unknown:
        raise ValueError(f"Unknown task field(s): {', '.join(unknown)}")
    return {
        key: _coerce_update(key, value)
        for key, value in updates.items()
        if key in TASK_UPDATABLE_FIELDS
    }


def update_task(project_id: Any, task_id: Any, updates: Mapping[str, Any]) -> Task:
    """Apply a partial update and keep the completed counter consistent."""
    changes = _clean_updates(updates)

    with transaction() as session:
        task = session.get(Task, task_id, with_for_update=True, populate_existing=True)
        if task is None or task.project_id != project_id:
            raise TaskNotFound(project_id, task_id)
        if "assignee_id" in changes:
            _require_assignee(session, changes["assignee_id"])

        previous_status = task.status
        for field, value in changes.items():
            setattr(task, field, value)

        new_status = changes.get("status")
        if new_status is not None and new_status != previous_status:
            if new_status == TaskStatus.COMPLETED:
                task.completed_at = datetime.utcnow()
            elif previous_status == TaskStatus.COMPLETED:
                task.completed_at = None

        status_change = classify_status_change(previous_status, new_status)
        if status_change != STATUS_UNCHANGED:
            project = _lock_project(session, task.project_id)
            _adjust_counters(project, completed=1 if status_change == STATUS_COMPLETE else -1)

    return task


def set_task_status(project_id: Any, task_id: Any, status: str) -> Task:
    return update_task(project_id, task_id, {"status": status})


def delete_task(project_id: Any, task_id: Any) -> None:
    """Delete a task (its comments cascade) and uncount it from its project."""
    with transaction() as session:
        project = _lock_project(session, project_id)
        task = session.get(Task, task_id)
        if task is None or task.project_id != project.id:
            raise TaskNotFound(project_id, task_id)
        was_done = task.is_done
        session.delete(task)
        _adjust_counters(project, total=-1, completed=-1 if was_done else 0)

    logger.info("Deleted task %s from project %s", task_id, project_id)


def get_project_tasks(project_id: Any, status: Optional[str] = None) -> list[Task]:
    """Return the project's tasks in display order, optionally filtered by status."""
    query = Task.query.filter(Task.project_id == project_id)
    if status:
        query = query.filter(Task.status == normalize_status(status))
    return query.order_by(Task.order.asc(), Task.id.asc()).all()


def count_tasks_by_status(project_id: Any) -> dict[str, int]:
    counts = {status.value: 0 for status in TaskStatus}
    rows = db.session.execute(
        sa.select(Task.status, sa.func.count(Task.id))
        .where(Task.project_id == project_id)
        .group_by(Task.status)
    ).all()
    for status, count in rows:
        if status in counts:
            counts[status] = count
    return counts


def reorder_tasks(project_id: Any, items: Iterable[Mapping[str, Any]]) -> list[Task]:
    """Set the display order of several tasks at once.

    Each item carries ``id`` and ``order``. The whole batch is rejected when
    one of the ids does not belong to the project.
    """
    entries = list(items or [])
    updated: list[Task] = []
    with transaction() as session:
        for entry in entries:
            try:
                task_id = int(entry["id"])
                position = int(entry["order"])
            except (KeyError, TypeError, ValueError):
                raise ValueError("Each item needs an integer id and order.") from None
            task = session.get(Task, task_id)
            if task is None or task.project_id != project_id:
                raise TaskNotFound(project_id, task_id)
            task.order = position
            updated.append(task)
    return updated
