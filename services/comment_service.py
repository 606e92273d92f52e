"""Task comments and the per-task comment counter."""

from __future__ import annotations

from typing import Any, Mapping

import sqlalchemy as sa

from database import db, transaction
from models.comment import Comment
from models.task import Task
from services.task_service import TaskNotFound

COMMENT_UPDATABLE_FIELDS = frozenset({"content", "is_active"})


class CommentNotFound(LookupError):
    """Raised when the comment addressed by an operation does not exist."""


def _normalize_content(value: Any) -> str:
    content = str(value or "").strip()
    if not content:
        raise ValueError("Comment content is required.")
    return content


def _lock_task(session, project_id: Any, task_id: Any) -> Task:
    task = session.get(Task, task_id, with_for_update=True, populate_existing=True)
    if task is None or task.project_id != project_id:
        raise TaskNotFound(project_id, task_id)
    return task


def _get_comment(session, project_id: Any, task_id: Any, comment_id: Any) -> Comment:
    comment = session.get(Comment, comment_id)
    if comment is None or comment.project_id != project_id or comment.task_id != task_id:
        raise CommentNotFound("Comment not found")
    return comment


def create_comment(project_id: Any, task_id: Any, *, author_id: int, content: str) -> Comment:
    content = _normalize_content(content)
    if author_id is None:
        raise ValueError("Comment author is required.")
    with transaction() as session:
        task = _lock_task(session, project_id, task_id)
        comment = Comment(
            project_id=task.project_id,
            task_id=task.id,
            author_id=author_id,
            content=content,
        )
        session.add(comment)
        task.comment_count = Task.comment_count + 1
    return comment


def get_task_comments(project_id: Any, task_id: Any) -> list[Comment]:
    return (
        Comment.query.filter(
            Comment.project_id == project_id,
            Comment.task_id == task_id,
            Comment.is_active.is_(True),
        )
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )


def get_comment(project_id: Any, task_id: Any, comment_id: Any) -> Comment | None:
    comment = db.session.get(Comment, comment_id)
    if comment is None or comment.project_id != project_id or comment.task_id != task_id:
        return None
    return comment


def _decrement_comment_count(task: Task) -> None:
    task.comment_count = sa.case((Task.comment_count > 0, Task.comment_count - 1), else_=0)


def update_comment(project_id: Any, task_id: Any, comment_id: Any, updates: Mapping[str, Any]) -> Comment:
    """Edit or hide a comment; the task counter only counts visible comments."""
    unknown = sorted(key for key in updates if key not in COMMENT_UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown comment field(s): {', '.join(unknown)}")
    with transaction() as session:
        comment = _get_comment(session, project_id, task_id, comment_id)
        if "content" in updates:
            comment.content = _normalize_content(updates["content"])
        if "is_active" in updates:
            was_active = bool(comment.is_active)
            is_active = bool(updates["is_active"])
            if was_active != is_active:
                task = _lock_task(session, project_id, task_id)
                if is_active:
                    task.comment_count = Task.comment_count + 1
                else:
                    _decrement_comment_count(task)
            comment.is_active = is_active
    return comment


def delete_comment(project_id: Any, task_id: Any, comment_id: Any) -> None:
    with transaction() as session:
        comment = _get_comment(session, project_id, task_id, comment_id)
        task = _lock_task(session, project_id, task_id)
        was_active = bool(comment.is_active)
        session.delete(comment)
        if was_active:
            _decrement_comment_count(task)
