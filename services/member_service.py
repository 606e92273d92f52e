"""Utilities supporting project membership and access control."""
from __future__ import annotations

import logging
from typing import Any, Optional

from database import db, transaction
from models.project import Project
from models.project_member import EDITOR_ROLES, MANAGER_ROLES, ProjectMember, ProjectRole
from models.user import User
from services.task_service import ProjectNotFound
from services.user_service import UserNotFound

logger = logging.getLogger(__name__)


class MemberNotFound(LookupError):
    """Raised when a membership does not exist."""


def _normalize_role(value: Any) -> ProjectRole:
    try:
        return ProjectRole(str(value or "").strip().lower())
    except ValueError:
        raise ValueError(f"Invalid project role: {value!r}") from None


def get_project_member(project: Project | None, user: User | None) -> ProjectMember | None:
    """Return the membership entry linking the user to the project if present."""

    if project is None or user is None:
        return None
    for member in project.members:
        if member.user_id == user.id:
            return member
    return None


def user_owns_project(user: User | None, project: Project | None) -> bool:
    """Return True if the project belongs to the supplied user."""
    return bool(user and project and project.owner_id == user.id)


def user_project_role(user: User | None, project: Project | None) -> ProjectRole | None:
    """Return the effective role of the user in the project."""

    if user_owns_project(user, project):
        return ProjectRole.OWNER
    member = get_project_member(project, user)
    if member is None or not member.is_active:
        return None
    return member.role_enum


def user_can_view_project(user: User | None, project: Project | None) -> bool:
    """Return True when the given user can see the project and its tasks."""

    if project is None:
        return False
    if project.is_public:
        return True
    return user_project_role(user, project) is not None


def user_can_edit_project_tasks(user: User | None, project: Project | None) -> bool:
    """True when the user may create, modify and delete tasks in the project."""

    return user_project_role(user, project) in EDITOR_ROLES


def user_can_manage_project(user: User | None, project: Project | None) -> bool:
    """True when the user may change project settings and its members."""

    return user_project_role(user, project) in MANAGER_ROLES


def list_members(project_id: Any, *, include_inactive: bool = False) -> list[ProjectMember]:
    query = ProjectMember.query.filter(ProjectMember.project_id == project_id)
    if not include_inactive:
        query = query.filter(ProjectMember.is_active.is_(True))
    return query.order_by(ProjectMember.joined_at.asc(), ProjectMember.id.asc()).all()


def add_member(project_id: Any, user_id: Any, role: Any = ProjectRole.MEMBER) -> ProjectMember:
    """Add a user to a project, or re-activate and re-role an existing membership."""
    role_enum = _normalize_role(role)
    with transaction() as session:
        project = session.get(Project, project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        user = session.get(User, user_id)
        if user is None:
            raise UserNotFound("User not found")
        if project.owner_id == user.id:
            raise ValueError("The project owner is already a member.")
        if role_enum == ProjectRole.OWNER:
            raise ValueError("A project has exactly one owner.")
        member = ProjectMember.query.filter_by(project_id=project.id, user_id=user.id).one_or_none()
        if member is None:
            member = ProjectMember(project_id=project.id, user_id=user.id)
            session.add(member)
        member.role = role_enum.value
        member.is_active = True
    logger.info("User %s joined project %s as %s", user_id, project_id, role_enum.value)
    return member


def _require_member(session, project_id: Any, user_id: Any) -> ProjectMember:
    member = (
        session.query(ProjectMember)
        .filter_by(project_id=project_id, user_id=user_id)
        .one_or_none()
    )
    if member is None or not member.is_active:
        raise MemberNotFound("Member not found")
    return member


def update_member_role(project_id: Any, user_id: Any, role: Any) -> ProjectMember:
    role_enum = _normalize_role(role)
    if role_enum == ProjectRole.OWNER:
        raise ValueError("A project has exactly one owner.")
    with transaction() as session:
        member = _require_member(session, project_id, user_id)
        member.role = role_enum.value
    return member


def remove_member(project_id: Any, user_id: Any) -> None:
    """Deactivate a membership; the entry is kept so it can be restored."""
    with transaction() as session:
        member = _require_member(session, project_id, user_id)
        member.is_active = False


def find_user_by_username(username: Optional[str]) -> User | None:
    if not username:
        return None
    return db.session.execute(
        db.select(User).filter_by(username=username.strip())
    ).scalar_one_or_none()
