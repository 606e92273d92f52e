"""JSON API for projects, tasks, comments and members."""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, g, jsonify, request, session
from sqlalchemy.exc import SQLAlchemyError

from database import db
from models.project import Project
from routes import json_error, validate_request_csrf
from services.comment_service import (
    CommentNotFound,
    create_comment,
    delete_comment,
    get_comment,
    get_task_comments,
    update_comment,
)
from services.member_service import (
    MemberNotFound,
    add_member,
    find_user_by_username,
    list_members,
    remove_member,
    update_member_role,
    user_can_edit_project_tasks,
    user_can_manage_project,
    user_can_view_project,
    user_owns_project,
)
from services.project_service import (
    create_project,
    delete_project,
    get_user_projects,
    recount_project_counters,
    require_project,
    update_project,
)
from services.task_service import (
    ProjectNotFound,
    TaskNotFound,
    count_tasks_by_status,
    create_task,
    delete_task,
    get_project_tasks,
    get_task,
    reorder_tasks,
    update_task,
)
from services.user_service import UserNotFound, update_user

api_bp = Blueprint("api", __name__, url_prefix="/api")

NOT_FOUND_ERRORS = (ProjectNotFound, TaskNotFound, CommentNotFound, MemberNotFound, UserNotFound)
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {}
    payload = dict(payload)
    payload.pop("csrf_token", None)
    return payload


def _optional_int(value: Any, label: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be an integer.") from None


def _required_project_id(payload: Dict[str, Any] | None = None) -> int:
    raw = request.args.get("project_id")
    if raw is None and payload is not None:
        raw = payload.get("project_id")
    project_id = _optional_int(raw, "Project ID")
    if project_id is None:
        raise ValueError("Project ID is required")
    return project_id


def _load_project(project_id: int, *, edit: bool = False, manage: bool = False) -> Project:
    """Return the project when visible to the current user.

    Projects the user cannot see are reported as missing.
    """
    project = require_project(project_id)
    if not user_can_view_project(g.user, project):
        raise ProjectNotFound(project_id)
    if manage and not user_can_manage_project(g.user, project):
        raise PermissionError("You do not have permission to manage this project.")
    if edit and not user_can_edit_project_tasks(g.user, project):
        raise PermissionError("You do not have permission to modify tasks in this project.")
    return project


@api_bp.before_request
def check_csrf():
    if request.method not in WRITE_METHODS:
        return None
    body = request.get_json(silent=True)
    token = request.headers.get("X-CSRFToken")
    if not token and isinstance(body, dict):
        token = body.get("csrf_token")
    csrf_valid, csrf_message = validate_request_csrf(token)
    if not csrf_valid:
        return json_error(csrf_message or "Invalid CSRF token.")
    return None


@api_bp.errorhandler(ValueError)
def handle_value_error(error):
    return json_error(str(error) or "Invalid request.", status=400)


@api_bp.errorhandler(PermissionError)
def handle_permission_error(error):
    return json_error(str(error) or "Forbidden.", status=403)


def handle_not_found(error):
    return json_error(str(error) or "Not found.", status=404)


for _not_found_error in NOT_FOUND_ERRORS:
    api_bp.register_error_handler(_not_found_error, handle_not_found)


@api_bp.errorhandler(SQLAlchemyError)
def handle_database_error(error):
    db.session.rollback()
    logging.error("Database error during %s %s", request.method, request.path, exc_info=error)
    return json_error("An internal error has occurred.", status=500)


# Projects
# ------------------------------
@api_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = get_user_projects(g.user.id)
    return jsonify({"success": True, "projects": [project.to_dict() for project in projects]})


@api_bp.route("/projects", methods=["POST"])
def create_project_endpoint():
    payload = _payload()
    if not str(payload.get("name") or "").strip():
        return json_error("Name is required")
    project = create_project(
        g.user.id,
        name=payload.get("name"),
        description=payload.get("description") or "",
        color=payload.get("color"),
        emoji=payload.get("emoji"),
        is_public=bool(payload.get("is_public", False)),
    )
    return jsonify({"success": True, "project": project.to_dict()}), 201


@api_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project_endpoint(project_id: int):
    project = _load_project(project_id)
    payload = project.to_dict()
    payload["status_counts"] = count_tasks_by_status(project.id)
    return jsonify({"success": True, "project": payload})


@api_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project_endpoint(project_id: int):
    _load_project(project_id, manage=True)
    project = update_project(project_id, _payload())
    return jsonify({"success": True, "project": project.to_dict()})


@api_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project_endpoint(project_id: int):
    project = _load_project(project_id)
    if not user_owns_project(g.user, project):
        raise PermissionError("Only the project owner can delete this project.")
    delete_project(project_id)
    return jsonify({"success": True})


@api_bp.route("/projects/<int:project_id>/recount", methods=["POST"])
def recount_project_endpoint(project_id: int):
    _load_project(project_id, manage=True)
    project = recount_project_counters(project_id)
    return jsonify({"success": True, "project": project.to_dict()})


# Tasks
# ------------------------------
@api_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
def list_project_tasks(project_id: int):
    project = _load_project(project_id)
    status = request.args.get("status") or None
    if status == "all":
        status = None
    tasks = get_project_tasks(project.id, status=status)
    return jsonify({"success": True, "tasks": [task.to_dict() for task in tasks]})


@api_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
def create_task_endpoint(project_id: int):
    project = _load_project(project_id, edit=True)
    payload = _payload()
    if not str(payload.get("title") or "").strip():
        return json_error("Title is required")
    task = create_task(
        project.id,
        title=payload.get("title"),
        creator_id=g.user.id,
        description=payload.get("description") or "",
        status=payload.get("status") or "todo",
        priority=payload.get("priority") or "medium",
        assignee_id=_optional_int(payload.get("assignee_id"), "Assignee ID"),
        due_date=payload.get("due_date"),
        tags=payload.get("tags"),
        is_active=payload.get("is_active", True),
        order=_optional_int(payload.get("order"), "Order"),
    )
    return (
        jsonify({"success": True, "task": task.to_dict(), "project": task.project.to_dict()}),
        201,
    )


@api_bp.route("/projects/<int:project_id>/tasks/reorder", methods=["POST"])
def reorder_tasks_endpoint(project_id: int):
    project = _load_project(project_id, edit=True)
    items = _payload().get("items")
    if not isinstance(items, list):
        return json_error("Items must be provided as a list.")
    tasks = reorder_tasks(project.id, items)
    return jsonify({"success": True, "tasks": [task.to_dict() for task in tasks]})


@api_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task_endpoint(task_id: int):
    project_id = _required_project_id()
    _load_project(project_id)
    task = get_task(project_id, task_id)
    if task is None:
        raise TaskNotFound(project_id, task_id)
    return jsonify({"success": True, "task": task.to_dict()})


@api_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task_endpoint(task_id: int):
    payload = _payload()
    project_id = _required_project_id(payload)
    _load_project(project_id, edit=True)
    payload.pop("project_id", None)
    if "assignee_id" in payload:
        payload["assignee_id"] = _optional_int(payload["assignee_id"], "Assignee ID")
    task = update_task(project_id, task_id, payload)
    return jsonify({"success": True, "task": task.to_dict(), "project": task.project.to_dict()})


@api_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task_endpoint(task_id: int):
    project_id = _required_project_id(_payload())
    _load_project(project_id, edit=True)
    delete_task(project_id, task_id)
    project = require_project(project_id)
    return jsonify({"success": True, "project": project.to_dict()})


# Comments
# ------------------------------
def _load_task(project_id: int, task_id: int):
    task = get_task(project_id, task_id)
    if task is None:
        raise TaskNotFound(project_id, task_id)
    return task


@api_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/comments", methods=["GET"])
def list_comments(project_id: int, task_id: int):
    _load_project(project_id)
    _load_task(project_id, task_id)
    comments = get_task_comments(project_id, task_id)
    return jsonify({"success": True, "comments": [comment.to_dict() for comment in comments]})


@api_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/comments", methods=["POST"])
def create_comment_endpoint(project_id: int, task_id: int):
    _load_project(project_id, edit=True)
    payload = _payload()
    if not str(payload.get("content") or "").strip():
        return json_error("Content is required")
    comment = create_comment(project_id, task_id, author_id=g.user.id, content=payload.get("content"))
    return jsonify({"success": True, "comment": comment.to_dict()}), 201


def _load_own_comment(project_id: int, task_id: int, comment_id: int, *, allow_manager: bool):
    project = _load_project(project_id)
    comment = get_comment(project_id, task_id, comment_id)
    if comment is None:
        raise CommentNotFound("Comment not found")
    if comment.author_id != g.user.id and not (
        allow_manager and user_can_manage_project(g.user, project)
    ):
        raise PermissionError("You can only change your own comments.")
    return comment


@api_bp.route(
    "/projects/<int:project_id>/tasks/<int:task_id>/comments/<int:comment_id>",
    methods=["PUT"],
)
def update_comment_endpoint(project_id: int, task_id: int, comment_id: int):
    _load_own_comment(project_id, task_id, comment_id, allow_manager=False)
    comment = update_comment(project_id, task_id, comment_id, _payload())
    return jsonify({"success": True, "comment": comment.to_dict()})


@api_bp.route(
    "/projects/<int:project_id>/tasks/<int:task_id>/comments/<int:comment_id>",
    methods=["DELETE"],
)
def delete_comment_endpoint(project_id: int, task_id: int, comment_id: int):
    _load_own_comment(project_id, task_id, comment_id, allow_manager=True)
    delete_comment(project_id, task_id, comment_id)
    return jsonify({"success": True})


# Members
# ------------------------------
@api_bp.route("/projects/<int:project_id>/members", methods=["GET"])
def list_members_endpoint(project_id: int):
    project = _load_project(project_id)
    members = [member.to_dict() for member in list_members(project.id)]
    return jsonify({"success": True, "owner_id": project.owner_id, "members": members})


@api_bp.route("/projects/<int:project_id>/members", methods=["POST"])
def add_member_endpoint(project_id: int):
    _load_project(project_id, manage=True)
    payload = _payload()
    user_id = _optional_int(payload.get("user_id"), "User ID")
    if user_id is None and payload.get("username"):
        user = find_user_by_username(payload.get("username"))
        if user is None:
            raise UserNotFound("User not found")
        user_id = user.id
    if user_id is None:
        return json_error("User ID or username is required")
    member = add_member(project_id, user_id, payload.get("role") or "member")
    return jsonify({"success": True, "member": member.to_dict()}), 201


@api_bp.route("/projects/<int:project_id>/members/<int:user_id>", methods=["PUT"])
def update_member_endpoint(project_id: int, user_id: int):
    _load_project(project_id, manage=True)
    role = _payload().get("role")
    if not role:
        return json_error("Role is required")
    member = update_member_role(project_id, user_id, role)
    return jsonify({"success": True, "member": member.to_dict()})


@api_bp.route("/projects/<int:project_id>/members/<int:user_id>", methods=["DELETE"])
def remove_member_endpoint(project_id: int, user_id: int):
    project = _load_project(project_id)
    if user_id != g.user.id and not user_can_manage_project(g.user, project):
        raise PermissionError("You do not have permission to manage this project.")
    remove_member(project_id, user_id)
    return jsonify({"success": True})


# Users
# ------------------------------
@api_bp.route("/users/me", methods=["GET"])
def current_user_endpoint():
    return jsonify({"success": True, "user": g.user.to_dict()})


@api_bp.route("/users/me", methods=["PUT"])
def update_current_user_endpoint():
    user = update_user(g.user.id, _payload())
    session["theme"] = user.theme
    return jsonify({"success": True, "user": user.to_dict()})
