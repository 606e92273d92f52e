"""Project and task pages."""
from __future__ import annotations

import logging
from typing import Any

from flask import (
    Blueprint,
    abort,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError

from routes import json_error, safe_redirect, validate_request_csrf, wants_json_response

from forms import CommentForm, MemberForm, ProjectForm, TaskForm, TaskStatusForm
from models.project import Project
from models.task import Task, TaskStatus
from services.comment_service import create_comment, get_task_comments
from services.member_service import (
    MemberNotFound,
    add_member,
    find_user_by_username,
    list_members,
    remove_member,
    user_can_edit_project_tasks,
    user_can_manage_project,
    user_can_view_project,
    user_owns_project,
    user_project_role,
)
from services.project_service import (
    create_project,
    delete_project,
    get_project,
    get_user_projects,
    update_project,
)
from services.task_service import (
    TaskNotFound,
    count_tasks_by_status,
    create_task,
    delete_task,
    get_project_tasks,
    get_task,
    update_task,
)

projects_bp = Blueprint("projects", __name__, url_prefix="/projects")

STATUS_FILTERS = ["all"] + [status.value for status in TaskStatus]
GENERIC_ERROR_MESSAGE = "An internal error has occurred."


def _get_project_or_404(project_id: int, *, edit: bool = False, manage: bool = False) -> Project:
    project = get_project(project_id)
    if project is None or not user_can_view_project(g.user, project):
        abort(404)
    if manage and not user_can_manage_project(g.user, project):
        abort(403)
    if edit and not user_can_edit_project_tasks(g.user, project):
        abort(403)
    return project


def _get_task_or_404(project: Project, task_id: int) -> Task:
    task = get_task(project.id, task_id)
    if task is None:
        abort(404)
    return task


def _request_csrf_token() -> str | None:
    token = request.form.get("csrf_token") or request.headers.get("X-CSRFToken")
    if not token:
        payload = request.get_json(silent=True)
        if isinstance(payload, dict):
            token = payload.get("csrf_token")
    return token


def _task_form_kwargs(form: TaskForm) -> dict[str, Any]:
    return {
        "title": form.title.data,
        "description": form.description.data or "",
        "status": form.status.data or TaskStatus.TODO.value,
        "priority": form.priority.data or "medium",
        "due_date": form.due_date.data,
        "tags": form.tags.data or "",
    }


def _render_project_detail(project: Project, *, task_form=None, show_modal=False, status=200):
    status_filter = request.args.get("status", "all")
    if status_filter not in STATUS_FILTERS:
        status_filter = "all"
    tasks = get_project_tasks(project.id, status=None if status_filter == "all" else status_filter)
    return (
        render_template(
            "project_detail.html",
            project=project,
            tasks=tasks,
            status_filter=status_filter,
            status_filters=STATUS_FILTERS,
            status_counts=count_tasks_by_status(project.id),
            task_form=task_form or TaskForm(),
            member_form=MemberForm(),
            members=list_members(project.id),
            can_edit=user_can_edit_project_tasks(g.user, project),
            can_manage=user_can_manage_project(g.user, project),
            is_owner=user_owns_project(g.user, project),
            role=user_project_role(g.user, project),
            show_modal=show_modal,
        ),
        status,
    )


# Projects
# ------------------------------
@projects_bp.route("/", methods=["GET"])
def list_projects():
    projects = get_user_projects(g.user.id)
    return render_template("projects.html", projects=projects, project_form=ProjectForm())


@projects_bp.route("/new", methods=["GET", "POST"])
def new_project():
    form = ProjectForm()
    if form.validate_on_submit():
        try:
            project = create_project(
                g.user.id,
                name=form.name.data,
                description=form.description.data or "",
                color=form.color.data,
                emoji=form.emoji.data,
                is_public=form.is_public.data,
            )
        except ValueError as exc:
            form.name.errors.append(str(exc))
        except SQLAlchemyError:
            logging.error("Database error while creating project", exc_info=True)
            flash(GENERIC_ERROR_MESSAGE, "error")
        else:
            flash(f'Project "{project.name}" created!', "success")
            return redirect(url_for("projects.project_detail", project_id=project.id))
    return render_template("project_form.html", project_form=form, project=None)


@projects_bp.route("/<int:project_id>/edit", methods=["GET", "POST"])
def edit_project(project_id: int):
    project = _get_project_or_404(project_id, manage=True)
    form = ProjectForm(obj=project)
    if form.validate_on_submit():
        try:
            project = update_project(
                project.id,
                {
                    "name": form.name.data,
                    "description": form.description.data or "",
                    "color": form.color.data,
                    "emoji": form.emoji.data,
                    "is_public": form.is_public.data,
                },
            )
        except ValueError as exc:
            form.name.errors.append(str(exc))
        except SQLAlchemyError:
            logging.error("Database error while updating project %s", project_id, exc_info=True)
            flash(GENERIC_ERROR_MESSAGE, "error")
        else:
            flash(f'Project "{project.name}" updated!', "success")
            return redirect(url_for("projects.project_detail", project_id=project.id))
    return render_template("project_form.html", project_form=form, project=project)


@projects_bp.route("/<int:project_id>/delete", methods=["POST"])
def delete_project_view(project_id: int):
    wants_json = wants_json_response()
    project = _get_project_or_404(project_id)
    csrf_valid, csrf_message = validate_request_csrf(_request_csrf_token())
    if not csrf_valid:
        if wants_json:
            return json_error(csrf_message or "Invalid CSRF token.")
        flash(csrf_message, "danger")
        return safe_redirect(request.referrer, "projects.list_projects")
    if not user_owns_project(g.user, project):
        message = "You do not have permission to delete this project."
        if wants_json:
            return json_error(message, status=403)
        flash(message, "danger")
        return safe_redirect(request.referrer, "projects.list_projects")

    project_name = project.name
    try:
        delete_project(project.id)
    except SQLAlchemyError:
        logging.error("Database error while deleting project %s", project_id, exc_info=True)
        if wants_json:
            return json_error(GENERIC_ERROR_MESSAGE, status=500)
        flash(GENERIC_ERROR_MESSAGE, "error")
        return safe_redirect(request.referrer, "projects.list_projects")

    message = f'Project "{project_name}" deleted!'
    if wants_json:
        return jsonify({"success": True, "message": message})
    flash(message, "success")
    return redirect(url_for("projects.list_projects"))


@projects_bp.route("/<int:project_id>", methods=["GET"])
def project_detail(project_id: int):
    project = _get_project_or_404(project_id)
    return _render_project_detail(project)


# Tasks
# ------------------------------
@projects_bp.route("/<int:project_id>/tasks", methods=["POST"])
def add_task(project_id: int):
    project = _get_project_or_404(project_id, edit=True)
    wants_json = wants_json_response()
    form = TaskForm()
    if form.validate_on_submit():
        try:
            task = create_task(project.id, creator_id=g.user.id, **_task_form_kwargs(form))
        except ValueError as exc:
            if wants_json:
                return json_error(str(exc))
            form.title.errors.append(str(exc))
        except SQLAlchemyError:
            logging.error("Database error while adding task", exc_info=True)
            if wants_json:
                return json_error(GENERIC_ERROR_MESSAGE, status=500)
            flash(GENERIC_ERROR_MESSAGE, "error")
            return safe_redirect(request.referrer, "projects.project_detail", project_id=project.id)
        else:
            message = f'Task "{task.title}" added!'
            if wants_json:
                return jsonify(
                    {
                        "success": True,
                        "message": message,
                        "task": task.to_dict(),
                        "project": task.project.to_dict(),
                    }
                )
            flash(message, "success")
            return redirect(url_for("projects.project_detail", project_id=project.id))
    if wants_json:
        return json_error(
            "Please correct the highlighted fields.",
            errors=form.errors,
            csrf_token=generate_csrf(),
        )
    return _render_project_detail(project, task_form=form, show_modal="task-modal", status=400)


@projects_bp.route("/<int:project_id>/tasks/<int:task_id>", methods=["GET"])
def task_detail(project_id: int, task_id: int):
    project = _get_project_or_404(project_id)
    task = _get_task_or_404(project, task_id)
    return render_template(
        "task_detail.html",
        project=project,
        task=task,
        comments=get_task_comments(project.id, task.id),
        comment_form=CommentForm(),
        status_form=TaskStatusForm(status=task.status),
        can_edit=user_can_edit_project_tasks(g.user, project),
    )


@projects_bp.route("/<int:project_id>/tasks/<int:task_id>/edit", methods=["GET", "POST"])
def edit_task(project_id: int, task_id: int):
    project = _get_project_or_404(project_id, edit=True)
    task = _get_task_or_404(project, task_id)
    form = TaskForm(obj=task)
    if not form.is_submitted():
        form.tags.data = ", ".join(task.tags or [])
    wants_json = wants_json_response()
    if form.validate_on_submit():
        try:
            task = update_task(project.id, task.id, _task_form_kwargs(form))
        except ValueError as exc:
            if wants_json:
                return json_error(str(exc))
            form.title.errors.append(str(exc))
        except TaskNotFound:
            abort(404)
        except SQLAlchemyError:
            logging.error("Database error during task update", exc_info=True)
            if wants_json:
                return json_error(GENERIC_ERROR_MESSAGE, status=500)
            flash(GENERIC_ERROR_MESSAGE, "error")
            return safe_redirect(request.referrer, "projects.project_detail", project_id=project.id)
        else:
            message = f'Task "{task.title}" updated!'
            if wants_json:
                return jsonify(
                    {
                        "success": True,
                        "message": message,
                        "task": task.to_dict(),
                        "project": task.project.to_dict(),
                    }
                )
            flash(message, "success")
            return redirect(url_for("projects.project_detail", project_id=project.id))
    elif form.is_submitted() and wants_json:
        return json_error(
            "Please correct the highlighted fields.",
            errors=form.errors,
            csrf_token=generate_csrf(),
        )
    return render_template("task_form.html", task_form=form, project=project, task=task)


@projects_bp.route("/<int:project_id>/tasks/<int:task_id>/status", methods=["POST"])
def change_task_status(project_id: int, task_id: int):
    """Move a task to another status and report the refreshed project counters."""
    wants_json = wants_json_response()
    project = _get_project_or_404(project_id)
    task = _get_task_or_404(project, task_id)

    def respond(success: bool, message: str, *, status: int = 200, category: str | None = None):
        if wants_json:
            payload = {"success": success, "message": message}
            if success:
                payload["task"] = task.to_dict()
                payload["project"] = task.project.to_dict()
            else:
                payload["category"] = category or "danger"
            return jsonify(payload), status
        flash(message, category or ("success" if success else "danger"))
        return safe_redirect(request.referrer, "projects.project_detail", project_id=project.id)

    if not user_can_edit_project_tasks(g.user, project):
        return respond(False, "You do not have permission to modify this task.", status=403)

    json_payload = request.get_json(silent=True) if request.is_json else None
    if isinstance(json_payload, dict):
        csrf_valid, csrf_message = validate_request_csrf(_request_csrf_token())
        if not csrf_valid:
            return respond(False, csrf_message or "Invalid CSRF token.", status=400)
        new_status = json_payload.get("status")
    else:
        form = TaskStatusForm()
        if not form.validate_on_submit():
            return respond(False, "Please choose a valid status.", status=400, category="warning")
        new_status = form.status.data

    try:
        task = update_task(project.id, task.id, {"status": new_status})
    except ValueError as exc:
        return respond(False, str(exc), status=400, category="warning")
    except SQLAlchemyError as e:
        logging.error("Database error while changing task status", exc_info=True)
        return respond(False, f"An error occurred: {str(e)}", status=500, category="error")

    category = "success" if task.is_done else "info"
    return respond(True, f'Task "{task.title}" moved to {task.status}.', category=category)


@projects_bp.route("/<int:project_id>/tasks/<int:task_id>/delete", methods=["POST"])
def delete_task_view(project_id: int, task_id: int):
    wants_json = wants_json_response()
    project = _get_project_or_404(project_id)
    csrf_valid, csrf_message = validate_request_csrf(_request_csrf_token())
    if not csrf_valid:
        if wants_json:
            return json_error(csrf_message or "Invalid CSRF token.")
        flash(csrf_message, "danger")
        return safe_redirect(request.referrer, "projects.project_detail", project_id=project.id)
    if not user_can_edit_project_tasks(g.user, project):
        message = "You do not have permission to delete this task."
        if wants_json:
            return json_error(message, status=403)
        flash(message, "danger")
        return safe_redirect(request.referrer, "projects.project_detail", project_id=project.id)

    task = _get_task_or_404(project, task_id)
    task_title = task.title
    try:
        delete_task(project.id, task.id)
    except TaskNotFound:
        abort(404)
    except SQLAlchemyError:
        logging.exception("Error deleting task with id %s", task_id)
        if wants_json:
            return json_error(GENERIC_ERROR_MESSAGE, status=500)
        flash(GENERIC_ERROR_MESSAGE, "error")
        return safe_redirect(request.referrer, "projects.project_detail", project_id=project.id)

    message = f'Task "{task_title}" deleted!'
    if wants_json:
        refreshed = get_project(project.id)
        return jsonify({"success": True, "message": message, "project": refreshed.to_dict()})
    flash(message, "success")
    return redirect(url_for("projects.project_detail", project_id=project.id))


# Comments
# ------------------------------
@projects_bp.route("/<int:project_id>/tasks/<int:task_id>/comments", methods=["POST"])
def add_comment(project_id: int, task_id: int):
    project = _get_project_or_404(project_id, edit=True)
    task = _get_task_or_404(project, task_id)
    form = CommentForm()
    if form.validate_on_submit():
        try:
            create_comment(project.id, task.id, author_id=g.user.id, content=form.content.data)
            flash("Comment added.", "success")
        except ValueError as exc:
            flash(str(exc), "warning")
        except SQLAlchemyError:
            logging.error("Database error while adding comment", exc_info=True)
            flash(GENERIC_ERROR_MESSAGE, "error")
    else:
        flash("Comment cannot be empty.", "warning")
    return redirect(url_for("projects.task_detail", project_id=project.id, task_id=task.id))


# Members
# ------------------------------
@projects_bp.route("/<int:project_id>/members", methods=["POST"])
def add_project_member(project_id: int):
    project = _get_project_or_404(project_id, manage=True)
    form = MemberForm()
    if form.validate_on_submit():
        user = find_user_by_username(form.username.data)
        if user is None:
            flash("No user with that username.", "warning")
        else:
            try:
                add_member(project.id, user.id, form.role.data)
                flash(f"{user.name} added to the project.", "success")
            except ValueError as exc:
                flash(str(exc), "warning")
            except SQLAlchemyError:
                logging.error("Database error while adding member", exc_info=True)
                flash(GENERIC_ERROR_MESSAGE, "error")
    else:
        flash("Please provide a username and role.", "warning")
    return redirect(url_for("projects.project_detail", project_id=project.id))


@projects_bp.route("/<int:project_id>/members/<int:user_id>/remove", methods=["POST"])
def remove_project_member(project_id: int, user_id: int):
    project = _get_project_or_404(project_id)
    if user_id != g.user.id and not user_can_manage_project(g.user, project):
        abort(403)
    csrf_valid, csrf_message = validate_request_csrf(_request_csrf_token())
    if not csrf_valid:
        flash(csrf_message, "danger")
        return redirect(url_for("projects.project_detail", project_id=project.id))
    try:
        remove_member(project.id, user_id)
        flash("Member removed.", "info")
    except MemberNotFound:
        abort(404)
    except SQLAlchemyError:
        logging.error("Database error while removing member", exc_info=True)
        flash(GENERIC_ERROR_MESSAGE, "error")
    if user_id == g.user.id:
        return redirect(url_for("projects.list_projects"))
    return redirect(url_for("projects.project_detail", project_id=project.id))
