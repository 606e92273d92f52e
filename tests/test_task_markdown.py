from datetime import datetime, timedelta

from markupsafe import Markup

from app import app  # noqa: F401 - registers every mapped model
from models.task import Task, render_task_description_html


def test_nested_lists_use_expected_hierarchy():
    description = "- parent\n  - child\n  - child 2"

    html = render_task_description_html(description)
    html_str = str(html)

    assert isinstance(html, Markup)
    assert "<li>parent<ul>" in html_str
    assert "<li>child</li>" in html_str
    assert "<li>child 2</li>" in html_str


def test_empty_description_returns_empty_markup():
    html = render_task_description_html(None)

    assert isinstance(html, Markup)
    assert str(html) == ""


def test_disallowed_tags_are_sanitized():
    html = render_task_description_html("<script>alert('x')</script>")

    assert "<script" not in str(html).lower()


def test_task_description_html_renders_markdown():
    task = Task(title="Docs", description="**bold** and `code`")

    html = str(task.description_html)

    assert "<strong>bold</strong>" in html
    assert "<code>code</code>" in html


def test_done_tasks_are_never_overdue():
    yesterday = datetime.utcnow() - timedelta(days=1)

    assert Task(title="Late", status="todo", due_date=yesterday).is_overdue
    assert not Task(title="Late but done", status="completed", due_date=yesterday).is_overdue
    assert not Task(title="No date", status="todo").is_overdue


def test_has_info_reflects_optional_fields():
    assert not Task(title="Bare", description="", tags=[]).has_info()
    assert Task(title="Tagged", description="", tags=["ops"]).has_info()
