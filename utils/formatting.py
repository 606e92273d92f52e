"""
utils/formatting.py
Display helpers registered as Jinja filters.
"""

from datetime import datetime

STATUS_LABELS = {
    "todo": "To Do",
    "in-progress": "In Progress",
    "completed": "Completed",
    "archived": "Archived",
}

PRIORITY_EMOJIS = {
    "low": "🟢",
    "medium": "🟡",
    "high": "🟠",
    "urgent": "🔴",
}


def dateformat(value, format="%Y-%m-%dT%H:%M"):
    if value is None:
        return ""
    return value.strftime(format)


def short_date(value, with_year=False):
    """Render a date as "Oct 19" (or "Oct 19, 2026")."""
    if not value:
        return ""
    text = f"{value.strftime('%b')} {value.day}"
    if with_year:
        text = f"{text}, {value.year}"
    return text


def is_past(value, now=None):
    if value is None:
        return False
    return value < (now or datetime.utcnow())


def status_label(status):
    return STATUS_LABELS.get(status, (status or "").replace("-", " ").title())


def priority_emoji(priority):
    return PRIORITY_EMOJIS.get(priority, "")


def register_filters(app):
    app.jinja_env.filters["dateformat"] = dateformat
    app.jinja_env.filters["short_date"] = short_date
    app.jinja_env.filters["is_past"] = is_past
    app.jinja_env.filters["status_label"] = status_label
    app.jinja_env.filters["priority_emoji"] = priority_emoji
