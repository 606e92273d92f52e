"""Shared helpers for route blueprints."""

from __future__ import annotations

from urllib.parse import urlparse

from flask import current_app, jsonify, redirect, request, url_for
from flask_wtf.csrf import validate_csrf
from wtforms.validators import ValidationError

__all__ = ["json_error", "safe_redirect", "validate_request_csrf", "wants_json_response"]


def safe_redirect(referrer: str | None, fallback_endpoint: str, **values):
    """Redirect to referrer when it matches the current host, otherwise fallback."""
    if not referrer:
        return redirect(url_for(fallback_endpoint, **values))
    ref_url = urlparse(request.host_url)
    test_url = urlparse(referrer)
    if test_url.scheme in ("http", "https") and ref_url.netloc == test_url.netloc:
        return redirect(referrer)
    return redirect(url_for(fallback_endpoint, **values))


def wants_json_response() -> bool:
    """Return True when the current request expects a JSON response."""
    accept = request.accept_mimetypes
    return (
        request.is_json
        or request.headers.get("X-Requested-With", "").lower() == "xmlhttprequest"
        or accept.best == "application/json"
    )


def json_error(message: str, *, status: int = 400, **extra):
    payload = {"success": False, "error": message}
    payload.update(extra)
    return jsonify(payload), status


def validate_request_csrf(token: str | None) -> tuple[bool, str | None]:
    """Validate CSRF tokens supplied with JSON payloads or headers."""
    if not current_app.config.get("WTF_CSRF_ENABLED", True):
        return True, None
    if not token:
        return False, "The CSRF token is missing."
    try:
        validate_csrf(token)
    except ValidationError:
        return (
            False,
            "The CSRF token is invalid or has expired. Please refresh and try again.",
        )
    return True, None
