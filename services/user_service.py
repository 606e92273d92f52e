"""User account helpers."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from database import db, transaction
from models.user import Theme, User

USER_UPDATABLE_FIELDS = frozenset({"name", "email", "avatar", "timezone", "theme"})


class UserNotFound(LookupError):
    """Raised when the user addressed by an operation does not exist."""


def _normalize_theme(value: Any) -> str:
    try:
        return Theme(str(value or "").strip().lower()).value
    except ValueError:
        raise ValueError(f"Invalid theme: {value!r}") from None


def create_user(
    *,
    username: str,
    name: str,
    email: str,
    password: str,
    avatar: str = "",
    timezone: str = "UTC",
    theme: str = Theme.LIGHT.value,
) -> User:
    if not (username or "").strip() or not (name or "").strip() or not (email or "").strip():
        raise ValueError("Username, name and email are required.")
    if not password:
        raise ValueError("Password is required.")
    user = User(
        username=username.strip(),
        name=name.strip(),
        email=email.strip(),
        avatar=(avatar or "").strip(),
        timezone=(timezone or "UTC").strip(),
        theme=_normalize_theme(theme),
    )
    user.set_password(password)
    try:
        with transaction() as session:
            session.add(user)
    except IntegrityError:
        raise ValueError("This username or email is already in use.") from None
    return user


def get_user(user_id: Any) -> Optional[User]:
    return db.session.get(User, user_id)


def update_user(user_id: Any, updates: Mapping[str, Any]) -> User:
    unknown = sorted(key for key in updates if key not in USER_UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown user field(s): {', '.join(unknown)}")
    try:
        with transaction() as session:
            user = session.get(User, user_id, with_for_update=True, populate_existing=True)
            if user is None:
                raise UserNotFound("User not found")
            for field, value in updates.items():
                if field == "theme":
                    value = _normalize_theme(value)
                elif field in {"name", "email"}:
                    value = str(value or "").strip()
                    if not value:
                        raise ValueError(f"User {field} is required.")
                else:
                    value = str(value or "").strip()
                setattr(user, field, value)
    except IntegrityError:
        raise ValueError("This email is already in use.") from None
    return user


def update_last_active(user_id: Any) -> User:
    with transaction() as session:
        user = session.get(User, user_id)
        if user is None:
            raise UserNotFound("User not found")
        user.last_active_at = datetime.utcnow()
    return user


def change_password(user_id: Any, current_password: str, new_password: str) -> User:
    """Replace the password after checking the current one."""
    if not new_password or len(new_password) < 8:
        raise ValueError("New password must be at least 8 characters long.")
    with transaction() as session:
        user = session.get(User, user_id, with_for_update=True, populate_existing=True)
        if user is None:
            raise UserNotFound("User not found")
        if not user.check_password(current_password):
            raise ValueError("Current password is incorrect.")
        user.set_password(new_password)
    return user
