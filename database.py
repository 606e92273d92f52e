"""Database handle shared by the app, models and services."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import Session

db = SQLAlchemy()


@contextmanager
def transaction() -> Iterator[Session]:
    """Run the enclosed block as one unit of work.

    Commits when the block exits normally. Any exception rolls the session
    back and is re-raised.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
