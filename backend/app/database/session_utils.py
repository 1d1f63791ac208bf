"""
Dialect helpers for repositories that pick between Postgres and SQLite SQL.

Row locks and ON CONFLICT upserts are Postgres features; SQLite (tests, local
dev) gets ``INSERT OR IGNORE`` and relies on compare-and-set updates alone.
"""

from __future__ import annotations

from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Return the dialect name of the engine bound to ``session``."""
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return default
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None) or default


def supports_row_locks(session: Session) -> bool:
    """True when ``SELECT ... FOR UPDATE`` is meaningful for the bound engine."""
    return get_dialect_name(session) == "postgresql"
