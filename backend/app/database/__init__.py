"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

_POSTGRES_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
    "pool_use_lifo": True,
}


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Pool settings for Postgres; SQLite needs the cross-thread flag instead."""
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    kwargs = dict(_POSTGRES_POOL_KWARGS)
    kwargs["connect_args"] = {
        "connect_timeout": 5,
        # Row locks on meetings and balances must never wait indefinitely
        "options": "-c statement_timeout=15000 -c lock_timeout=5000",
        "application_name": "matchindeed_meetings",
    }
    return kwargs


engine: Engine = create_engine(
    settings.database_url, future=True, **_build_engine_kwargs(settings.database_url)
)


@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
]
