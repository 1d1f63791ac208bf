# backend/app/repositories/side_effect_outbox_repository.py
"""
Repository for the meeting side-effect outbox.

Implements transactional enqueue, pending fetch with locking, and status
updates required by the Celery dispatcher.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Optional, cast

from sqlalchemy import Select, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
import ulid

from app.database.session_utils import get_dialect_name
from app.models.side_effect_outbox import SideEffectOutbox, SideEffectStatus

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SideEffectOutboxRepository:
    """Data access helpers for side-effect outbox rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> tuple[SideEffectOutbox, bool]:
        """
        Insert an outbox row unless one already exists for the idempotency key.

        Returns ``(row, created)``.
        """
        now = _now_utc()
        key = idempotency_key or f"{event_type}:{aggregate_id}"
        event_id = str(ulid.ULID())
        values = {
            "id": event_id,
            "event_type": event_type,
            "aggregate_id": aggregate_id,
            "payload": payload or {},
            "idempotency_key": key,
            "status": SideEffectStatus.PENDING.value,
            "attempt_count": 0,
            "next_attempt_at": now,
        }

        inserted = False
        if self._dialect == "postgresql":
            stmt = (
                pg_insert(SideEffectOutbox)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
                .returning(SideEffectOutbox.id)
            )
            inserted = self.db.execute(stmt).scalar_one_or_none() is not None
        else:
            stmt = insert(SideEffectOutbox).values(**values)
            if self._dialect == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")
            result = self.db.execute(stmt)
            inserted = bool(getattr(result, "rowcount", 0))

        if inserted:
            self.db.flush()
            row = cast(Optional[SideEffectOutbox], self.db.get(SideEffectOutbox, event_id))
            if row is None:
                raise RuntimeError("Inserted outbox row could not be reloaded")
            return row, True

        existing = self.db.execute(
            select(SideEffectOutbox).where(SideEffectOutbox.idempotency_key == key)
        ).scalar_one_or_none()
        if existing is None:
            raise RuntimeError("Outbox row not found after enqueue conflict")
        return cast(SideEffectOutbox, existing), False

    def fetch_pending(self, limit: int = 200) -> list[SideEffectOutbox]:
        """Return pending rows due for delivery, oldest first."""
        stmt: Select[Any] = (
            select(SideEffectOutbox)
            .where(SideEffectOutbox.status == SideEffectStatus.PENDING.value)
            .where(SideEffectOutbox.next_attempt_at <= _now_utc())
            .order_by(SideEffectOutbox.next_attempt_at.asc(), SideEffectOutbox.id.asc())
            .limit(limit)
        )
        if self._dialect == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(list[SideEffectOutbox], self.db.execute(stmt).scalars().all())

    def get_by_id(self, event_id: str) -> Optional[SideEffectOutbox]:
        return cast(Optional[SideEffectOutbox], self.db.get(SideEffectOutbox, event_id))

    def list_for_aggregate(self, aggregate_id: str) -> list[SideEffectOutbox]:
        stmt = (
            select(SideEffectOutbox)
            .where(SideEffectOutbox.aggregate_id == aggregate_id)
            .order_by(SideEffectOutbox.created_at.asc(), SideEffectOutbox.id.asc())
        )
        return cast(list[SideEffectOutbox], self.db.execute(stmt).scalars().all())

    def mark_sent(self, event_id: str, attempt_count: int) -> None:
        now = _now_utc()
        self.db.execute(
            update(SideEffectOutbox)
            .where(SideEffectOutbox.id == event_id)
            .values(
                status=SideEffectStatus.SENT.value,
                attempt_count=attempt_count,
                last_error=None,
                next_attempt_at=now,
                updated_at=now,
            )
        )
        self.db.flush()

    def mark_failed(
        self,
        event_id: str,
        *,
        attempt_count: int,
        backoff_seconds: int,
        error: str | None = None,
        terminal: bool = False,
    ) -> None:
        """Record a failed attempt; terminal failures stop being fetched."""
        now = _now_utc()
        values: dict[str, Any] = {
            "attempt_count": attempt_count,
            "updated_at": now,
            "last_error": (error[:1000] if error else None),
        }
        if terminal:
            values["status"] = SideEffectStatus.FAILED.value
            values["next_attempt_at"] = now
        else:
            values["status"] = SideEffectStatus.PENDING.value
            values["next_attempt_at"] = now + timedelta(seconds=max(backoff_seconds, 1))

        self.db.execute(
            update(SideEffectOutbox).where(SideEffectOutbox.id == event_id).values(**values)
        )
        self.db.flush()
