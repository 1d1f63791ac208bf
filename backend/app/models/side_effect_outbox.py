# backend/app/models/side_effect_outbox.py
"""
Transactional outbox for meeting side effects.

Rows are written in the same transaction as the meeting transition that
caused them, and delivered later by the Celery dispatcher. The unique
idempotency key makes a second enqueue of the same transition a no-op.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from app.database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SideEffectStatus(str, Enum):
    """Delivery states for an outbox row."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class SideEffectOutbox(Base):
    """Side effect waiting for delivery to an external collaborator."""

    __tablename__ = "side_effect_outbox"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type = Column(String(100), nullable=False, index=True)
    aggregate_id = Column(String(64), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    payload = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
    )
    status = Column(
        String(20), nullable=False, default=SideEffectStatus.PENDING.value, index=True
    )
    attempt_count = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True, index=True, default=_now_utc)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_side_effect_outbox_idempotency_key"),
    )
