# backend/app/models/audit_log.py
"""
Audit trail for administrative money and meeting changes.

Every admin wallet adjustment, balance correction and cancellation-fee edit
writes one row here in the same transaction as the change.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from app.database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """Persistence model for audit trail entries."""

    __tablename__ = "audit_logs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    actor_id = Column(String(26), nullable=True)
    actor_role = Column(String(30), nullable=True)
    reason = Column(Text, nullable=True)
    occurred_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )
    before = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )
    after = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )

    @classmethod
    def from_change(
        cls,
        entity_type: str,
        entity_id: str,
        action: str,
        actor: Any | None,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
        reason: str | None = None,
    ) -> "AuditLog":
        """Build an entry; ``actor`` is any object with ``id`` and ``role``."""
        actor_id = getattr(actor, "id", None) if actor is not None else None
        actor_role = getattr(actor, "role", None) if actor is not None else None
        return cls(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=str(actor_id) if actor_id is not None else None,
            actor_role=str(actor_role) if actor_role is not None else None,
            reason=reason,
            before=dict(before) if before is not None else None,
            after=dict(after) if after is not None else None,
        )
