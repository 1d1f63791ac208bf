# backend/app/repositories/audit_repository.py
"""Repository for audit log entries."""

from typing import Any, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog
from .base_repository import BaseRepository


class AuditRepository(BaseRepository[AuditLog]):
    def __init__(self, db: Session):
        super().__init__(db, AuditLog)

    def record(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: str,
        actor: Any,
        before: Optional[Mapping[str, Any]],
        after: Optional[Mapping[str, Any]],
        reason: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog.from_change(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor=actor,
            before=before,
            after=after,
            reason=reason,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type)
            .where(AuditLog.entity_id == entity_id)
            .order_by(AuditLog.occurred_at.asc(), AuditLog.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())
