# backend/app/repositories/factory.py
"""
Repository Factory for the meetings and ledger backend.

Services never construct repositories inline; they ask the factory, so a test
can swap one implementation without touching service code.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .audit_repository import AuditRepository
    from .availability_repository import AvailabilityRepository
    from .ledger_repository import LedgerRepository
    from .meeting_repository import MeetingRepository
    from .side_effect_outbox_repository import SideEffectOutboxRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_meeting_repository(db: Session) -> "MeetingRepository":
        from .meeting_repository import MeetingRepository

        return MeetingRepository(db)

    @staticmethod
    def create_ledger_repository(db: Session) -> "LedgerRepository":
        from .ledger_repository import LedgerRepository

        return LedgerRepository(db)

    @staticmethod
    def create_side_effect_outbox_repository(db: Session) -> "SideEffectOutboxRepository":
        from .side_effect_outbox_repository import SideEffectOutboxRepository

        return SideEffectOutboxRepository(db)

    @staticmethod
    def create_audit_repository(db: Session) -> "AuditRepository":
        from .audit_repository import AuditRepository

        return AuditRepository(db)
