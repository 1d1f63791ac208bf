"""
Database models for the meetings and ledger backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .audit_log import AuditLog
from .availability import MeetingAvailability
from .ledger import CreditBalance, WalletBalance, WalletTransaction
from .meeting import Meeting, MeetingParticipant
from .side_effect_outbox import SideEffectOutbox, SideEffectStatus
from .user import AccountTierConfig, User

__all__ = [
    "AccountTierConfig",
    "AuditLog",
    "CreditBalance",
    "Meeting",
    "MeetingAvailability",
    "MeetingParticipant",
    "SideEffectOutbox",
    "SideEffectStatus",
    "User",
    "WalletBalance",
    "WalletTransaction",
]
