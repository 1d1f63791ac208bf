# backend/app/core/enums.py
"""
Core enums for the meetings and ledger backend.

Values are persisted as plain strings, so renaming a member is a data
migration.
"""

from enum import Enum


class UserRole(str, Enum):
    """Platform roles relevant to meetings and money movement."""

    MEMBER = "member"
    ADMIN = "admin"


class AccountTier(str, Enum):
    """Subscription levels, lowest to highest."""

    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"
    VIP = "vip"


class MeetingType(str, Enum):
    ONE_ON_ONE = "one_on_one"
    GROUP = "group"


class MeetingStatus(str, Enum):
    """
    Meeting lifecycle.

    pending -> confirmed -> completed, and pending|confirmed -> canceled.
    A decline is recorded as a cancellation of a pending meeting.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (MeetingStatus.CANCELED, MeetingStatus.COMPLETED)


class ParticipantRole(str, Enum):
    HOST = "host"
    GUEST = "guest"


class ParticipantResponse(str, Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ResponseAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class ChargeStatus(str, Enum):
    """Settlement state of the meeting fee; pending until finalized."""

    PENDING = "pending"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    PENDING_REVIEW = "pending_review"


class MeetingOutcome(str, Enum):
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    EARLY_LEAVE = "early_leave"
    NETWORK_DISCONNECT = "network_disconnect"


class MeetingFault(str, Enum):
    NO_FAULT = "no_fault"
    REQUESTER_FAULT = "requester_fault"
    HOST_FAULT = "host_fault"
    BOTH_FAULT = "both_fault"


class ChargeDecision(str, Enum):
    CAPTURE = "capture"
    REFUND = "refund"
    PENDING_REVIEW = "pending_review"


class WalletTransactionType(str, Enum):
    """Kinds of rows in the append-only wallet transaction log."""

    TOPUP = "topup"
    CREDIT_PURCHASE = "credit_purchase"
    CANCELLATION_FEE = "cancellation_fee"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    REFUND = "refund"
    SUBSCRIPTION = "subscription"


class PaymentEventType(str, Enum):
    """Inbound payment confirmations accepted by the ingestion guard."""

    WALLET_TOPUP = "wallet_topup"
    CREDIT_PURCHASE = "credit_purchase"
    SUBSCRIPTION = "subscription"

    @property
    def transaction_type(self) -> WalletTransactionType:
        return {
            PaymentEventType.WALLET_TOPUP: WalletTransactionType.TOPUP,
            PaymentEventType.CREDIT_PURCHASE: WalletTransactionType.CREDIT_PURCHASE,
            PaymentEventType.SUBSCRIPTION: WalletTransactionType.SUBSCRIPTION,
        }[self]


class SideEffectType(str, Enum):
    """Outbox event types emitted by meeting transitions."""

    MEETING_REQUESTED = "meeting.requested"
    MEETING_CONFIRMED = "meeting.confirmed"
    MEETING_DECLINED = "meeting.declined"
    MEETING_CANCELED = "meeting.canceled"
    MEETING_COMPLETED = "meeting.completed"
