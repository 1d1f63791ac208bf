"""Builders and lookups shared by the meeting and ledger tests."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.enums import AccountTier
from app.models.ledger import CreditBalance, WalletBalance, WalletTransaction
from app.models.meeting import Meeting
from app.models.side_effect_outbox import SideEffectOutbox
from app.models.user import AccountTierConfig, User

SLOT_DATE = date(2030, 6, 1)
SLOT_TIME = time(18, 0)

# Same matrix the initial migration seeds
TIER_MATRIX: Dict[str, Dict[str, object]] = {
    AccountTier.BASIC.value: {
        "can_contact_basic": True,
        "can_contact_standard": False,
        "can_contact_premium": False,
        "can_contact_vip": False,
        "surcharge_premium": False,
        "surcharge_vip": False,
        "meeting_fee_cents": 500,
    },
    AccountTier.STANDARD.value: {
        "can_contact_basic": True,
        "can_contact_standard": True,
        "can_contact_premium": False,
        "can_contact_vip": False,
        "surcharge_premium": False,
        "surcharge_vip": False,
        "meeting_fee_cents": 500,
    },
    AccountTier.PREMIUM.value: {
        "can_contact_basic": True,
        "can_contact_standard": True,
        "can_contact_premium": True,
        "can_contact_vip": True,
        "surcharge_premium": False,
        "surcharge_vip": True,
        "meeting_fee_cents": 1000,
    },
    AccountTier.VIP.value: {
        "can_contact_basic": True,
        "can_contact_standard": True,
        "can_contact_premium": True,
        "can_contact_vip": True,
        "surcharge_premium": False,
        "surcharge_vip": False,
        "meeting_fee_cents": 1000,
    },
}


def seed_tier_configs(session: Session) -> None:
    for tier, flags in TIER_MATRIX.items():
        session.add(AccountTierConfig(tier=tier, **flags))
    session.commit()


def credits_of(db: Session, user: User) -> Optional[CreditBalance]:
    db.expire_all()
    return db.query(CreditBalance).filter_by(user_id=user.id).one_or_none()


def wallet_of(db: Session, user: User) -> Optional[WalletBalance]:
    db.expire_all()
    return db.query(WalletBalance).filter_by(user_id=user.id).one_or_none()


def transactions_of(db: Session, user: User) -> list[WalletTransaction]:
    return (
        db.query(WalletTransaction)
        .filter_by(user_id=user.id)
        .order_by(
            WalletTransaction.wallet_version,
            WalletTransaction.created_at,
            WalletTransaction.id,
        )
        .all()
    )


def outbox_events(db: Session, meeting_id: str, event_type: Optional[str] = None) -> list:
    query = db.query(SideEffectOutbox).filter_by(aggregate_id=meeting_id)
    if event_type is not None:
        query = query.filter_by(event_type=event_type)
    return query.all()


def backdate(db: Session, meeting: Meeting, hours: int = 2) -> None:
    """Move a meeting's start into the past so it can be finalized."""
    past = datetime.now(timezone.utc) - timedelta(hours=hours)
    db.execute(update(Meeting).where(Meeting.id == meeting.id).values(scheduled_at=past))
    db.commit()
