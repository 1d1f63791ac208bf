# backend/app/models/user.py
"""
User and tier configuration models.

Only the columns the meeting and ledger flows read are mapped here; profile
data lives with the profile service.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.core.enums import AccountTier, UserRole
from app.database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Platform account."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    tier: Mapped[str] = mapped_column(String(20), nullable=False, default=AccountTier.BASIC.value)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.MEMBER.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<User {self.id} tier={self.tier}>"


class AccountTierConfig(Base):
    """
    Contact matrix and pricing for one account tier.

    ``can_contact_*`` gate whether a member of this tier may book a member of
    the named tier; ``surcharge_*`` raise the credit cost of such a booking.
    """

    __tablename__ = "account_tier_configs"

    tier: Mapped[str] = mapped_column(String(20), primary_key=True)
    can_contact_basic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_contact_standard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_contact_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_contact_vip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    surcharge_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    surcharge_vip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    meeting_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
        onupdate=_now_utc,
    )
