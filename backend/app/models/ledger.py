# backend/app/models/ledger.py
"""
Ledger models: per-user credit and wallet balances plus the wallet
transaction log.

The unique constraint on ``wallet_transactions(reference_id, type)`` is what
makes retried payment events and repeated cancellation charges idempotent.
Rows with a NULL reference are never deduplicated.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class CreditBalance(Base):
    """Prepaid meeting credits for one user."""

    __tablename__ = "credit_balances"

    __table_args__ = (sa.CheckConstraint("used >= 0", name="ck_credit_balances_used_non_negative"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rollover: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
        onupdate=_now_utc,
    )

    @property
    def available(self) -> int:
        return self.total - self.used


class WalletBalance(Base):
    """Cash-equivalent balance in minor currency units."""

    __tablename__ = "wallet_balances"

    __table_args__ = (
        sa.CheckConstraint("balance_cents >= 0", name="ck_wallet_balances_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Bumped on every balance write; updates are conditional on the version read
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
        onupdate=_now_utc,
    )


class WalletTransaction(Base):
    """Append-only record of one wallet movement."""

    __tablename__ = "wallet_transactions"

    __table_args__ = (
        sa.UniqueConstraint("reference_id", "type", name="uq_wallet_transactions_reference_type"),
        sa.Index("ix_wallet_transactions_user_created", "user_id", "created_at"),
        sa.Index("ix_wallet_transactions_user_version", "user_id", "wallet_version"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_before_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    # Wallet version this row moved the balance to; orders the log per user
    wallet_version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    admin_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
