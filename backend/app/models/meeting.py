# backend/app/models/meeting.py
"""
Meeting and participant models.

Status changes go through MeetingRepository.transition_status, a
compare-and-set UPDATE, never by assigning ``status`` on a loaded instance.
Rows in terminal states are kept for audit.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from app.core.enums import (
    ChargeStatus,
    MeetingStatus,
    MeetingType,
    ParticipantResponse,
    ParticipantRole,
)
from app.database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Meeting(Base):
    """A meeting request between a requester (guest) and a host."""

    __tablename__ = "meetings"

    __table_args__ = (
        sa.Index("ix_meetings_status", "status"),
        sa.Index("ix_meetings_scheduled_at", "scheduled_at"),
        sa.CheckConstraint("fee_cents >= 0", name="ck_meetings_fee_non_negative"),
        sa.CheckConstraint(
            "cancellation_fee_cents >= 0", name="ck_meetings_cancellation_fee_non_negative"
        ),
        sa.CheckConstraint("credits_held >= 0", name="ck_meetings_credits_held_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MeetingType.ONE_ON_ONE.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MeetingStatus.PENDING.value
    )
    requester_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=False, index=True
    )
    host_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=False, index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location_pref: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancellation_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits_held: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    charge_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChargeStatus.PENDING.value
    )

    canceled_by: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    outcome: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    fault: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    finalized_by: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )
    finalization_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
        onupdate=_now_utc,
    )

    participants: Mapped[List["MeetingParticipant"]] = relationship(
        "MeetingParticipant",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="MeetingParticipant.created_at",
        lazy="selectin",
    )

    @property
    def status_enum(self) -> MeetingStatus:
        return MeetingStatus(self.status)

    def participant_for(self, user_id: str) -> Optional["MeetingParticipant"]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def all_accepted(self) -> bool:
        return bool(self.participants) and all(
            p.response == ParticipantResponse.ACCEPTED.value for p in self.participants
        )

    def audit_snapshot(self) -> dict[str, Any]:
        """Fields recorded in audit entries for admin changes."""
        return {
            "status": self.status,
            "fee_cents": self.fee_cents,
            "cancellation_fee_cents": self.cancellation_fee_cents,
            "charge_status": self.charge_status,
        }

    def __repr__(self) -> str:
        return f"<Meeting {self.id} status={self.status}>"


class MeetingParticipant(Base):
    """A user's seat in a meeting and their response to it."""

    __tablename__ = "meeting_participants"

    __table_args__ = (
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_meeting_participants_user"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    meeting_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=ParticipantRole.GUEST.value)
    response: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipantResponse.REQUESTED.value
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )

    meeting: Mapped[Meeting] = relationship("Meeting", back_populates="participants")
