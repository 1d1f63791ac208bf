# backend/app/models/availability.py
"""Bookable slots published by members who accept meeting requests."""

from __future__ import annotations

from datetime import date, time

import sqlalchemy as sa
from sqlalchemy import Date, ForeignKey, String, Time
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.database import Base


class MeetingAvailability(Base):
    """One open slot on a member's calendar."""

    __tablename__ = "meeting_availability"

    __table_args__ = (
        sa.UniqueConstraint(
            "user_id", "slot_date", "slot_time", name="uq_meeting_availability_slot"
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_time: Mapped[time] = mapped_column(Time, nullable=False)
