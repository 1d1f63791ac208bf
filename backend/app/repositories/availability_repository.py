# backend/app/repositories/availability_repository.py
"""Repository for published meeting availability slots."""

from datetime import date, time

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import MeetingAvailability
from .base_repository import BaseRepository


class AvailabilityRepository(BaseRepository[MeetingAvailability]):
    def __init__(self, db: Session):
        super().__init__(db, MeetingAvailability)

    def has_slot(self, user_id: str, slot_date: date, slot_time: time) -> bool:
        """True when ``user_id`` published a slot at exactly this date and time."""
        try:
            stmt = (
                select(MeetingAvailability.id)
                .where(MeetingAvailability.user_id == user_id)
                .where(MeetingAvailability.slot_date == slot_date)
                .where(MeetingAvailability.slot_time == slot_time)
                .limit(1)
            )
            return self.db.execute(stmt).first() is not None
        except SQLAlchemyError as exc:
            self.logger.error("Failed to check availability for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to check availability: {exc}") from exc


__all__ = ["AvailabilityRepository"]
