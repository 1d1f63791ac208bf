# backend/app/repositories/meeting_repository.py
"""
Repository for meetings and participants.

Status changes use compare-and-set updates: ``UPDATE ... WHERE id = ? AND
status IN (...)``. Exactly one caller can move a meeting out of a given
status, whatever the isolation level, and the rowcount tells that caller it
won.
"""

from datetime import datetime
import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import MeetingStatus, ParticipantResponse
from ..core.exceptions import RepositoryException
from ..database.session_utils import supports_row_locks
from ..models.meeting import Meeting, MeetingParticipant
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (MeetingStatus.PENDING.value, MeetingStatus.CONFIRMED.value)


class MeetingRepository(BaseRepository[Meeting]):
    """Data access for the meeting state machine."""

    def __init__(self, db: Session):
        super().__init__(db, Meeting)

    def get_for_update(self, meeting_id: str) -> Optional[Meeting]:
        """
        Load a meeting with its participants, locking the meeting row on Postgres.

        The instance is refreshed so a caller never decides on a stale status.
        """
        try:
            stmt = select(Meeting).where(Meeting.id == meeting_id)
            if supports_row_locks(self.db):
                stmt = stmt.with_for_update()
            stmt = stmt.execution_options(populate_existing=True)
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load meeting %s: %s", meeting_id, str(exc))
            raise RepositoryException(f"Failed to load meeting: {exc}") from exc

    def lock_participants(self, meeting_id: str) -> List[MeetingParticipant]:
        """Reload participant rows for a meeting, locking them on Postgres."""
        try:
            stmt = (
                select(MeetingParticipant)
                .where(MeetingParticipant.meeting_id == meeting_id)
                .order_by(MeetingParticipant.created_at, MeetingParticipant.id)
                .execution_options(populate_existing=True)
            )
            if supports_row_locks(self.db):
                stmt = stmt.with_for_update()
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to lock participants for %s: %s", meeting_id, str(exc))
            raise RepositoryException(f"Failed to lock participants: {exc}") from exc

    def create_with_participants(
        self, participants: Iterable[dict[str, Any]], **meeting_fields: Any
    ) -> Meeting:
        """Insert a meeting and its participant rows in one flush."""
        try:
            meeting = Meeting(**meeting_fields)
            for fields in participants:
                meeting.participants.append(MeetingParticipant(**fields))
            self.db.add(meeting)
            self.db.flush()
            return meeting
        except SQLAlchemyError as exc:
            self.logger.error("Failed to create meeting: %s", str(exc))
            raise RepositoryException(f"Failed to create meeting: {exc}") from exc

    def transition_status(
        self,
        meeting_id: str,
        from_statuses: Iterable[MeetingStatus],
        to_status: MeetingStatus,
        expected_charge_status: Optional[str] = None,
        **fields: Any,
    ) -> bool:
        """
        Move a meeting to ``to_status`` only if it is currently in ``from_statuses``
        (and, when given, still has ``expected_charge_status``).

        Returns True when this call performed the transition.
        """
        expected = [s.value for s in from_statuses]
        stmt = (
            update(Meeting)
            .where(Meeting.id == meeting_id)
            .where(Meeting.status.in_(expected))
        )
        if expected_charge_status is not None:
            stmt = stmt.where(Meeting.charge_status == expected_charge_status)
        try:
            result = self.db.execute(
                stmt.values(status=to_status.value, **fields).execution_options(
                    synchronize_session=False
                )
            )
            won = result.rowcount == 1
            if won:
                self.db.flush()
                # Pull the new column values into the identity map copy
                meeting = self.db.get(Meeting, meeting_id)
                if meeting is not None:
                    self.db.refresh(meeting)
            return won
        except SQLAlchemyError as exc:
            self.logger.error("Failed to transition meeting %s: %s", meeting_id, str(exc))
            raise RepositoryException(f"Failed to transition meeting: {exc}") from exc

    def record_response(
        self, participant: MeetingParticipant, response: str, responded_at: datetime
    ) -> None:
        participant.response = response
        participant.responded_at = responded_at
        self.db.flush()

    def count_unaccepted(self, meeting_id: str) -> int:
        """Participants that have not accepted, read fresh from the database."""
        try:
            stmt = (
                select(func.count(MeetingParticipant.id))
                .where(MeetingParticipant.meeting_id == meeting_id)
                .where(MeetingParticipant.response != ParticipantResponse.ACCEPTED.value)
            )
            return int(self.db.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to count responses for %s: %s", meeting_id, str(exc))
            raise RepositoryException(f"Failed to count responses: {exc}") from exc

    def set_cancellation_fee(self, meeting: Meeting, fee_cents: int) -> None:
        meeting.cancellation_fee_cents = fee_cents
        self.db.flush()

    def has_active_meeting_at(self, host_id: str, scheduled_at: datetime) -> bool:
        """True when the host already has a pending or confirmed meeting at this time."""
        try:
            stmt = (
                select(Meeting.id)
                .where(Meeting.host_id == host_id)
                .where(Meeting.scheduled_at == scheduled_at)
                .where(Meeting.status.in_(_ACTIVE_STATUSES))
                .limit(1)
            )
            return self.db.execute(stmt).first() is not None
        except SQLAlchemyError as exc:
            self.logger.error("Failed to check host schedule for %s: %s", host_id, str(exc))
            raise RepositoryException(f"Failed to check host schedule: {exc}") from exc

    def list_for_user(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        meeting_type: Optional[str] = None,
        scheduled_after: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Meeting]:
        """Meetings the user participates in, newest first."""
        try:
            stmt = (
                select(Meeting)
                .join(MeetingParticipant, MeetingParticipant.meeting_id == Meeting.id)
                .where(MeetingParticipant.user_id == user_id)
            )
            if status:
                stmt = stmt.where(Meeting.status == status)
            if meeting_type:
                stmt = stmt.where(Meeting.type == meeting_type)
            if scheduled_after is not None:
                stmt = stmt.where(Meeting.scheduled_at >= scheduled_after)
            stmt = stmt.order_by(Meeting.scheduled_at.desc(), Meeting.id.desc()).limit(limit)
            return list(self.db.execute(stmt).scalars().unique().all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list meetings for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to list meetings: {exc}") from exc


__all__ = ["MeetingRepository"]
