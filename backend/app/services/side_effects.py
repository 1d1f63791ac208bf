# backend/app/services/side_effects.py
"""
Side effects triggered by meeting transitions.

Transitions never call email, push or video providers inline. They enqueue an
event on a ``SideEffectQueue`` in the same transaction; the default queue is
the ``side_effect_outbox`` table, delivered by ``app.tasks.side_effect_tasks``.
A delivery failure is retried and counted, and never undoes the transition.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from ..core.enums import SideEffectType
from ..repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)


class SideEffectTemporaryError(RuntimeError):
    """A collaborator failed in a way worth retrying."""


class SideEffectQueue(Protocol):
    def enqueue(
        self,
        event_type: SideEffectType,
        aggregate_id: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """Queue an event; returns False if the same key was already queued."""
        ...


class OutboxSideEffectQueue:
    """Queue backed by the transactional outbox table."""

    def __init__(self, db: Session):
        self.repository = RepositoryFactory.create_side_effect_outbox_repository(db)

    def enqueue(
        self,
        event_type: SideEffectType,
        aggregate_id: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> bool:
        _row, created = self.repository.enqueue(
            event_type=event_type.value,
            aggregate_id=aggregate_id,
            payload=payload,
            idempotency_key=idempotency_key,
        )
        if not created:
            logger.info("Side effect %s for %s already queued", event_type.value, aggregate_id)
        return created


class MeetingNotifier(Protocol):
    def notify(self, user_ids: Iterable[str], event_type: str, payload: Dict[str, Any]) -> None:
        ...


class VideoLinkProvisioner(Protocol):
    def provision(self, meeting_id: str, payload: Dict[str, Any]) -> Optional[str]:
        ...


class LoggingMeetingNotifier:
    """Notifier used until a delivery provider is wired in; records intent in logs."""

    def notify(self, user_ids: Iterable[str], event_type: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "Notify %s about %s for meeting %s",
            ",".join(sorted(user_ids)),
            event_type,
            payload.get("meeting_id"),
        )


class LoggingVideoLinkProvisioner:
    def provision(self, meeting_id: str, payload: Dict[str, Any]) -> Optional[str]:
        logger.info("Video link requested for meeting %s", meeting_id)
        return None


class SideEffectDispatcher:
    """Routes one outbox event to the collaborators that handle it."""

    def __init__(
        self,
        notifier: Optional[MeetingNotifier] = None,
        video: Optional[VideoLinkProvisioner] = None,
    ):
        self.notifier = notifier or LoggingMeetingNotifier()
        self.video = video or LoggingVideoLinkProvisioner()

    def dispatch(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            kind = SideEffectType(event_type)
        except ValueError:
            logger.warning("Dropping side effect with unknown type %s", event_type)
            return

        recipients: List[str] = list(payload.get("notify_user_ids") or [])
        meeting_id = str(payload.get("meeting_id", ""))

        if kind is SideEffectType.MEETING_CONFIRMED:
            self.video.provision(meeting_id, payload)
        if recipients:
            self.notifier.notify(recipients, kind.value, payload)
