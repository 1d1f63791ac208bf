"""Outbox delivery: retries, terminal failures and routing to collaborators."""

from typing import Any, Dict, List, Tuple

import pytest

from app.core.enums import SideEffectType
from app.models.side_effect_outbox import SideEffectOutbox, SideEffectStatus
from app.services.side_effects import (
    OutboxSideEffectQueue,
    SideEffectDispatcher,
    SideEffectTemporaryError,
)
from app.tasks.side_effect_tasks import BACKOFF_SECONDS, _next_backoff, deliver_outbox_event


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: List[Tuple[List[str], str]] = []

    def notify(self, user_ids, event_type: str, payload: Dict[str, Any]) -> None:
        self.calls.append((list(user_ids), event_type))


class RecordingVideo:
    def __init__(self) -> None:
        self.meetings: List[str] = []

    def provision(self, meeting_id: str, payload: Dict[str, Any]):
        self.meetings.append(meeting_id)
        return f"https://video.example.com/{meeting_id}"


class BrokenDispatcher:
    def dispatch(self, event_type: str, payload: Dict[str, Any]) -> None:
        raise SideEffectTemporaryError("provider unavailable")


@pytest.fixture
def queued_event(db):
    def _queue(event_type: SideEffectType = SideEffectType.MEETING_CONFIRMED) -> SideEffectOutbox:
        queue = OutboxSideEffectQueue(db)
        queue.enqueue(
            event_type,
            "01HF4G12ABCDEF3456789MEET1",
            {"meeting_id": "01HF4G12ABCDEF3456789MEET1", "notify_user_ids": ["u1", "u2"]},
        )
        db.commit()
        return db.query(SideEffectOutbox).filter_by(event_type=event_type.value).one()

    return _queue


def _reload(db, event_id: str) -> SideEffectOutbox:
    db.expire_all()
    return db.get(SideEffectOutbox, event_id)


class TestDeliverOutboxEvent:
    def test_successful_delivery_marks_sent(self, db, queued_event):
        event = queued_event()
        notifier, video = RecordingNotifier(), RecordingVideo()

        outcome = deliver_outbox_event(db, event.id, SideEffectDispatcher(notifier, video))

        assert outcome.status == "sent"
        assert outcome.attempt == 1
        row = _reload(db, event.id)
        assert row.status == SideEffectStatus.SENT.value
        assert row.attempt_count == 1
        assert video.meetings == ["01HF4G12ABCDEF3456789MEET1"]
        assert notifier.calls == [(["u1", "u2"], "meeting.confirmed")]

    def test_failure_schedules_retry(self, db, queued_event):
        event = queued_event()

        outcome = deliver_outbox_event(db, event.id, BrokenDispatcher(), max_attempts=3)

        assert outcome.status == "retry"
        assert outcome.backoff_seconds == BACKOFF_SECONDS[0]
        row = _reload(db, event.id)
        assert row.status == SideEffectStatus.PENDING.value
        assert row.attempt_count == 1
        assert row.last_error == "provider unavailable"

    def test_last_attempt_is_terminal(self, db, queued_event):
        event = queued_event()

        outcome = deliver_outbox_event(db, event.id, BrokenDispatcher(), max_attempts=1)

        assert outcome.status == "failed"
        assert _reload(db, event.id).status == SideEffectStatus.FAILED.value

    def test_delivered_event_is_skipped(self, db, queued_event):
        event = queued_event()
        deliver_outbox_event(db, event.id, SideEffectDispatcher(RecordingNotifier(), RecordingVideo()))
        notifier = RecordingNotifier()

        outcome = deliver_outbox_event(db, event.id, SideEffectDispatcher(notifier, RecordingVideo()))

        assert outcome.status == "skipped"
        assert notifier.calls == []

    def test_missing_event(self, db):
        outcome = deliver_outbox_event(db, "01HF4G12ABCDEF3456789NOPE0")

        assert outcome.status == "missing"


def test_backoff_grows_and_plateaus():
    assert _next_backoff(1) == 30
    assert _next_backoff(2) == 120
    assert _next_backoff(99) == BACKOFF_SECONDS[-1]


class TestDispatcher:
    def test_cancellation_notifies_without_video(self):
        notifier, video = RecordingNotifier(), RecordingVideo()

        SideEffectDispatcher(notifier, video).dispatch(
            SideEffectType.MEETING_CANCELED.value,
            {"meeting_id": "m1", "notify_user_ids": ["u3"]},
        )

        assert video.meetings == []
        assert notifier.calls == [(["u3"], SideEffectType.MEETING_CANCELED.value)]

    def test_unknown_type_is_dropped(self):
        notifier, video = RecordingNotifier(), RecordingVideo()

        SideEffectDispatcher(notifier, video).dispatch("meeting.teleported", {"meeting_id": "m1"})

        assert notifier.calls == []
        assert video.meetings == []


def test_enqueue_is_idempotent_per_key(db):
    queue = OutboxSideEffectQueue(db)

    first = queue.enqueue(SideEffectType.MEETING_CANCELED, "m1", {"meeting_id": "m1"})
    second = queue.enqueue(SideEffectType.MEETING_CANCELED, "m1", {"meeting_id": "m1"})
    db.commit()

    assert first is True
    assert second is False
    assert db.query(SideEffectOutbox).filter_by(aggregate_id="m1").count() == 1
