"""
Concurrent acceptances against a file-backed database.

Two sessions on separate connections respond to the same meeting. The second
session reads the meeting, then the first runs a complete respond and commits
before the second continues. Whatever the interleaving, the meeting is
confirmed once and ``meeting.confirmed`` is queued once.
"""

from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.enums import ResponseAction, SideEffectType
from app.database import Base
from app.models.availability import MeetingAvailability
from app.models.ledger import CreditBalance
from app.models.meeting import Meeting
from app.models.user import User
from app.schemas.commands import CreateMeetingCommand, RespondToMeetingCommand
from app.services.meeting_service import MeetingService
from tests.helpers.ledger_helpers import (
    SLOT_DATE,
    SLOT_TIME,
    outbox_events,
    seed_tier_configs,
)


@pytest.fixture
def file_sessions(tmp_path) -> Iterator[sessionmaker]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 5},
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def setup_session(file_sessions) -> Iterator[Session]:
    session = file_sessions()
    seed_tier_configs(session)
    try:
        yield session
    finally:
        session.close()


def _accept(meeting_id: str, user_id: str) -> RespondToMeetingCommand:
    return RespondToMeetingCommand(
        meeting_id=meeting_id, user_id=user_id, action=ResponseAction.ACCEPT
    )


def _interleave(monkeypatch, service: MeetingService, first) -> None:
    """Run ``first`` to completion after ``service`` has loaded the meeting."""
    original = service.meeting_repository.lock_participants

    def _lock_after_rival(meeting_id: str):
        first()
        return original(meeting_id)

    monkeypatch.setattr(service.meeting_repository, "lock_participants", _lock_after_rival)


def _book(session: Session, invitee_count: int = 0):
    users = [User(email=f"race{i}@example.com", tier="basic") for i in range(2 + invitee_count)]
    session.add_all(users)
    session.flush()
    requester, host, *invitees = users
    session.add(CreditBalance(user_id=requester.id, total=2, used=0, rollover=0))
    session.add(MeetingAvailability(user_id=host.id, slot_date=SLOT_DATE, slot_time=SLOT_TIME))
    session.commit()

    meeting = MeetingService(session).create_meeting(
        CreateMeetingCommand(
            requester_id=requester.id,
            target_id=host.id,
            slot_date=SLOT_DATE,
            slot_time=SLOT_TIME,
            meeting_type="group" if invitees else "one_on_one",
            participant_ids=[u.id for u in invitees],
        )
    )
    return meeting, host, invitees


def test_duplicate_accept_confirms_once(monkeypatch, file_sessions, setup_session):
    meeting, host, _ = _book(setup_session)
    session_a, session_b = file_sessions(), file_sessions()
    service_a, service_b = MeetingService(session_a), MeetingService(session_b)
    results = {}

    def rival():
        results["a"] = service_a.respond(_accept(meeting.id, host.id))

    _interleave(monkeypatch, service_b, rival)
    results["b"] = service_b.respond(_accept(meeting.id, host.id))

    assert results["a"].confirmed is True
    assert results["b"].confirmed is False
    assert results["b"].meeting.status == "confirmed"

    check = file_sessions()
    assert check.get(Meeting, meeting.id).status == "confirmed"
    assert len(outbox_events(check, meeting.id, SideEffectType.MEETING_CONFIRMED.value)) == 1
    for s in (session_a, session_b, check):
        s.close()


def test_last_two_acceptances_confirm_once(monkeypatch, file_sessions, setup_session):
    meeting, host, [invitee] = _book(setup_session, invitee_count=1)
    session_a, session_b = file_sessions(), file_sessions()
    service_a, service_b = MeetingService(session_a), MeetingService(session_b)
    results = {}

    def rival():
        results["host"] = service_a.respond(_accept(meeting.id, host.id))

    _interleave(monkeypatch, service_b, rival)
    results["invitee"] = service_b.respond(_accept(meeting.id, invitee.id))

    # The decision is made on a fresh count, so the later response sees the host's
    assert results["host"].confirmed is False
    assert results["invitee"].confirmed is True

    check = file_sessions()
    assert check.get(Meeting, meeting.id).status == "confirmed"
    assert len(outbox_events(check, meeting.id, SideEffectType.MEETING_CONFIRMED.value)) == 1
    for s in (session_a, session_b, check):
        s.close()
