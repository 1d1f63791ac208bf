# backend/tests/conftest.py
"""
Shared fixtures for the meetings and ledger test suite.

Every test gets a fresh in-memory SQLite database built from the model
metadata and seeded with the tier contact matrix. Tests that need two
connections racing on the same rows build their own file-backed engine.
"""

import os

# Set before any app import so the module-level engine never touches a real DB
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SENTRY_DSN", "")

from datetime import date, time
import itertools
from typing import Callable, Iterator, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401  (registers every table)
from app.core.enums import AccountTier, MeetingType, UserRole
from app.database import Base
from app.models.availability import MeetingAvailability
from app.models.ledger import CreditBalance, WalletBalance
from app.models.user import User
from app.schemas.commands import CreateMeetingCommand
from app.services.meeting_service import MeetingService
from tests.helpers.ledger_helpers import SLOT_DATE, SLOT_TIME, seed_tier_configs


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = TestSessionLocal()
    seed_tier_configs(session)
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    counter = itertools.count(1)

    def _make(
        tier: str = AccountTier.BASIC.value,
        role: str = UserRole.MEMBER.value,
        credits: int = 0,
        wallet_cents: int = 0,
    ) -> User:
        n = next(counter)
        user = User(
            email=f"member{n}@example.com",
            display_name=f"Member {n}",
            tier=tier,
            role=role,
        )
        db.add(user)
        db.flush()
        if credits:
            db.add(CreditBalance(user_id=user.id, total=credits, used=0, rollover=0))
        if wallet_cents:
            db.add(WalletBalance(user_id=user.id, balance_cents=wallet_cents, version=0))
        db.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user: Callable[..., User]) -> User:
    return make_user(tier=AccountTier.VIP.value, role=UserRole.ADMIN.value)


@pytest.fixture
def add_slot(db: Session) -> Callable[..., MeetingAvailability]:
    def _add(
        user: User, slot_date: date = SLOT_DATE, slot_time: time = SLOT_TIME
    ) -> MeetingAvailability:
        slot = MeetingAvailability(user_id=user.id, slot_date=slot_date, slot_time=slot_time)
        db.add(slot)
        db.commit()
        return slot

    return _add


@pytest.fixture
def booking_command(
    add_slot: Callable[..., MeetingAvailability],
) -> Callable[..., CreateMeetingCommand]:
    """Publish a slot for ``host`` and build the command that books it."""

    def _build(
        requester: User,
        host: User,
        invitees: Optional[List[User]] = None,
        slot_date: date = SLOT_DATE,
        slot_time: time = SLOT_TIME,
    ) -> CreateMeetingCommand:
        add_slot(host, slot_date, slot_time)
        return CreateMeetingCommand(
            requester_id=requester.id,
            target_id=host.id,
            slot_date=slot_date,
            slot_time=slot_time,
            meeting_type=MeetingType.GROUP if invitees else MeetingType.ONE_ON_ONE,
            participant_ids=[u.id for u in invitees or []],
        )

    return _build


@pytest.fixture
def meeting_service(db: Session) -> MeetingService:
    return MeetingService(db)
