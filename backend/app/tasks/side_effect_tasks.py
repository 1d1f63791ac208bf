# backend/app/tasks/side_effect_tasks.py
"""
Celery tasks delivering the meeting side-effect outbox.

Implements a two-step workflow:
1. `side_effects.dispatch_pending` periodically enqueues delivery tasks.
2. `side_effects.deliver_event` performs delivery with retries and backoff.

Delivery failures are recorded on the outbox row and counted; they never
touch the meeting that produced the event.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from time import monotonic
from typing import Any, Iterator, Optional

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database import SessionLocal
from app.models.side_effect_outbox import SideEffectStatus
from app.monitoring.prometheus_metrics import PrometheusMetrics
from app.repositories.factory import RepositoryFactory
from app.services.side_effects import SideEffectDispatcher, SideEffectTemporaryError
from app.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(frozen=True)
class DeliveryOutcome:
    event_id: str
    status: str  # sent | retry | failed | missing | skipped
    attempt: int = 0
    backoff_seconds: int = 0
    error: Optional[str] = None


def deliver_outbox_event(
    session: Session,
    event_id: str,
    dispatcher: Optional[SideEffectDispatcher] = None,
    max_attempts: Optional[int] = None,
) -> DeliveryOutcome:
    """
    Deliver one outbox row and record the result on it.

    Commits the row's new state. Returns ``retry`` with the backoff to wait
    when the attempt failed and attempts remain.
    """
    dispatcher = dispatcher or SideEffectDispatcher()
    max_attempts = max_attempts or settings.side_effect_max_attempts
    repo = RepositoryFactory.create_side_effect_outbox_repository(session)

    event = repo.get_by_id(event_id)
    if event is None:
        logger.warning("Outbox event %s missing; skipping", event_id)
        return DeliveryOutcome(event_id=event_id, status="missing")
    if event.status != SideEffectStatus.PENDING.value:
        return DeliveryOutcome(event_id=event_id, status="skipped", attempt=event.attempt_count)

    attempt_number = event.attempt_count + 1
    PrometheusMetrics.record_side_effect_attempt(event.event_type)
    start = monotonic()
    try:
        dispatcher.dispatch(event.event_type, dict(event.payload or {}))
    except Exception as exc:
        PrometheusMetrics.observe_side_effect_dispatch(event.event_type, monotonic() - start)
        backoff = _next_backoff(attempt_number)
        terminal = attempt_number >= max_attempts
        repo.mark_failed(
            event.id,
            attempt_count=attempt_number,
            backoff_seconds=backoff,
            error=str(exc),
            terminal=terminal,
        )
        session.commit()
        if terminal:
            PrometheusMetrics.record_side_effect_outcome(event.event_type, "failed")
            logger.error(
                "Outbox event %s failed permanently after %s attempts: %s",
                event_id,
                attempt_number,
                exc,
            )
            return DeliveryOutcome(
                event_id=event_id, status="failed", attempt=attempt_number, error=str(exc)
            )
        level_fn = logger.warning if isinstance(exc, SideEffectTemporaryError) else logger.error
        level_fn(
            "Outbox event %s attempt=%s failed; retrying in %ss: %s",
            event_id,
            attempt_number,
            backoff,
            exc,
        )
        return DeliveryOutcome(
            event_id=event_id,
            status="retry",
            attempt=attempt_number,
            backoff_seconds=backoff,
            error=str(exc),
        )

    PrometheusMetrics.observe_side_effect_dispatch(event.event_type, monotonic() - start)
    repo.mark_sent(event.id, attempt_number)
    session.commit()
    PrometheusMetrics.record_side_effect_outcome(event.event_type, "sent")
    logger.info(
        "Delivered outbox event %s type=%s attempts=%s",
        event_id,
        event.event_type,
        attempt_number,
    )
    return DeliveryOutcome(event_id=event_id, status="sent", attempt=attempt_number)


@celery_app.task(name="side_effects.dispatch_pending", max_retries=0)
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        repo = RepositoryFactory.create_side_effect_outbox_repository(session)
        pending = repo.fetch_pending(limit=settings.side_effect_batch_size)
        for event in pending:
            deliver_event.apply_async((event.id,))
        scheduled: int = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


@celery_app.task(
    name="side_effects.deliver_event",
    bind=True,
    max_retries=len(BACKOFF_SECONDS),
    default_retry_delay=BACKOFF_SECONDS[0],
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    session = SessionLocal()
    try:
        outcome = deliver_outbox_event(session, event_id)
    finally:
        session.close()

    if outcome.status == "retry":
        raise self.retry(
            countdown=outcome.backoff_seconds,
            exc=SideEffectTemporaryError(outcome.error or "delivery failed"),
        )
    return outcome.event_id if outcome.status == "sent" else None
