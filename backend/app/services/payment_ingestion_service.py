# backend/app/services/payment_ingestion_service.py
"""
Idempotency guard for inbound payment confirmations.

Payment providers deliver at least once, and operators may replay an event
through manual reconciliation. Every event carries a ``reference_id``; the
``(reference_id, type)`` row in ``wallet_transactions`` is the record that it
was applied. A pre-check answers the common retry cheaply. The unique
constraint settles true races, surfacing as ``created=False`` from the ledger.
Both branches report ``already_processed`` and change nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import PaymentEventType
from ..core.exceptions import NotFoundException
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.commands import IngestPaymentEventCommand
from .base import BaseService
from .ledger_service import LedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestPaymentResult:
    applied: bool
    already_processed: bool
    reference_id: str
    type: str
    balance_after_cents: Optional[int] = None
    credits_granted: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "applied": self.applied,
            "already_processed": self.already_processed,
            "reference_id": self.reference_id,
            "type": self.type,
            "balance_after_cents": self.balance_after_cents,
            "credits_granted": self.credits_granted,
        }


class PaymentIngestionService(BaseService):
    """Applies confirmed payments to the ledger exactly once."""

    def __init__(self, db: Session, ledger_service: Optional[LedgerService] = None):
        super().__init__(db)
        self.ledger_service = ledger_service or LedgerService(db)
        self.ledger_repository = RepositoryFactory.create_ledger_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("ingest_payment_event")
    def ingest(self, command: IngestPaymentEventCommand) -> IngestPaymentResult:
        txn_type = command.type.transaction_type

        existing = self.ledger_repository.find_transaction(command.reference_id, txn_type.value)
        if existing is not None:
            return self._already_processed(command, existing.balance_after_cents)

        if self.user_repository.get_by_id(command.user_id) is None:
            raise NotFoundException(
                f"User {command.user_id} not found", code="user_not_found"
            )

        with self.transaction():
            if command.type is PaymentEventType.WALLET_TOPUP:
                result = self._apply_topup(command)
            elif command.type is PaymentEventType.CREDIT_PURCHASE:
                result = self._apply_credit_purchase(command)
            else:
                result = self._apply_subscription(command)

        prometheus_metrics.record_payment_event(
            command.type.value, "applied" if result.applied else "duplicate"
        )
        return result

    def _already_processed(
        self, command: IngestPaymentEventCommand, balance_after_cents: Optional[int]
    ) -> IngestPaymentResult:
        prometheus_metrics.record_payment_event(command.type.value, "duplicate")
        self.logger.info(
            "Payment event %s (%s) already processed", command.reference_id, command.type.value
        )
        return IngestPaymentResult(
            applied=False,
            already_processed=True,
            reference_id=command.reference_id,
            type=command.type.value,
            balance_after_cents=balance_after_cents,
        )

    def _apply_topup(self, command: IngestPaymentEventCommand) -> IngestPaymentResult:
        amount = int(command.amount_cents or 0)
        outcome = self.ledger_service.apply_wallet_delta(
            user_id=command.user_id,
            amount_cents=amount,
            txn_type=command.type.transaction_type,
            description=f"Wallet top-up of {settings.format_minor_units(amount)} "
            f"{settings.currency_code.upper()}",
            reference_id=command.reference_id,
        )
        return IngestPaymentResult(
            applied=outcome.created,
            already_processed=not outcome.created,
            reference_id=command.reference_id,
            type=command.type.value,
            balance_after_cents=outcome.balance_after_cents,
        )

    def _apply_credit_purchase(self, command: IngestPaymentEventCommand) -> IngestPaymentResult:
        credits = int(command.credits or 0)
        # Zero-amount row records the reference; credits move only if it is new
        outcome = self.ledger_service.apply_wallet_delta(
            user_id=command.user_id,
            amount_cents=0,
            txn_type=command.type.transaction_type,
            description=f"Purchased {credits} meeting credits",
            reference_id=command.reference_id,
        )
        if outcome.created:
            self.ledger_service.grant_credits(command.user_id, credits)
        return IngestPaymentResult(
            applied=outcome.created,
            already_processed=not outcome.created,
            reference_id=command.reference_id,
            type=command.type.value,
            balance_after_cents=outcome.balance_after_cents,
            credits_granted=credits if outcome.created else 0,
        )

    def _apply_subscription(self, command: IngestPaymentEventCommand) -> IngestPaymentResult:
        tier = command.tier.value if command.tier is not None else ""
        outcome = self.ledger_service.apply_wallet_delta(
            user_id=command.user_id,
            amount_cents=0,
            txn_type=command.type.transaction_type,
            description=f"Subscription to {tier} plan",
            reference_id=command.reference_id,
        )
        granted = 0
        if outcome.created:
            self.user_repository.set_tier(command.user_id, tier)
            granted = settings.credits_for_tier(tier)
            if granted > 0:
                self.ledger_service.grant_credits(command.user_id, granted)
            self.logger.info("User %s subscribed to %s (+%d credits)", command.user_id, tier, granted)
        return IngestPaymentResult(
            applied=outcome.created,
            already_processed=not outcome.created,
            reference_id=command.reference_id,
            type=command.type.value,
            balance_after_cents=outcome.balance_after_cents,
            credits_granted=granted,
        )
