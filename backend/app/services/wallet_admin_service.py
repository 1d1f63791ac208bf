# backend/app/services/wallet_admin_service.py
"""
Administrative money operations.

Every change made here is written to the ledger through LedgerService and
recorded in ``audit_logs`` in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.enums import WalletTransactionType
from ..core.exceptions import (
    ForbiddenException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from ..models.meeting import Meeting
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from ..schemas.commands import AdjustWalletCommand
from .base import BaseService
from .ledger_service import LedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletAdjustmentResult:
    user_id: str
    balance_before_cents: int
    balance_after_cents: int
    transaction_id: str
    capped: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "transaction_id": self.transaction_id,
            "capped": self.capped,
        }


@dataclass(frozen=True)
class WalletReconciliation:
    user_id: str
    stored_balance_cents: int
    expected_balance_cents: int
    drift_cents: int
    correction_transaction_id: Optional[str] = None

    @property
    def corrected(self) -> bool:
        return self.correction_transaction_id is not None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "stored_balance_cents": self.stored_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "drift_cents": self.drift_cents,
            "corrected": self.corrected,
            "correction_transaction_id": self.correction_transaction_id,
        }


class WalletAdminService(BaseService):
    def __init__(self, db: Session, ledger_service: Optional[LedgerService] = None):
        super().__init__(db)
        self.ledger_service = ledger_service or LedgerService(db)
        self.ledger_repository = RepositoryFactory.create_ledger_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.meeting_repository = RepositoryFactory.create_meeting_repository(db)
        self.audit_repository = RepositoryFactory.create_audit_repository(db)

    @BaseService.measure_operation("adjust_wallet")
    def adjust_wallet(self, command: AdjustWalletCommand) -> WalletAdjustmentResult:
        """Credit or debit a wallet by hand. Debits stop at a zero balance."""
        admin = self._require_admin(command.admin_id)
        reason = command.reason.strip()
        if not reason:
            raise ValidationException(
                "A reason is required for wallet adjustments", code="reason_required"
            )
        if command.delta_cents == 0:
            raise ValidationException("Adjustment amount must not be zero", code="zero_adjustment")
        self._require_user(command.user_id)

        with self.transaction():
            outcome = self.ledger_service.apply_wallet_delta(
                user_id=command.user_id,
                amount_cents=command.delta_cents,
                txn_type=WalletTransactionType.ADMIN_ADJUSTMENT,
                description=f"Admin adjustment: {reason}",
                admin_id=admin.id,
            )
            self.audit_repository.record(
                entity_type="wallet",
                entity_id=command.user_id,
                action="wallet_adjusted",
                actor=admin,
                before={"balance_cents": outcome.balance_before_cents},
                after={
                    "balance_cents": outcome.balance_after_cents,
                    "delta_cents": command.delta_cents,
                    "transaction_id": outcome.transaction.id,
                },
                reason=reason,
            )

        self.logger.info(
            "Admin %s adjusted wallet %s by %+d (%d -> %d)",
            admin.id,
            command.user_id,
            command.delta_cents,
            outcome.balance_before_cents,
            outcome.balance_after_cents,
        )
        return WalletAdjustmentResult(
            user_id=command.user_id,
            balance_before_cents=outcome.balance_before_cents,
            balance_after_cents=outcome.balance_after_cents,
            transaction_id=outcome.transaction.id,
            capped=outcome.capped,
        )

    @BaseService.measure_operation("reconcile_wallet")
    def reconcile_wallet(self, admin_id: str, user_id: str) -> WalletReconciliation:
        """
        Compare the stored balance with the transaction log and fix any drift.

        The expected balance is the ``balance_after_cents`` of the newest
        transaction (zero with no history). A difference is booked as an
        ``admin_adjustment`` so the log again ends at the stored balance.
        """
        admin = self._require_admin(admin_id)
        self._require_user(user_id)

        with self.transaction():
            wallet = self.ledger_service.get_wallet(user_id)
            latest = self.ledger_repository.latest_transaction(user_id)
            expected = latest.balance_after_cents if latest is not None else 0
            stored = wallet.balance_cents
            drift = stored - expected
            if drift == 0:
                return WalletReconciliation(
                    user_id=user_id,
                    stored_balance_cents=stored,
                    expected_balance_cents=expected,
                    drift_cents=0,
                )

            self.logger.warning(
                "Wallet %s drifted by %+d (stored %d, log says %d); correcting",
                user_id,
                drift,
                stored,
                expected,
            )
            outcome = self.ledger_service.apply_wallet_delta(
                user_id=user_id,
                amount_cents=-drift,
                txn_type=WalletTransactionType.ADMIN_ADJUSTMENT,
                description=f"Balance reconciliation: stored {stored}, expected {expected}",
                admin_id=admin.id,
            )
            self.audit_repository.record(
                entity_type="wallet",
                entity_id=user_id,
                action="wallet_reconciled",
                actor=admin,
                before={"balance_cents": stored},
                after={
                    "balance_cents": outcome.balance_after_cents,
                    "transaction_id": outcome.transaction.id,
                },
                reason=f"Drift of {drift} minor units",
            )

        return WalletReconciliation(
            user_id=user_id,
            stored_balance_cents=stored,
            expected_balance_cents=expected,
            drift_cents=drift,
            correction_transaction_id=outcome.transaction.id,
        )

    @BaseService.measure_operation("set_cancellation_fee")
    def set_cancellation_fee(
        self, admin_id: str, meeting_id: str, fee_cents: int, reason: Optional[str] = None
    ) -> Meeting:
        admin = self._require_admin(admin_id)
        if fee_cents < 0:
            raise ValidationException("Cancellation fee cannot be negative", code="invalid_fee")

        with self.transaction():
            meeting = self.meeting_repository.get_for_update(meeting_id)
            if meeting is None:
                raise NotFoundException(
                    f"Meeting {meeting_id} not found", code="meeting_not_found"
                )
            if meeting.status_enum.is_terminal:
                raise InvalidStateTransitionException(
                    meeting.id, meeting.status, "change the cancellation fee of"
                )
            before = meeting.audit_snapshot()
            self.meeting_repository.set_cancellation_fee(meeting, fee_cents)
            self.audit_repository.record(
                entity_type="meeting",
                entity_id=meeting.id,
                action="cancellation_fee_updated",
                actor=admin,
                before=before,
                after=meeting.audit_snapshot(),
                reason=reason,
            )

        self.logger.info(
            "Admin %s set cancellation fee of meeting %s to %d", admin.id, meeting.id, fee_cents
        )
        return meeting

    def _require_admin(self, admin_id: str) -> User:
        admin = self.user_repository.get_by_id(admin_id)
        if admin is None or not admin.is_admin:
            raise ForbiddenException("Admin role required", code="admin_required")
        return admin

    def _require_user(self, user_id: str) -> User:
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            raise NotFoundException(f"User {user_id} not found", code="user_not_found")
        return user
