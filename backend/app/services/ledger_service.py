# backend/app/services/ledger_service.py
"""
Ledger Store service: the only code that moves wallet money or credits.

Methods here run inside the caller's transaction (they never commit); the
calling service owns the ``with self.transaction()`` block so a meeting
transition and its ledger effects commit or roll back together.

Wallet write protocol:
1. insert the transaction row keyed by ``(reference_id, type)``; an existing
   row means the movement was already applied, so nothing else happens;
2. compare-and-set the balance against the version read in step 1, inside a
   SAVEPOINT;
3. a lost race deletes the row and retries; a failed update deletes the row
   (compensation). If that delete fails too, the inconsistency is logged at
   CRITICAL for manual reconciliation and LedgerInconsistencyException is raised.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import WalletTransactionType
from ..core.exceptions import (
    ConflictException,
    InsufficientCreditsException,
    LedgerInconsistencyException,
    ServiceException,
    ValidationException,
)
from ..models.ledger import CreditBalance, WalletBalance, WalletTransaction
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletDeltaResult:
    created: bool
    balance_before_cents: int
    balance_after_cents: int
    transaction: WalletTransaction
    capped: bool = False

    @property
    def already_processed(self) -> bool:
        return not self.created


@dataclass(frozen=True)
class WalletSummary:
    wallet: WalletBalance
    credits: CreditBalance
    transactions: List[WalletTransaction]


class LedgerService(BaseService):
    """Applies wallet and credit movements for one session."""

    def __init__(self, db: Session, max_retries: Optional[int] = None):
        super().__init__(db)
        self.ledger_repository = RepositoryFactory.create_ledger_repository(db)
        self.max_retries = max_retries or settings.ledger_max_retries

    # ------------------------------------------------------------------ wallet
    @BaseService.measure_operation("apply_wallet_delta")
    def apply_wallet_delta(
        self,
        user_id: str,
        amount_cents: int,
        txn_type: WalletTransactionType,
        description: str,
        reference_id: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> WalletDeltaResult:
        """
        Apply a signed wallet movement at most once per ``(reference_id, type)``.

        The resulting balance is ``max(0, balance + amount)``: a debit larger than
        the balance collects only down to zero and the row notes the cap.
        """
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
            raise ValidationException("amount_cents must be an integer number of minor units")
        repo = self.ledger_repository

        for attempt in range(1, self.max_retries + 1):
            if reference_id is not None:
                existing = repo.find_transaction(reference_id, txn_type.value)
                if existing is not None:
                    return self._replayed(existing)

            wallet = repo.get_or_create_wallet(user_id)
            before = wallet.balance_cents
            after, capped = self._clamp(before, amount_cents)
            note = description
            if capped:
                note = f"{description} (balance capped at {settings.format_minor_units(0)})"

            inserted = repo.insert_transaction_or_get(
                user_id=user_id,
                txn_type=txn_type.value,
                amount_cents=amount_cents,
                balance_before_cents=before,
                balance_after_cents=after,
                description=note,
                reference_id=reference_id,
                admin_id=admin_id,
                wallet_version=wallet.version + 1,
            )
            if not inserted.created:
                # Concurrent delivery inserted the same reference first
                return self._replayed(inserted.record)

            txn = inserted.record
            try:
                with self.db.begin_nested():
                    updated = repo.compare_and_set_wallet(user_id, wallet.version, after)
            except SQLAlchemyError as exc:
                self._remove_unapplied(txn, user_id, exc)
                prometheus_metrics.record_ledger_write(txn_type.value, "compensated")
                raise ServiceException(
                    "Wallet balance update failed; the transaction was reverted",
                    code="ledger_write_failed",
                    details={"user_id": user_id, "type": txn_type.value},
                ) from exc

            if updated:
                prometheus_metrics.record_ledger_write(txn_type.value, "applied")
                self.logger.info(
                    "Wallet %s %+d (%s) %d -> %d ref=%s",
                    user_id,
                    amount_cents,
                    txn_type.value,
                    before,
                    after,
                    reference_id,
                )
                return WalletDeltaResult(
                    created=True,
                    balance_before_cents=before,
                    balance_after_cents=after,
                    transaction=txn,
                    capped=capped,
                )

            self._remove_unapplied(txn, user_id, None)
            prometheus_metrics.record_ledger_retry()
            self.logger.info(
                "Wallet %s changed concurrently; retrying (%d/%d)",
                user_id,
                attempt,
                self.max_retries,
            )

        raise ConflictException(
            "Wallet is being updated concurrently, please retry",
            code="wallet_contention",
            details={"user_id": user_id},
        )

    @staticmethod
    def _clamp(balance_cents: int, amount_cents: int) -> tuple[int, bool]:
        raw = balance_cents + amount_cents
        if raw < 0:
            return 0, True
        return raw, False

    def _replayed(self, txn: WalletTransaction) -> WalletDeltaResult:
        prometheus_metrics.record_ledger_write(txn.type, "replayed")
        self.logger.info("Ledger replay for ref=%s type=%s ignored", txn.reference_id, txn.type)
        return WalletDeltaResult(
            created=False,
            balance_before_cents=txn.balance_before_cents,
            balance_after_cents=txn.balance_after_cents,
            transaction=txn,
        )

    def _remove_unapplied(
        self, txn: WalletTransaction, user_id: str, cause: Optional[BaseException]
    ) -> None:
        """Delete a transaction row whose balance update did not land."""
        txn_id = txn.id
        if cause is not None:
            self.logger.error(
                "Balance update failed for wallet %s; reverting transaction %s: %s",
                user_id,
                txn_id,
                cause,
            )
        try:
            self.ledger_repository.delete_transaction(txn_id)
        except SQLAlchemyError as cleanup_exc:
            prometheus_metrics.record_ledger_write(txn.type, "inconsistent")
            self.logger.critical(
                "LEDGER INCONSISTENCY: transaction %s for user %s has no matching balance "
                "update and could not be removed; manual reconciliation required: %s",
                txn_id,
                user_id,
                cleanup_exc,
            )
            raise LedgerInconsistencyException(
                user_id=user_id,
                transaction_id=txn_id,
                reason=str(cause or cleanup_exc),
            ) from cleanup_exc

    # ----------------------------------------------------------------- credits
    @BaseService.measure_operation("apply_credit_delta")
    def apply_credit_delta(self, user_id: str, delta_used: int) -> CreditBalance:
        """
        Move ``used`` by ``delta_used``: positive holds, negative releases.

        A hold succeeds only if enough credits are available at write time; a
        release never takes ``used`` below zero.
        """
        repo = self.ledger_repository
        credits = repo.get_or_create_credits(user_id)
        if delta_used > 0:
            if not repo.hold_credits(user_id, delta_used):
                current = repo.get_or_create_credits(user_id)
                raise InsufficientCreditsException(
                    credits_required=delta_used, credits_available=current.available
                )
        elif delta_used < 0:
            repo.release_credits(user_id, -delta_used)
        else:
            return credits
        return repo.get_or_create_credits(user_id)

    def grant_credits(self, user_id: str, credits: int) -> CreditBalance:
        """Add purchased or allocated credits to the lifetime total."""
        if credits <= 0:
            raise ValidationException("credits must be positive")
        repo = self.ledger_repository
        repo.get_or_create_credits(user_id)
        repo.grant_credits(user_id, credits)
        return repo.get_or_create_credits(user_id)

    # ------------------------------------------------------------------- reads
    def get_wallet(self, user_id: str) -> WalletBalance:
        return self.ledger_repository.get_or_create_wallet(user_id)

    def get_credits(self, user_id: str) -> CreditBalance:
        return self.ledger_repository.get_or_create_credits(user_id)

    def recent_transactions(self, user_id: str, limit: int = 50) -> List[WalletTransaction]:
        return self.ledger_repository.list_transactions(user_id, limit=limit)

    def wallet_summary(self, user_id: str, limit: int = 20) -> WalletSummary:
        """Balances and recent history; balance rows are created on first read."""
        with self.transaction():
            wallet = self.get_wallet(user_id)
            credits = self.get_credits(user_id)
            transactions = self.recent_transactions(user_id, limit=limit)
        return WalletSummary(wallet=wallet, credits=credits, transactions=transactions)
