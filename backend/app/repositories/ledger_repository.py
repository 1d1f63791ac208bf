# backend/app/repositories/ledger_repository.py
"""
Ledger Store data access.

Balances are never read-modified-written through the ORM. Credit holds,
releases and grants are single atomic UPDATE statements; wallet writes are
compare-and-set on ``wallet_balances.version``. Transaction rows go through
``insert_transaction_or_get`` so a duplicate ``(reference_id, type)`` comes
back as ``InsertResult(created=False, ...)`` instead of an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Generic, List, Optional, Type, TypeVar, cast

from sqlalchemy import case, delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.exceptions import RepositoryException
from ..models.ledger import CreditBalance, WalletBalance, WalletTransaction
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class InsertResult(Generic[R]):
    """Outcome of an insert-or-get: ``created`` is False when the row already existed."""

    created: bool
    record: R


class LedgerRepository(BaseRepository[WalletTransaction]):
    """Balances and the wallet transaction log."""

    def __init__(self, db: Session):
        super().__init__(db, WalletTransaction)

    # ------------------------------------------------------------- helpers
    def _insert_ignoring_conflict(
        self, model: Type[object], conflict_columns: list[str], values: dict
    ) -> bool:
        """Insert one row unless it collides on ``conflict_columns``; True if inserted."""
        if self.dialect_name == "postgresql":
            stmt = (
                pg_insert(model)
                .values(**values)
                .on_conflict_do_nothing(index_elements=conflict_columns)
                .returning(model.id)  # type: ignore[attr-defined]
            )
            return self.db.execute(stmt).scalar_one_or_none() is not None
        stmt = insert(model).values(**values)
        if self.dialect_name == "sqlite":
            stmt = stmt.prefix_with("OR IGNORE")
        result = self.db.execute(stmt)
        return bool(getattr(result, "rowcount", 0))

    # -------------------------------------------------------------- wallet
    def get_or_create_wallet(self, user_id: str) -> WalletBalance:
        """Return the user's wallet row as currently committed, creating it at zero."""
        try:
            self._insert_ignoring_conflict(
                WalletBalance,
                ["user_id"],
                {"id": str(ulid.ULID()), "user_id": user_id, "balance_cents": 0, "version": 0},
            )
            stmt = (
                select(WalletBalance)
                .where(WalletBalance.user_id == user_id)
                .execution_options(populate_existing=True)
            )
            wallet = self.db.execute(stmt).scalar_one_or_none()
            if wallet is None:
                raise RepositoryException(f"Wallet for user {user_id} could not be created")
            return cast(WalletBalance, wallet)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load wallet for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to load wallet: {exc}") from exc

    def compare_and_set_wallet(
        self, user_id: str, expected_version: int, new_balance_cents: int
    ) -> bool:
        """Write ``new_balance_cents`` only if nobody changed the wallet since it was read."""
        result = self.db.execute(
            update(WalletBalance)
            .where(WalletBalance.user_id == user_id)
            .where(WalletBalance.version == expected_version)
            .values(balance_cents=new_balance_cents, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -------------------------------------------------------- transactions
    def find_transaction(self, reference_id: str, txn_type: str) -> Optional[WalletTransaction]:
        try:
            stmt = (
                select(WalletTransaction)
                .where(WalletTransaction.reference_id == reference_id)
                .where(WalletTransaction.type == txn_type)
            )
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to look up transaction %s/%s: %s", reference_id, txn_type, exc)
            raise RepositoryException(f"Failed to look up transaction: {exc}") from exc

    def insert_transaction_or_get(
        self,
        *,
        user_id: str,
        txn_type: str,
        amount_cents: int,
        balance_before_cents: int,
        balance_after_cents: int,
        description: Optional[str],
        reference_id: Optional[str],
        admin_id: Optional[str] = None,
        wallet_version: int = 0,
    ) -> InsertResult[WalletTransaction]:
        """
        Insert a transaction row, or return the one already holding ``(reference_id, type)``.

        Rows without a reference are always inserted.
        """
        txn_id = str(ulid.ULID())
        values = {
            "id": txn_id,
            "user_id": user_id,
            "type": txn_type,
            "amount_cents": amount_cents,
            "balance_before_cents": balance_before_cents,
            "balance_after_cents": balance_after_cents,
            "wallet_version": wallet_version,
            "description": description,
            "reference_id": reference_id,
            "admin_id": admin_id,
        }
        try:
            if reference_id is None:
                self.db.execute(insert(WalletTransaction).values(**values))
                inserted = True
            else:
                inserted = self._insert_ignoring_conflict(
                    WalletTransaction, ["reference_id", "type"], values
                )
            if inserted:
                record = self.db.get(WalletTransaction, txn_id)
                if record is None:
                    raise RepositoryException("Inserted wallet transaction could not be reloaded")
                return InsertResult(created=True, record=record)

            existing = self.find_transaction(cast(str, reference_id), txn_type)
            if existing is None:
                raise RepositoryException("Wallet transaction not found after insert conflict")
            return InsertResult(created=False, record=existing)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to insert wallet transaction: %s", str(exc))
            raise RepositoryException(f"Failed to insert wallet transaction: {exc}") from exc

    def delete_transaction(self, transaction_id: str) -> bool:
        """Remove a row whose balance update never landed."""
        result = self.db.execute(
            delete(WalletTransaction)
            .where(WalletTransaction.id == transaction_id)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def latest_transaction(self, user_id: str) -> Optional[WalletTransaction]:
        """Newest row by wallet version; clocks and ULIDs can tie or disagree."""
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(
                WalletTransaction.wallet_version.desc(),
                WalletTransaction.created_at.desc(),
                WalletTransaction.id.desc(),
            )
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_transactions(self, user_id: str, limit: int = 50) -> List[WalletTransaction]:
        try:
            stmt = (
                select(WalletTransaction)
                .where(WalletTransaction.user_id == user_id)
                .order_by(
                    WalletTransaction.wallet_version.desc(),
                    WalletTransaction.created_at.desc(),
                    WalletTransaction.id.desc(),
                )
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list transactions for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to list transactions: {exc}") from exc

    # ------------------------------------------------------------- credits
    def get_or_create_credits(self, user_id: str) -> CreditBalance:
        try:
            self._insert_ignoring_conflict(
                CreditBalance,
                ["user_id"],
                {"id": str(ulid.ULID()), "user_id": user_id, "total": 0, "used": 0, "rollover": 0},
            )
            stmt = (
                select(CreditBalance)
                .where(CreditBalance.user_id == user_id)
                .execution_options(populate_existing=True)
            )
            credits = self.db.execute(stmt).scalar_one_or_none()
            if credits is None:
                raise RepositoryException(f"Credit balance for user {user_id} could not be created")
            return cast(CreditBalance, credits)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load credits for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to load credits: {exc}") from exc

    def hold_credits(self, user_id: str, credits: int) -> bool:
        """Increase ``used`` by ``credits`` only if that many are available."""
        try:
            result = self.db.execute(
                update(CreditBalance)
                .where(CreditBalance.user_id == user_id)
                .where(CreditBalance.total - CreditBalance.used >= credits)
                .values(used=CreditBalance.used + credits)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as exc:
            self.logger.error("Failed to hold credits for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to hold credits: {exc}") from exc

    def release_credits(self, user_id: str, credits: int) -> bool:
        """Decrease ``used`` by ``credits``, never below zero."""
        try:
            result = self.db.execute(
                update(CreditBalance)
                .where(CreditBalance.user_id == user_id)
                .values(
                    used=case(
                        (CreditBalance.used - credits < 0, 0),
                        else_=CreditBalance.used - credits,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as exc:
            self.logger.error("Failed to release credits for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to release credits: {exc}") from exc

    def grant_credits(self, user_id: str, credits: int) -> bool:
        """Add ``credits`` to the lifetime ``total``."""
        try:
            result = self.db.execute(
                update(CreditBalance)
                .where(CreditBalance.user_id == user_id)
                .values(total=CreditBalance.total + credits)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as exc:
            self.logger.error("Failed to grant credits for %s: %s", user_id, str(exc))
            raise RepositoryException(f"Failed to grant credits: {exc}") from exc


__all__ = ["InsertResult", "LedgerRepository"]
