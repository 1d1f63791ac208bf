"""Admin wallet adjustments, reconciliation and cancellation-fee edits."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from app.core.enums import WalletTransactionType
from app.core.exceptions import (
    ForbiddenException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from app.models.audit_log import AuditLog
from app.models.ledger import WalletBalance, WalletTransaction
from app.schemas.commands import AdjustWalletCommand, CancelMeetingCommand
from app.services.ledger_service import LedgerService
from app.services.wallet_admin_service import WalletAdminService
from tests.helpers.ledger_helpers import transactions_of, wallet_of


@pytest.fixture
def wallet_admin(db):
    return WalletAdminService(db)


def _adjust(admin, user, delta, reason="Goodwill credit"):
    return AdjustWalletCommand(
        admin_id=admin.id, user_id=user.id, delta_cents=delta, reason=reason
    )


class TestAdjustWallet:
    def test_credit_is_logged_and_audited(self, db, wallet_admin, admin, make_user):
        user = make_user(wallet_cents=100)

        result = wallet_admin.adjust_wallet(_adjust(admin, user, 400))

        assert result.balance_before_cents == 100
        assert result.balance_after_cents == 500
        assert wallet_of(db, user).balance_cents == 500
        [row] = transactions_of(db, user)
        assert row.type == WalletTransactionType.ADMIN_ADJUSTMENT.value
        assert row.admin_id == admin.id
        assert row.description == "Admin adjustment: Goodwill credit"
        [entry] = db.query(AuditLog).filter_by(entity_id=user.id).all()
        assert entry.action == "wallet_adjusted"
        assert entry.actor_id == admin.id
        assert entry.before == {"balance_cents": 100}
        assert entry.after["balance_cents"] == 500
        assert entry.reason == "Goodwill credit"

    def test_debit_stops_at_zero(self, db, wallet_admin, admin, make_user):
        user = make_user(wallet_cents=100)

        result = wallet_admin.adjust_wallet(_adjust(admin, user, -300, reason="Chargeback"))

        assert result.capped is True
        assert result.balance_after_cents == 0

    def test_requires_admin(self, wallet_admin, make_user):
        actor, user = make_user(), make_user()

        with pytest.raises(ForbiddenException) as exc_info:
            wallet_admin.adjust_wallet(_adjust(actor, user, 100))

        assert exc_info.value.code == "admin_required"

    def test_requires_reason(self, wallet_admin, admin, make_user):
        with pytest.raises(ValidationException) as exc_info:
            wallet_admin.adjust_wallet(_adjust(admin, make_user(), 100, reason="   "))

        assert exc_info.value.code == "reason_required"

    def test_rejects_zero(self, wallet_admin, admin, make_user):
        with pytest.raises(ValidationException) as exc_info:
            wallet_admin.adjust_wallet(_adjust(admin, make_user(), 0))

        assert exc_info.value.code == "zero_adjustment"

    def test_unknown_user(self, wallet_admin, admin):
        command = AdjustWalletCommand(
            admin_id=admin.id, user_id="01HF4G12ABCDEF3456789XYZAB", delta_cents=5, reason="x"
        )

        with pytest.raises(NotFoundException):
            wallet_admin.adjust_wallet(command)


class TestReconcileWallet:
    def test_matching_wallet_is_left_alone(self, db, wallet_admin, admin, make_user):
        user = make_user()
        LedgerService(db).apply_wallet_delta(
            user.id, 1000, WalletTransactionType.TOPUP, "Top-up", reference_id="pi_ok"
        )
        db.commit()

        result = wallet_admin.reconcile_wallet(admin.id, user.id)

        assert result.drift_cents == 0
        assert result.corrected is False
        assert len(transactions_of(db, user)) == 1

    def test_newest_row_is_picked_by_wallet_version(self, db, wallet_admin, admin, make_user):
        user = make_user()
        ledger = LedgerService(db)
        first = ledger.apply_wallet_delta(
            user.id, 1000, WalletTransactionType.TOPUP, "Top-up", reference_id="pi_skew"
        )
        second = ledger.apply_wallet_delta(
            user.id, -300, WalletTransactionType.ADMIN_ADJUSTMENT, "Manual debit"
        )
        db.commit()
        # Second writer's clock ran behind the first's
        db.execute(
            update(WalletTransaction)
            .where(WalletTransaction.id == second.transaction.id)
            .values(created_at=first.transaction.created_at - timedelta(seconds=1))
        )
        db.commit()

        result = wallet_admin.reconcile_wallet(admin.id, user.id)

        assert second.transaction.wallet_version == 2
        assert result.expected_balance_cents == 700
        assert result.drift_cents == 0
        assert wallet_of(db, user).balance_cents == 700
        assert len(transactions_of(db, user)) == 2

    def test_drift_is_booked_as_adjustment(self, db, wallet_admin, admin, make_user):
        user = make_user()
        LedgerService(db).apply_wallet_delta(
            user.id, 1000, WalletTransactionType.TOPUP, "Top-up", reference_id="pi_drift"
        )
        db.commit()
        db.execute(
            update(WalletBalance).where(WalletBalance.user_id == user.id).values(balance_cents=1200)
        )
        db.commit()

        result = wallet_admin.reconcile_wallet(admin.id, user.id)

        assert result.stored_balance_cents == 1200
        assert result.expected_balance_cents == 1000
        assert result.drift_cents == 200
        assert result.corrected is True
        assert wallet_of(db, user).balance_cents == 1000
        latest = db.get(WalletTransaction, result.correction_transaction_id)
        assert latest.amount_cents == -200
        assert latest.balance_after_cents == 1000
        actions = [e.action for e in db.query(AuditLog).filter_by(entity_id=user.id)]
        assert actions == ["wallet_reconciled"]


class TestSetCancellationFee:
    def test_updates_fee_with_audit(self, db, wallet_admin, admin, make_user, booking_command):
        from app.services.meeting_service import MeetingService

        requester, host = make_user(credits=1), make_user()
        meeting = MeetingService(db).create_meeting(booking_command(requester, host))

        updated = wallet_admin.set_cancellation_fee(admin.id, meeting.id, 1500, reason="Peak time")

        assert updated.cancellation_fee_cents == 1500
        [entry] = db.query(AuditLog).filter_by(entity_id=meeting.id).all()
        assert entry.action == "cancellation_fee_updated"
        assert entry.before["cancellation_fee_cents"] == 500
        assert entry.after["cancellation_fee_cents"] == 1500
        assert entry.reason == "Peak time"

    def test_terminal_meeting_is_rejected(
        self, db, wallet_admin, admin, make_user, booking_command
    ):
        from app.services.meeting_service import MeetingService

        requester, host = make_user(credits=1), make_user()
        service = MeetingService(db)
        meeting = service.create_meeting(booking_command(requester, host))
        service.cancel_meeting(
            CancelMeetingCommand(meeting_id=meeting.id, user_id=requester.id, confirmed=True)
        )

        with pytest.raises(InvalidStateTransitionException):
            wallet_admin.set_cancellation_fee(admin.id, meeting.id, 0)

    def test_negative_fee_rejected(self, wallet_admin, admin):
        with pytest.raises(ValidationException):
            wallet_admin.set_cancellation_fee(admin.id, "01HF4G12ABCDEF3456789XYZAB", -1)

    def test_missing_meeting(self, wallet_admin, admin):
        with pytest.raises(NotFoundException):
            wallet_admin.set_cancellation_fee(admin.id, "01HF4G12ABCDEF3456789XYZAB", 100)
