"""Wallet summary, admin ledger routes and the monitoring endpoints."""

from app.core.enums import WalletTransactionType
from app.models.audit_log import AuditLog
from app.services.ledger_service import LedgerService
from tests.helpers.ledger_helpers import wallet_of


def test_wallet_summary(client, db, make_user, auth_as):
    user = make_user(credits=4)
    LedgerService(db).apply_wallet_delta(
        user.id, 1999, WalletTransactionType.TOPUP, "Top-up", reference_id="cs_summary"
    )
    db.commit()

    response = client.get("/api/v1/wallet", headers=auth_as(user))

    assert response.status_code == 200
    body = response.json()
    assert body["balance_cents"] == 1999
    assert body["balance_display"] == "19.99"
    assert body["currency"] == "usd"
    assert body["credits_available"] == 4
    assert [t["reference_id"] for t in body["recent_transactions"]] == ["cs_summary"]


def test_new_member_sees_empty_wallet(client, make_user, auth_as):
    body = client.get("/api/v1/wallet", headers=auth_as(make_user())).json()

    assert body["balance_cents"] == 0
    assert body["recent_transactions"] == []


class TestAdminRoutes:
    def test_adjust_wallet(self, client, db, admin, make_user, auth_as):
        user = make_user(wallet_cents=250)

        response = client.post(
            f"/api/v1/admin/wallets/{user.id}/adjust",
            json={"delta_cents": -100, "reason": "Duplicate top-up"},
            headers=auth_as(admin),
        )

        assert response.status_code == 200
        assert response.json()["balance_after_cents"] == 150
        assert wallet_of(db, user).balance_cents == 150

    def test_adjust_requires_admin(self, client, make_user, auth_as):
        member, user = make_user(), make_user()

        response = client.post(
            f"/api/v1/admin/wallets/{user.id}/adjust",
            json={"delta_cents": 100, "reason": "Please"},
            headers=auth_as(member),
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_adjust_with_blank_reason(self, client, admin, make_user, auth_as):
        response = client.post(
            f"/api/v1/admin/wallets/{make_user().id}/adjust",
            json={"delta_cents": 100, "reason": ""},
            headers=auth_as(admin),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "reason_required"

    def test_reconcile_clean_wallet(self, client, admin, make_user, auth_as):
        user = make_user()

        response = client.post(
            f"/api/v1/admin/wallets/{user.id}/reconcile", headers=auth_as(admin)
        )

        assert response.status_code == 200
        assert response.json()["corrected"] is False
        assert response.json()["drift_cents"] == 0

    def test_set_cancellation_fee(
        self, client, db, admin, make_user, booking_command, meeting_service, auth_as
    ):
        requester, host = make_user(credits=1), make_user()
        meeting = meeting_service.create_meeting(booking_command(requester, host))

        response = client.patch(
            f"/api/v1/admin/meetings/{meeting.id}/cancellation-fee",
            json={"fee_cents": 0, "reason": "Waived"},
            headers=auth_as(admin),
        )

        assert response.status_code == 200
        assert response.json()["cancellation_fee_cents"] == 0
        entry = db.query(AuditLog).filter_by(entity_id=meeting.id).one()
        assert entry.action == "cancellation_fee_updated"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_exposes_prometheus_text(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
