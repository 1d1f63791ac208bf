"""Stripe webhook and admin payment reconciliation."""

from pydantic import SecretStr
import pytest
import stripe

from app.core.config import settings
from app.repositories.ledger_repository import LedgerRepository
from app.routes.v1.payments import command_from_checkout_session
from tests.helpers.ledger_helpers import credits_of, transactions_of, wallet_of

WEBHOOK = "/api/v1/payments/webhooks/stripe"
RECONCILE = "/api/v1/payments/reconcile"


def _checkout_event(session_id: str, metadata: dict, amount_total: int = 2500) -> dict:
    return {
        "id": f"evt_{session_id}",
        "type": "checkout.session.completed",
        "data": {
            "object": {"id": session_id, "amount_total": amount_total, "metadata": metadata}
        },
    }


@pytest.fixture
def stripe_events(monkeypatch):
    """Deliver whatever event is queued, as if Stripe had signed it."""
    queued = {}
    monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr("whsec_test"))

    def _construct_event(payload, sig_header, secret):
        if sig_header != "t=1,v1=valid":
            raise stripe.SignatureVerificationError("bad signature", sig_header)
        return queued["event"]

    monkeypatch.setattr(stripe.Webhook, "construct_event", _construct_event)

    def _queue(event: dict) -> None:
        queued["event"] = event

    return _queue


def _post_webhook(client, signature: str = "t=1,v1=valid"):
    return client.post(WEBHOOK, content=b"{}", headers={"stripe-signature": signature})


class TestStripeWebhook:
    def test_topup_applies_once(self, client, db, make_user, stripe_events):
        user = make_user()
        stripe_events(
            _checkout_event("cs_test_1", {"user_id": user.id, "purpose": "wallet_topup"})
        )

        first = _post_webhook(client)
        second = _post_webhook(client)

        assert first.status_code == 200
        assert first.json()["status"] == "success"
        assert second.json()["status"] == "already_processed"
        assert wallet_of(db, user).balance_cents == 2500
        assert len(transactions_of(db, user)) == 1

    def test_credit_purchase(self, client, db, make_user, stripe_events):
        user = make_user()
        stripe_events(
            _checkout_event(
                "cs_test_2", {"user_id": user.id, "purpose": "credit_purchase", "credits": "5"}
            )
        )

        assert _post_webhook(client).json()["status"] == "success"
        assert credits_of(db, user).total == 5

    def test_missing_signature(self, client, stripe_events):
        response = client.post(WEBHOOK, content=b"{}")

        assert response.status_code == 400
        assert response.json()["detail"] == "No signature"

    def test_bad_signature(self, client, stripe_events):
        response = _post_webhook(client, signature="t=1,v1=forged")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    def test_unconfigured_secret(self, client, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", None)

        response = _post_webhook(client)

        assert response.status_code == 500

    def test_other_events_are_ignored(self, client, stripe_events):
        stripe_events({"id": "evt_x", "type": "invoice.paid", "data": {"object": {}}})

        body = _post_webhook(client).json()

        assert body == {"status": "ignored", "event_type": "invoice.paid", "message": ""}

    def test_metadata_without_purpose_is_ignored(self, client, make_user, stripe_events):
        stripe_events(_checkout_event("cs_test_3", {"user_id": make_user().id}))

        response = _post_webhook(client)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_unknown_user_is_rejected_without_retry(self, client, stripe_events):
        stripe_events(
            _checkout_event(
                "cs_test_4", {"user_id": "01HF4G12ABCDEF3456789XYZAB", "purpose": "wallet_topup"}
            )
        )

        response = _post_webhook(client)

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    def test_wallet_contention_is_left_for_stripe_to_retry(
        self, client, db, make_user, monkeypatch, stripe_events
    ):
        user = make_user()
        original = LedgerRepository.compare_and_set_wallet
        monkeypatch.setattr(
            LedgerRepository, "compare_and_set_wallet", lambda self, *args, **kwargs: False
        )
        stripe_events(
            _checkout_event("cs_busy", {"user_id": user.id, "purpose": "wallet_topup"})
        )

        response = _post_webhook(client)

        assert response.status_code == 409
        assert response.json()["code"] == "wallet_contention"
        assert transactions_of(db, user) == []
        wallet = wallet_of(db, user)
        assert wallet is None or wallet.balance_cents == 0

        monkeypatch.setattr(LedgerRepository, "compare_and_set_wallet", original)

        assert _post_webhook(client).json()["status"] == "success"
        assert wallet_of(db, user).balance_cents == 2500


class TestCheckoutSessionMapping:
    def test_tier_without_purpose_is_subscription(self):
        command = command_from_checkout_session(
            {"id": "cs_sub", "metadata": {"user_id": "u1", "tier": "premium"}}
        )

        assert command.type.value == "subscription"
        assert command.tier.value == "premium"

    def test_topup_uses_amount_total(self):
        command = command_from_checkout_session(
            {
                "id": "cs_top",
                "amount_total": 1234,
                "metadata": {"user_id": "u1", "purpose": "wallet_topup"},
            }
        )

        assert command.reference_id == "cs_top"
        assert command.amount_cents == 1234


class TestReconcile:
    def test_admin_replays_payment_once(self, client, db, admin, make_user, auth_as):
        user = make_user()
        body = {
            "reference_id": "pi_manual_1",
            "type": "wallet_topup",
            "user_id": user.id,
            "amount_cents": 700,
        }

        first = client.post(RECONCILE, json=body, headers=auth_as(admin))
        second = client.post(RECONCILE, json=body, headers=auth_as(admin))

        assert first.status_code == 200
        assert first.json()["applied"] is True
        assert second.json()["already_processed"] is True
        assert wallet_of(db, user).balance_cents == 700

    def test_members_cannot_reconcile(self, client, make_user, auth_as):
        member = make_user()

        response = client.post(
            RECONCILE,
            json={"reference_id": "pi_x", "type": "wallet_topup", "user_id": member.id,
                  "amount_cents": 100},
            headers=auth_as(member),
        )

        assert response.status_code == 403
