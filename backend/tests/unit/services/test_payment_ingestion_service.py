"""Exactly-once application of confirmed payment events."""

from pydantic import ValidationError
import pytest

from app.core.config import settings
from app.core.enums import PaymentEventType
from app.core.exceptions import NotFoundException
from app.models.user import User
from app.schemas.commands import IngestPaymentEventCommand
from app.services.payment_ingestion_service import PaymentIngestionService
from tests.helpers.ledger_helpers import credits_of, transactions_of, wallet_of


@pytest.fixture
def ingestion(db):
    return PaymentIngestionService(db)


def _topup(user_id: str, reference: str = "cs_topup_1", amount: int = 2500):
    return IngestPaymentEventCommand(
        reference_id=reference,
        type=PaymentEventType.WALLET_TOPUP,
        user_id=user_id,
        amount_cents=amount,
    )


class TestWalletTopup:
    def test_first_delivery_applies(self, db, ingestion, make_user):
        user = make_user()

        result = ingestion.ingest(_topup(user.id))

        assert result.applied is True
        assert result.already_processed is False
        assert result.balance_after_cents == 2500
        assert wallet_of(db, user).balance_cents == 2500

    def test_redelivery_is_a_no_op(self, db, ingestion, make_user):
        user = make_user()
        ingestion.ingest(_topup(user.id))

        replays = [ingestion.ingest(_topup(user.id)) for _ in range(3)]

        assert all(r.already_processed for r in replays)
        assert all(not r.applied for r in replays)
        assert wallet_of(db, user).balance_cents == 2500
        assert len(transactions_of(db, user)) == 1

    def test_distinct_references_both_apply(self, db, ingestion, make_user):
        user = make_user()

        ingestion.ingest(_topup(user.id, reference="cs_a", amount=1000))
        ingestion.ingest(_topup(user.id, reference="cs_b", amount=500))

        assert wallet_of(db, user).balance_cents == 1500

    def test_description_names_amount_and_currency(self, db, ingestion, make_user):
        user = make_user()

        ingestion.ingest(_topup(user.id, amount=1999))

        row = transactions_of(db, user)[0]
        assert row.description == f"Wallet top-up of 19.99 {settings.currency_code.upper()}"


class TestCreditPurchase:
    def test_grants_credits_once(self, db, ingestion, make_user):
        user = make_user()
        command = IngestPaymentEventCommand(
            reference_id="cs_credits_1",
            type=PaymentEventType.CREDIT_PURCHASE,
            user_id=user.id,
            credits=10,
        )

        first = ingestion.ingest(command)
        second = ingestion.ingest(command)

        assert first.credits_granted == 10
        assert second.already_processed is True
        assert second.credits_granted == 0
        assert credits_of(db, user).total == 10
        assert wallet_of(db, user).balance_cents == 0


class TestSubscription:
    def test_sets_tier_and_allocates_credits(self, db, ingestion, make_user):
        user = make_user()
        command = IngestPaymentEventCommand(
            reference_id="cs_sub_1",
            type=PaymentEventType.SUBSCRIPTION,
            user_id=user.id,
            tier="standard",
        )

        result = ingestion.ingest(command)
        ingestion.ingest(command)

        db.expire_all()
        assert db.get(User, user.id).tier == "standard"
        assert result.credits_granted == settings.credits_for_tier("standard")
        assert credits_of(db, user).total == settings.credits_for_tier("standard")


def test_unknown_user_is_rejected(ingestion):
    with pytest.raises(NotFoundException) as exc_info:
        ingestion.ingest(_topup("01HF4G12ABCDEF3456789XYZAB"))

    assert exc_info.value.code == "user_not_found"


@pytest.mark.parametrize(
    "payment_type, missing",
    [
        (PaymentEventType.WALLET_TOPUP, "amount_cents"),
        (PaymentEventType.CREDIT_PURCHASE, "credits"),
        (PaymentEventType.SUBSCRIPTION, "tier"),
    ],
)
def test_command_requires_type_payload(payment_type, missing):
    with pytest.raises(ValidationError) as exc_info:
        IngestPaymentEventCommand(reference_id="ref", type=payment_type, user_id="user")

    assert missing in str(exc_info.value)


def test_command_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        IngestPaymentEventCommand(
            reference_id="ref",
            type=PaymentEventType.WALLET_TOPUP,
            user_id="user",
            amount_cents=100,
            currency="eur",
        )
