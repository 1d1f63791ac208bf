# backend/alembic/versions/0001_meetings_ledger.py
"""Meetings and ledger - users, tier matrix, availability, meetings, balances, outbox, audit

Revision ID: 0001_meetings_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the whole schema for the meeting lifecycle and its ledger and seeds
the default tier contact matrix.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "0001_meetings_ledger"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(120), nullable=True),
        sa.Column("tier", sa.String(20), nullable=False, server_default="basic"),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )

    tier_configs = op.create_table(
        "account_tier_configs",
        sa.Column("tier", sa.String(20), primary_key=True),
        sa.Column("can_contact_basic", sa.Boolean(), nullable=False),
        sa.Column("can_contact_standard", sa.Boolean(), nullable=False),
        sa.Column("can_contact_premium", sa.Boolean(), nullable=False),
        sa.Column("can_contact_vip", sa.Boolean(), nullable=False),
        sa.Column("surcharge_premium", sa.Boolean(), nullable=False),
        sa.Column("surcharge_vip", sa.Boolean(), nullable=False),
        sa.Column("meeting_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.bulk_insert(
        tier_configs,
        [
            {
                "tier": "basic",
                "can_contact_basic": True,
                "can_contact_standard": False,
                "can_contact_premium": False,
                "can_contact_vip": False,
                "surcharge_premium": False,
                "surcharge_vip": False,
                "meeting_fee_cents": 500,
            },
            {
                "tier": "standard",
                "can_contact_basic": True,
                "can_contact_standard": True,
                "can_contact_premium": False,
                "can_contact_vip": False,
                "surcharge_premium": False,
                "surcharge_vip": False,
                "meeting_fee_cents": 500,
            },
            {
                "tier": "premium",
                "can_contact_basic": True,
                "can_contact_standard": True,
                "can_contact_premium": True,
                "can_contact_vip": True,
                "surcharge_premium": False,
                "surcharge_vip": True,
                "meeting_fee_cents": 1000,
            },
            {
                "tier": "vip",
                "can_contact_basic": True,
                "can_contact_standard": True,
                "can_contact_premium": True,
                "can_contact_vip": True,
                "surcharge_premium": False,
                "surcharge_vip": False,
                "meeting_fee_cents": 1000,
            },
        ],
    )

    op.create_table(
        "meeting_availability",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id", sa.String(26), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("slot_time", sa.Time(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "slot_date", "slot_time", name="uq_meeting_availability_slot"
        ),
    )
    op.create_index("ix_meeting_availability_user_id", "meeting_availability", ["user_id"])

    op.create_table(
        "meetings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("host_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location_pref", sa.String(120), nullable=True),
        sa.Column("fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cancellation_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_held", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("charge_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("canceled_by", sa.String(26), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("outcome", sa.String(30), nullable=True),
        sa.Column("fault", sa.String(30), nullable=True),
        sa.Column("finalized_by", sa.String(26), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("finalization_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("fee_cents >= 0", name="ck_meetings_fee_non_negative"),
        sa.CheckConstraint(
            "cancellation_fee_cents >= 0", name="ck_meetings_cancellation_fee_non_negative"
        ),
        sa.CheckConstraint("credits_held >= 0", name="ck_meetings_credits_held_non_negative"),
    )
    op.create_index("ix_meetings_status", "meetings", ["status"])
    op.create_index("ix_meetings_scheduled_at", "meetings", ["scheduled_at"])
    op.create_index("ix_meetings_requester_id", "meetings", ["requester_id"])
    op.create_index("ix_meetings_host_id", "meetings", ["host_id"])

    op.create_table(
        "meeting_participants",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "meeting_id",
            sa.String(26),
            sa.ForeignKey("meetings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(10), nullable=False),
        sa.Column("response", sa.String(20), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_meeting_participants_user"),
    )
    op.create_index("ix_meeting_participants_meeting_id", "meeting_participants", ["meeting_id"])
    op.create_index("ix_meeting_participants_user_id", "meeting_participants", ["user_id"])

    op.create_table(
        "credit_balances",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(26),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rollover", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("used >= 0", name="ck_credit_balances_used_non_negative"),
    )

    op.create_table(
        "wallet_balances",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(26),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("balance_cents >= 0", name="ck_wallet_balances_non_negative"),
    )

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id", sa.String(26), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_before_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("wallet_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.String(255), nullable=True),
        sa.Column("admin_id", sa.String(26), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("reference_id", "type", name="uq_wallet_transactions_reference_type"),
    )
    op.create_index(
        "ix_wallet_transactions_user_created", "wallet_transactions", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_wallet_transactions_user_version", "wallet_transactions", ["user_id", "wallet_version"]
    )

    op.create_table(
        "side_effect_outbox",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("payload", _json(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("idempotency_key", name="uq_side_effect_outbox_idempotency_key"),
    )
    op.create_index("ix_side_effect_outbox_event_type", "side_effect_outbox", ["event_type"])
    op.create_index("ix_side_effect_outbox_aggregate_id", "side_effect_outbox", ["aggregate_id"])
    op.create_index("ix_side_effect_outbox_status", "side_effect_outbox", ["status"])
    op.create_index(
        "ix_side_effect_outbox_next_attempt_at", "side_effect_outbox", ["next_attempt_at"]
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(26), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("before", _json(), nullable=True),
        sa.Column("after", _json(), nullable=True),
    )
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("side_effect_outbox")
    op.drop_table("wallet_transactions")
    op.drop_table("wallet_balances")
    op.drop_table("credit_balances")
    op.drop_table("meeting_participants")
    op.drop_table("meetings")
    op.drop_table("meeting_availability")
    op.drop_table("account_tier_configs")
    op.drop_table("users")
