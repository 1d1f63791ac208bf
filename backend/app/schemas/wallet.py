# backend/app/schemas/wallet.py
"""Wallet, payment and admin ledger request/response models."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..core.enums import AccountTier, PaymentEventType
from ._strict_base import StrictModel, StrictRequestModel


class WalletTransactionOut(StrictModel):
    id: str
    type: str
    amount_cents: int
    balance_before_cents: int
    balance_after_cents: int
    description: Optional[str] = None
    reference_id: Optional[str] = None
    admin_id: Optional[str] = None
    created_at: datetime


class WalletSummaryResponse(StrictModel):
    user_id: str
    currency: str
    balance_cents: int
    balance_display: str
    credits_total: int
    credits_used: int
    credits_available: int
    recent_transactions: List[WalletTransactionOut] = Field(default_factory=list)


class WalletAdjustRequest(StrictRequestModel):
    delta_cents: int = Field(..., description="Signed amount in minor units")
    reason: str = Field(..., max_length=500)


class WalletAdjustmentResponse(StrictModel):
    user_id: str
    balance_before_cents: int
    balance_after_cents: int
    transaction_id: str
    capped: bool


class WalletReconciliationResponse(StrictModel):
    user_id: str
    stored_balance_cents: int
    expected_balance_cents: int
    drift_cents: int
    corrected: bool
    correction_transaction_id: Optional[str] = None


class CancellationFeeUpdateRequest(StrictRequestModel):
    fee_cents: int = Field(..., ge=0)
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentReconcileRequest(StrictRequestModel):
    reference_id: str = Field(..., min_length=1, max_length=255)
    type: PaymentEventType
    user_id: str = Field(..., min_length=1)
    amount_cents: Optional[int] = Field(default=None, gt=0)
    credits: Optional[int] = Field(default=None, gt=0)
    tier: Optional[AccountTier] = None


class PaymentIngestResponse(StrictModel):
    applied: bool
    already_processed: bool
    reference_id: str
    type: str
    balance_after_cents: Optional[int] = None
    credits_granted: int = 0


class WebhookResponse(StrictModel):
    status: str
    event_type: str
    message: str = ""
