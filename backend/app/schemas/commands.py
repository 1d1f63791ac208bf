# backend/app/schemas/commands.py
"""
Typed commands accepted by the meeting, payment and wallet services.

One closed model per operation: a field that does not belong to the operation
is rejected at construction time.
"""

from datetime import date, time
from typing import List, Optional

from pydantic import Field, model_validator

from ..core.enums import (
    AccountTier,
    ChargeDecision,
    MeetingFault,
    MeetingOutcome,
    MeetingType,
    PaymentEventType,
    ResponseAction,
)
from ._strict_base import CommandModel


class CreateMeetingCommand(CommandModel):
    requester_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)
    slot_date: date
    slot_time: time
    meeting_type: MeetingType = MeetingType.ONE_ON_ONE
    location_pref: Optional[str] = Field(default=None, max_length=120)
    # Additional invitees for group meetings
    participant_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _group_invitees_only(self) -> "CreateMeetingCommand":
        if self.participant_ids and self.meeting_type is not MeetingType.GROUP:
            raise ValueError("participant_ids is only allowed for group meetings")
        return self


class RespondToMeetingCommand(CommandModel):
    meeting_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    action: ResponseAction


class CancelMeetingCommand(CommandModel):
    meeting_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)
    confirmed: bool = False


class FinalizeMeetingCommand(CommandModel):
    meeting_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    outcome: MeetingOutcome
    fault: MeetingFault = MeetingFault.NO_FAULT
    charge_decision: ChargeDecision
    notes: Optional[str] = Field(default=None, max_length=2000)


class IngestPaymentEventCommand(CommandModel):
    reference_id: str = Field(..., min_length=1, max_length=255)
    type: PaymentEventType
    user_id: str = Field(..., min_length=1)
    amount_cents: Optional[int] = Field(default=None, gt=0)
    credits: Optional[int] = Field(default=None, gt=0)
    tier: Optional[AccountTier] = None

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "IngestPaymentEventCommand":
        if self.type is PaymentEventType.WALLET_TOPUP and self.amount_cents is None:
            raise ValueError("wallet_topup requires amount_cents")
        if self.type is PaymentEventType.CREDIT_PURCHASE and self.credits is None:
            raise ValueError("credit_purchase requires credits")
        if self.type is PaymentEventType.SUBSCRIPTION and self.tier is None:
            raise ValueError("subscription requires tier")
        return self


class AdjustWalletCommand(CommandModel):
    admin_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    delta_cents: int
    reason: str = ""
