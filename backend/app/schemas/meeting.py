# backend/app/schemas/meeting.py
"""Request and response models for the meeting endpoints."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field

from ..core.enums import (
    ChargeDecision,
    MeetingFault,
    MeetingOutcome,
    MeetingType,
    ResponseAction,
)
from ._strict_base import StrictModel, StrictRequestModel


class MeetingCreateRequest(StrictRequestModel):
    target_id: str = Field(..., min_length=1, description="User being asked to host")
    slot_date: date
    slot_time: time
    meeting_type: MeetingType = MeetingType.ONE_ON_ONE
    location_pref: Optional[str] = Field(default=None, max_length=120)
    participant_ids: List[str] = Field(default_factory=list)


class MeetingRespondRequest(StrictRequestModel):
    action: ResponseAction


class MeetingCancelRequest(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    confirmed: bool = Field(
        default=False, description="Acknowledges the fee shown by the cancellation preview"
    )


class MeetingFinalizeRequest(StrictRequestModel):
    outcome: MeetingOutcome
    fault: MeetingFault = MeetingFault.NO_FAULT
    charge_decision: ChargeDecision
    notes: Optional[str] = Field(default=None, max_length=2000)


class ParticipantOut(StrictModel):
    user_id: str
    role: str
    response: str
    responded_at: Optional[datetime] = None


class MeetingResponse(StrictModel):
    id: str
    type: str
    status: str
    requester_id: str
    host_id: str
    scheduled_at: datetime
    location_pref: Optional[str] = None
    fee_cents: int
    cancellation_fee_cents: int
    credits_held: int
    charge_status: str
    canceled_by: Optional[str] = None
    canceled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    outcome: Optional[str] = None
    fault: Optional[str] = None
    finalized_by: Optional[str] = None
    finalization_notes: Optional[str] = None
    created_at: datetime
    participants: List[ParticipantOut] = Field(default_factory=list)


class MeetingListResponse(StrictModel):
    items: List[MeetingResponse]
    total: int


class RespondResponse(StrictModel):
    meeting: MeetingResponse
    response: str
    confirmed: bool
    declined: bool


class CancellationPreviewResponse(StrictModel):
    fee_cents: int
    refund_credit: bool
    requires_confirmation: bool
    reason: str
    warning_text: str


class CancelMeetingResponse(StrictModel):
    meeting: MeetingResponse
    fee_cents: int
    fee_charged_cents: int
    fee_capped: bool
    credits_refunded: int


class ConfirmationRequiredResponse(StrictModel):
    requires_confirmation: bool = True
    meeting_id: str
    fee_cents: int
    refund_credit: bool
    warning_text: str
