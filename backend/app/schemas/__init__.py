"""
Pydantic schemas for the meetings and ledger API.

Request models forbid unknown fields; service commands are frozen.
"""

from .commands import (
    AdjustWalletCommand,
    CancelMeetingCommand,
    CreateMeetingCommand,
    FinalizeMeetingCommand,
    IngestPaymentEventCommand,
    RespondToMeetingCommand,
)
from .meeting import (
    CancellationPreviewResponse,
    CancelMeetingResponse,
    ConfirmationRequiredResponse,
    MeetingCancelRequest,
    MeetingCreateRequest,
    MeetingFinalizeRequest,
    MeetingListResponse,
    MeetingResponse,
    MeetingRespondRequest,
    RespondResponse,
)
from .wallet import (
    CancellationFeeUpdateRequest,
    PaymentIngestResponse,
    PaymentReconcileRequest,
    WalletAdjustmentResponse,
    WalletAdjustRequest,
    WalletReconciliationResponse,
    WalletSummaryResponse,
    WebhookResponse,
)

__all__ = [
    "AdjustWalletCommand",
    "CancelMeetingCommand",
    "CancelMeetingResponse",
    "CancellationFeeUpdateRequest",
    "CancellationPreviewResponse",
    "ConfirmationRequiredResponse",
    "CreateMeetingCommand",
    "FinalizeMeetingCommand",
    "IngestPaymentEventCommand",
    "MeetingCancelRequest",
    "MeetingCreateRequest",
    "MeetingFinalizeRequest",
    "MeetingListResponse",
    "MeetingResponse",
    "MeetingRespondRequest",
    "PaymentIngestResponse",
    "PaymentReconcileRequest",
    "RespondResponse",
    "RespondToMeetingCommand",
    "WalletAdjustRequest",
    "WalletAdjustmentResponse",
    "WalletReconciliationResponse",
    "WalletSummaryResponse",
    "WebhookResponse",
]
