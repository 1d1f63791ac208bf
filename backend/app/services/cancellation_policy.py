# backend/app/services/cancellation_policy.py
"""Cancellation fee and credit refund policy for meetings."""

from __future__ import annotations

from dataclasses import dataclass

from ..core.enums import MeetingStatus, ParticipantRole
from ..core.exceptions import InvalidStateTransitionException
from ..models.meeting import Meeting

CONFIRMED_WARNING = (
    "This meeting has been approved. Cancelling will result in a cancellation fee "
    "being charged to your account. No credit refund will be issued."
)
FEE_WARNING = "Cancelling this meeting will incur a cancellation fee."
DEFAULT_WARNING = "Are you sure you want to cancel this meeting?"


@dataclass(frozen=True)
class CancellationDecision:
    fee_cents: int
    refund_credit: bool
    requires_confirmation: bool
    reason: str
    warning_text: str

    def to_payload(self) -> dict[str, object]:
        return {
            "fee_cents": int(self.fee_cents),
            "refund_credit": self.refund_credit,
            "requires_confirmation": self.requires_confirmation,
            "reason": self.reason,
            "warning_text": self.warning_text,
        }


class CancellationPolicyEngine:
    """
    Computes what a cancellation costs and whether the credit hold comes back.

    The fee always falls on whoever cancels. ``confirmed`` is the caller's
    explicit acknowledgement of the fee; without it any chargeable or
    post-approval cancellation comes back with ``requires_confirmation``.
    """

    def decide(
        self,
        meeting: Meeting,
        canceling_role: ParticipantRole,
        confirmed: bool = False,
    ) -> CancellationDecision:
        status = MeetingStatus(meeting.status)
        if status.is_terminal:
            raise InvalidStateTransitionException(meeting.id, status.value, "cancel")

        fee = max(int(meeting.cancellation_fee_cents or 0), 0)
        who = canceling_role.value

        if status is MeetingStatus.CONFIRMED:
            return CancellationDecision(
                fee_cents=fee,
                refund_credit=False,
                requires_confirmation=not confirmed,
                reason=f"Meeting already confirmed; {who} is charged and the credit is kept",
                warning_text=CONFIRMED_WARNING,
            )

        if fee > 0:
            return CancellationDecision(
                fee_cents=fee,
                refund_credit=True,
                requires_confirmation=not confirmed,
                reason=f"Pending meeting with a cancellation fee charged to {who}",
                warning_text=FEE_WARNING,
            )

        return CancellationDecision(
            fee_cents=0,
            refund_credit=True,
            requires_confirmation=False,
            reason="Pending meeting without a cancellation fee",
            warning_text=DEFAULT_WARNING,
        )
