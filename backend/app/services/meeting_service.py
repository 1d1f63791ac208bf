# backend/app/services/meeting_service.py
"""
Meeting State Machine.

    pending -> confirmed -> completed
    pending | confirmed -> canceled      (a decline cancels a pending meeting)

Every transition is a compare-and-set on the meeting's current status, so two
requests racing on the same meeting cannot both apply it. Credit holds and
wallet charges go through LedgerService inside the same transaction as the
transition; notifications are queued through the SideEffectQueue and are
delivered after commit by the outbox worker.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import (
    ChargeDecision,
    ChargeStatus,
    MeetingStatus,
    MeetingType,
    ParticipantResponse,
    ParticipantRole,
    ResponseAction,
    SideEffectType,
    WalletTransactionType,
)
from ..core.exceptions import (
    BusinessRuleException,
    ForbiddenException,
    InsufficientCreditsException,
    InvalidStateTransitionException,
    NotAParticipantException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from ..models.meeting import Meeting, MeetingParticipant
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.commands import (
    CancelMeetingCommand,
    CreateMeetingCommand,
    FinalizeMeetingCommand,
    RespondToMeetingCommand,
)
from . import tier_gate
from .base import BaseService
from .cancellation_policy import CancellationDecision, CancellationPolicyEngine
from .ledger_service import LedgerService
from .side_effects import OutboxSideEffectQueue, SideEffectQueue

logger = logging.getLogger(__name__)

DECLINE_REASON = "Declined by participant"

_CHARGE_STATUS_BY_DECISION = {
    ChargeDecision.CAPTURE: ChargeStatus.CAPTURED,
    ChargeDecision.REFUND: ChargeStatus.REFUNDED,
    ChargeDecision.PENDING_REVIEW: ChargeStatus.PENDING_REVIEW,
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RespondResult:
    meeting: Meeting
    response: str
    confirmed: bool = False
    declined: bool = False


@dataclass(frozen=True)
class ConfirmationRequired:
    """Returned instead of canceling when the caller has not acknowledged the fee."""

    meeting_id: str
    fee_cents: int
    refund_credit: bool
    warning_text: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "requires_confirmation": True,
            "meeting_id": self.meeting_id,
            "fee_cents": self.fee_cents,
            "refund_credit": self.refund_credit,
            "warning_text": self.warning_text,
        }


@dataclass(frozen=True)
class CancellationResult:
    meeting: Meeting
    fee_cents: int
    fee_charged_cents: int
    fee_capped: bool
    credits_refunded: int


class MeetingService(BaseService):
    """Owns meeting creation, responses, cancellation and finalization."""

    def __init__(
        self,
        db: Session,
        ledger_service: Optional[LedgerService] = None,
        side_effect_queue: Optional[SideEffectQueue] = None,
        cancellation_policy: Optional[CancellationPolicyEngine] = None,
    ):
        super().__init__(db)
        self.meeting_repository = RepositoryFactory.create_meeting_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.ledger_service = ledger_service or LedgerService(db)
        self.side_effects: SideEffectQueue = side_effect_queue or OutboxSideEffectQueue(db)
        self.cancellation_policy = cancellation_policy or CancellationPolicyEngine()

    # ------------------------------------------------------------------ create
    @BaseService.measure_operation("create_meeting")
    def create_meeting(self, command: CreateMeetingCommand) -> Meeting:
        """
        Book a meeting with ``command.target_id``.

        Checks run in this order: the slot, the tier gate, then credits. Nothing
        touches a balance until the gate has passed.
        """
        if command.requester_id == command.target_id:
            raise ValidationException("You cannot book a meeting with yourself", code="self_booking")

        requester = self._require_user(command.requester_id)
        target = self._require_user(command.target_id)
        invitees = self._resolve_invitees(command)

        if not self.availability_repository.has_slot(
            target.id, command.slot_date, command.slot_time
        ):
            raise SlotUnavailableException(target.id, command.slot_date, command.slot_time)
        scheduled_at = datetime.combine(command.slot_date, command.slot_time, tzinfo=timezone.utc)
        if self.meeting_repository.has_active_meeting_at(target.id, scheduled_at):
            raise SlotUnavailableException(target.id, command.slot_date, command.slot_time)

        config = self.user_repository.get_tier_config(requester.tier)
        decision = tier_gate.ensure_allowed(config, target.tier)
        cost = settings.surcharge_credit_cost if decision.surcharge else settings.meeting_credit_cost

        fee_cents = int(config.meeting_fee_cents or 0) if config is not None else 0
        cancellation_fee = settings.default_cancellation_fee_cents
        if cancellation_fee is None:
            cancellation_fee = fee_cents

        with self.transaction():
            credits = self.ledger_service.get_credits(requester.id)
            if credits.available < cost:
                raise InsufficientCreditsException(
                    credits_required=cost, credits_available=credits.available
                )
            # Conditional increment; a concurrent booking can still win here
            self.ledger_service.apply_credit_delta(requester.id, cost)

            participants: List[Dict[str, Any]] = [
                {
                    "user_id": target.id,
                    "role": ParticipantRole.HOST.value,
                    "response": ParticipantResponse.REQUESTED.value,
                },
                {
                    "user_id": requester.id,
                    "role": ParticipantRole.GUEST.value,
                    "response": ParticipantResponse.ACCEPTED.value,
                    "responded_at": _now_utc(),
                },
            ]
            participants.extend(
                {
                    "user_id": user_id,
                    "role": ParticipantRole.GUEST.value,
                    "response": ParticipantResponse.REQUESTED.value,
                }
                for user_id in invitees
            )

            meeting = self.meeting_repository.create_with_participants(
                participants,
                type=command.meeting_type.value,
                status=MeetingStatus.PENDING.value,
                requester_id=requester.id,
                host_id=target.id,
                scheduled_at=scheduled_at,
                location_pref=command.location_pref,
                fee_cents=fee_cents,
                cancellation_fee_cents=cancellation_fee,
                credits_held=cost,
                charge_status=ChargeStatus.PENDING.value,
            )
            self._enqueue(
                SideEffectType.MEETING_REQUESTED,
                meeting,
                notify=[target.id, *invitees],
            )

        prometheus_metrics.record_meeting_transition("none", MeetingStatus.PENDING.value)
        self.logger.info(
            "Meeting %s requested by %s with %s (%d credit%s held)",
            meeting.id,
            requester.id,
            target.id,
            cost,
            "" if cost == 1 else "s",
        )
        return meeting

    def _require_user(self, user_id: str) -> User:
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            raise NotFoundException(f"User {user_id} not found", code="user_not_found")
        return user

    def _resolve_invitees(self, command: CreateMeetingCommand) -> List[str]:
        if command.meeting_type is not MeetingType.GROUP:
            return []
        seen = {command.requester_id, command.target_id}
        invitees: List[str] = []
        for user_id in command.participant_ids:
            if user_id in seen:
                continue
            self._require_user(user_id)
            seen.add(user_id)
            invitees.append(user_id)
        return invitees

    # ----------------------------------------------------------------- respond
    @BaseService.measure_operation("respond_to_meeting")
    def respond(self, command: RespondToMeetingCommand) -> RespondResult:
        """
        Record an accept or decline from a participant.

        The accept that makes every response ``accepted`` confirms the meeting.
        The decision is made on a fresh count from the database and the
        ``pending -> confirmed`` compare-and-set picks a single winner, so the
        confirmation side effect is queued once.
        """
        with self.transaction():
            meeting = self._load_for_update(command.meeting_id)
            participants = self.meeting_repository.lock_participants(meeting.id)
            participant = _find_participant(participants, command.user_id)
            if participant is None:
                raise NotAParticipantException(meeting.id, command.user_id)
            if meeting.status_enum is not MeetingStatus.PENDING:
                raise InvalidStateTransitionException(
                    meeting.id, meeting.status, command.action.value
                )

            now = _now_utc()
            if command.action is ResponseAction.DECLINE:
                result = self._decline(meeting, participant, now)
            else:
                result = self._accept(meeting, participant, now)
        return result

    def _decline(
        self, meeting: Meeting, participant: MeetingParticipant, now: datetime
    ) -> RespondResult:
        self.meeting_repository.record_response(
            participant, ParticipantResponse.DECLINED.value, now
        )
        won = self.meeting_repository.transition_status(
            meeting.id,
            [MeetingStatus.PENDING],
            MeetingStatus.CANCELED,
            canceled_by=participant.user_id,
            canceled_at=now,
            cancellation_reason=DECLINE_REASON,
        )
        if not won:
            self._raise_lost_transition(meeting, "decline")

        if meeting.credits_held:
            self.ledger_service.apply_credit_delta(meeting.requester_id, -meeting.credits_held)
        self._enqueue(
            SideEffectType.MEETING_DECLINED,
            meeting,
            notify=[
                p.user_id for p in meeting.participants if p.user_id != participant.user_id
            ],
            extra={"declined_by": participant.user_id},
        )
        prometheus_metrics.record_meeting_transition(
            MeetingStatus.PENDING.value, MeetingStatus.CANCELED.value
        )
        self.logger.info("Meeting %s declined by %s", meeting.id, participant.user_id)
        return RespondResult(
            meeting=meeting, response=ParticipantResponse.DECLINED.value, declined=True
        )

    def _accept(
        self, meeting: Meeting, participant: MeetingParticipant, now: datetime
    ) -> RespondResult:
        if participant.response != ParticipantResponse.ACCEPTED.value:
            self.meeting_repository.record_response(
                participant, ParticipantResponse.ACCEPTED.value, now
            )

        confirmed = False
        if self.meeting_repository.count_unaccepted(meeting.id) == 0:
            confirmed = self.meeting_repository.transition_status(
                meeting.id,
                [MeetingStatus.PENDING],
                MeetingStatus.CONFIRMED,
                confirmed_at=now,
            )
            if confirmed:
                self._enqueue(
                    SideEffectType.MEETING_CONFIRMED,
                    meeting,
                    notify=[p.user_id for p in meeting.participants],
                )
                prometheus_metrics.record_meeting_transition(
                    MeetingStatus.PENDING.value, MeetingStatus.CONFIRMED.value
                )
                self.logger.info("Meeting %s confirmed", meeting.id)
            else:
                self.db.refresh(meeting)
                self.logger.info(
                    "Meeting %s was already moved to %s by another response",
                    meeting.id,
                    meeting.status,
                )
        return RespondResult(
            meeting=meeting, response=ParticipantResponse.ACCEPTED.value, confirmed=confirmed
        )

    # ------------------------------------------------------------------ cancel
    def preview_cancellation(self, meeting_id: str, user_id: str) -> CancellationDecision:
        """What canceling would cost ``user_id`` right now; changes nothing."""
        meeting = self.meeting_repository.get_by_id(meeting_id)
        if meeting is None:
            raise NotFoundException(f"Meeting {meeting_id} not found", code="meeting_not_found")
        participant = self._require_participant(meeting, user_id)
        return self.cancellation_policy.decide(
            meeting, ParticipantRole(participant.role), confirmed=False
        )

    @BaseService.measure_operation("cancel_meeting")
    def cancel_meeting(
        self, command: CancelMeetingCommand
    ) -> CancellationResult | ConfirmationRequired:
        """
        Cancel a pending or confirmed meeting.

        A fee or a post-approval cancellation needs ``confirmed=True``; without
        it the caller gets ``ConfirmationRequired`` and nothing changes. Only
        participants may cancel, and the fee is always charged to the one who
        does.
        """
        with self.transaction():
            meeting = self._load_for_update(command.meeting_id)
            participant = self._require_participant(meeting, command.user_id)
            role = ParticipantRole(participant.role)

            decision = self.cancellation_policy.decide(meeting, role, confirmed=command.confirmed)
            if decision.requires_confirmation:
                return ConfirmationRequired(
                    meeting_id=meeting.id,
                    fee_cents=decision.fee_cents,
                    refund_credit=decision.refund_credit,
                    warning_text=decision.warning_text,
                )

            from_status = meeting.status_enum
            now = _now_utc()
            # Only from the status the decision was made on
            won = self.meeting_repository.transition_status(
                meeting.id,
                [from_status],
                MeetingStatus.CANCELED,
                canceled_by=command.user_id,
                canceled_at=now,
                cancellation_reason=command.reason or decision.reason,
            )
            if not won:
                self._raise_lost_transition(meeting, "cancel")

            charged, capped = 0, False
            if decision.fee_cents > 0:
                outcome = self.ledger_service.apply_wallet_delta(
                    user_id=command.user_id,
                    amount_cents=-decision.fee_cents,
                    txn_type=WalletTransactionType.CANCELLATION_FEE,
                    description=f"Cancellation fee for meeting {meeting.id}. "
                    f"Canceled by {role.value}.",
                    reference_id=meeting.id,
                )
                charged = outcome.balance_before_cents - outcome.balance_after_cents
                capped = outcome.capped

            refunded = 0
            if decision.refund_credit and meeting.credits_held:
                self.ledger_service.apply_credit_delta(meeting.requester_id, -meeting.credits_held)
                refunded = meeting.credits_held

            self._enqueue(
                SideEffectType.MEETING_CANCELED,
                meeting,
                # Canceler included: the payload is also their fee receipt
                notify=[p.user_id for p in meeting.participants],
                extra={
                    "canceled_by": command.user_id,
                    "fee_cents": decision.fee_cents,
                    "fee_charged_cents": charged,
                    "refund_credit": decision.refund_credit,
                    "warning_text": decision.warning_text,
                },
            )

        prometheus_metrics.record_meeting_transition(
            from_status.value, MeetingStatus.CANCELED.value
        )
        self.logger.info(
            "Meeting %s canceled by %s (fee %d, charged %d, credits refunded %d)",
            meeting.id,
            command.user_id,
            decision.fee_cents,
            charged,
            refunded,
        )
        return CancellationResult(
            meeting=meeting,
            fee_cents=decision.fee_cents,
            fee_charged_cents=charged,
            fee_capped=capped,
            credits_refunded=refunded,
        )

    # ---------------------------------------------------------------- finalize
    @BaseService.measure_operation("finalize_meeting")
    def finalize_meeting(self, command: FinalizeMeetingCommand) -> Meeting:
        """
        Record how a confirmed meeting went and settle its charge.

        A meeting finalized with ``pending_review`` can be finalized again once
        the review is resolved.
        """
        with self.transaction():
            meeting = self._load_for_update(command.meeting_id)
            actor = self.user_repository.get_by_id(command.user_id)
            if meeting.host_id != command.user_id and not (actor is not None and actor.is_admin):
                raise ForbiddenException(
                    "Only the host or an admin can finalize a meeting",
                    code="finalize_not_allowed",
                )

            status = meeting.status_enum
            expected_charge: Optional[str] = None
            if status is MeetingStatus.CONFIRMED:
                if _as_utc(meeting.scheduled_at) > _now_utc():
                    raise BusinessRuleException(
                        "Meeting has not taken place yet", code="meeting_not_started"
                    )
            elif (
                status is MeetingStatus.COMPLETED
                and meeting.charge_status == ChargeStatus.PENDING_REVIEW.value
            ):
                expected_charge = ChargeStatus.PENDING_REVIEW.value
            else:
                raise InvalidStateTransitionException(meeting.id, meeting.status, "finalize")

            charge_status = _CHARGE_STATUS_BY_DECISION[command.charge_decision]
            now = _now_utc()
            won = self.meeting_repository.transition_status(
                meeting.id,
                [status],
                MeetingStatus.COMPLETED,
                expected_charge_status=expected_charge,
                completed_at=meeting.completed_at or now,
                outcome=command.outcome.value,
                fault=command.fault.value,
                charge_status=charge_status.value,
                finalized_by=command.user_id,
                finalization_notes=command.notes,
            )
            if not won:
                self._raise_lost_transition(meeting, "finalize")

            if charge_status is ChargeStatus.REFUNDED and meeting.credits_held:
                self.ledger_service.apply_credit_delta(meeting.requester_id, -meeting.credits_held)

            self._enqueue(
                SideEffectType.MEETING_COMPLETED,
                meeting,
                notify=[p.user_id for p in meeting.participants],
                extra={"outcome": command.outcome.value, "charge_status": charge_status.value},
                idempotency_key=f"{SideEffectType.MEETING_COMPLETED.value}:{meeting.id}:"
                f"{charge_status.value}",
            )

        prometheus_metrics.record_meeting_transition(status.value, MeetingStatus.COMPLETED.value)
        self.logger.info(
            "Meeting %s finalized by %s: outcome=%s charge=%s",
            meeting.id,
            command.user_id,
            command.outcome.value,
            charge_status.value,
        )
        return meeting

    # ------------------------------------------------------------------- reads
    def get_meeting(self, meeting_id: str, user_id: str) -> Meeting:
        meeting = self.meeting_repository.get_by_id(meeting_id)
        if meeting is None:
            raise NotFoundException(f"Meeting {meeting_id} not found", code="meeting_not_found")
        self._participant_or_admin(meeting, user_id)
        return meeting

    def list_for_user(
        self,
        user_id: str,
        status: Optional[MeetingStatus] = None,
        meeting_type: Optional[MeetingType] = None,
        upcoming: bool = False,
        limit: int = 100,
    ) -> List[Meeting]:
        return self.meeting_repository.list_for_user(
            user_id,
            status=status.value if status is not None else None,
            meeting_type=meeting_type.value if meeting_type is not None else None,
            scheduled_after=_now_utc() if upcoming else None,
            limit=limit,
        )

    # ----------------------------------------------------------------- helpers
    def _load_for_update(self, meeting_id: str) -> Meeting:
        meeting = self.meeting_repository.get_for_update(meeting_id)
        if meeting is None:
            raise NotFoundException(f"Meeting {meeting_id} not found", code="meeting_not_found")
        return meeting

    def _participant_or_admin(
        self, meeting: Meeting, user_id: str
    ) -> Optional[MeetingParticipant]:
        """The caller's participant row; None for an admin who is not a participant."""
        participant = meeting.participant_for(user_id)
        if participant is not None:
            return participant
        actor = self.user_repository.get_by_id(user_id)
        if actor is not None and actor.is_admin:
            return None
        raise NotAParticipantException(meeting.id, user_id)

    def _require_participant(self, meeting: Meeting, user_id: str) -> MeetingParticipant:
        participant = meeting.participant_for(user_id)
        if participant is None:
            raise NotAParticipantException(meeting.id, user_id)
        return participant

    def _raise_lost_transition(self, meeting: Meeting, action: str) -> None:
        self.db.refresh(meeting)
        raise InvalidStateTransitionException(meeting.id, meeting.status, action)

    def _enqueue(
        self,
        event_type: SideEffectType,
        meeting: Meeting,
        notify: List[str],
        extra: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> None:
        payload: Dict[str, Any] = {
            "meeting_id": meeting.id,
            "type": meeting.type,
            "status": meeting.status,
            "requester_id": meeting.requester_id,
            "host_id": meeting.host_id,
            "scheduled_at": _as_utc(meeting.scheduled_at).isoformat(),
            "notify_user_ids": sorted(set(notify)),
        }
        if extra:
            payload.update(extra)
        self.side_effects.enqueue(
            event_type,
            meeting.id,
            payload,
            idempotency_key=idempotency_key or f"{event_type.value}:{meeting.id}",
        )


def _find_participant(
    participants: List[MeetingParticipant], user_id: str
) -> Optional[MeetingParticipant]:
    for participant in participants:
        if participant.user_id == user_id:
            return participant
    return None
