# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the MatchIndeed meetings and ledger backend.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when user is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class PermissionDeniedException(ForbiddenException):
    """Raised when the requester's tier may not contact the target's tier."""

    def __init__(self, reason: str, target_tier: Optional[str] = None):
        super().__init__(
            message=reason,
            code="permission_denied",
            details={"reason": reason, "target_tier": target_tier},
        )
        self.reason = reason
        self.target_tier = target_tier


class InsufficientCreditsException(DomainException):
    """Raised when a booking needs more credits than the requester has available."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, credits_required: int, credits_available: int):
        super().__init__(
            message=(
                f"Insufficient credits: {credits_required} required, "
                f"{max(credits_available, 0)} available"
            ),
            code="insufficient_credits",
            details={
                "credits_required": credits_required,
                "credits_available": credits_available,
            },
        )
        self.credits_required = credits_required
        self.credits_available = credits_available


class SlotUnavailableException(ConflictException):
    """Raised when the target has no open availability slot at the requested time."""

    def __init__(self, target_id: str, slot_date: Any, slot_time: Any):
        super().__init__(
            message="The selected time slot is not available",
            code="slot_unavailable",
            details={
                "target_id": target_id,
                "date": str(slot_date),
                "time": str(slot_time),
            },
        )


class InvalidStateTransitionException(ConflictException):
    """Raised when a meeting action does not apply to its current status."""

    def __init__(self, meeting_id: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} a meeting that is {current_status}",
            code="invalid_state_transition",
            details={
                "meeting_id": meeting_id,
                "current_status": current_status,
                "action": action,
            },
        )
        self.current_status = current_status
        self.action = action


class NotAParticipantException(ForbiddenException):
    """Raised when a user acts on a meeting they are not part of."""

    def __init__(self, meeting_id: str, user_id: str):
        super().__init__(
            message="You are not a participant in this meeting",
            code="not_a_participant",
            details={"meeting_id": meeting_id, "user_id": user_id},
        )


class LedgerInconsistencyException(ServiceException):
    """
    Raised when a transaction-log row could not be reconciled with its balance.

    The compensating delete failed, so the ledger needs manual reconciliation.
    """

    def __init__(self, user_id: str, transaction_id: Optional[str], reason: str):
        super().__init__(
            message="Ledger write could not be completed and requires manual reconciliation",
            code="ledger_inconsistency",
            details={
                "user_id": user_id,
                "transaction_id": transaction_id,
                "reason": reason,
            },
        )


class RepositoryException(Exception):
    """Raised when repository operations fail."""
