# backend/app/routes/v1/meetings.py
"""
Meeting routes - API v1

Versioned meeting endpoints under /api/v1/meetings.
All business logic delegated to MeetingService.

Endpoints:
    GET / - List the caller's meetings
    POST / - Request a meeting
    GET /{meeting_id} - Meeting details
    POST /{meeting_id}/respond - Accept or decline
    GET /{meeting_id}/cancellation-preview - Fee and refund for canceling now
    POST /{meeting_id}/cancel - Cancel (409 with requires_confirmation until acknowledged)
    POST /{meeting_id}/finalize - Record the outcome of a confirmed meeting
"""

import asyncio
import logging
from typing import Any, NoReturn, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.params import Path
from fastapi.responses import JSONResponse

from ...api.dependencies import get_current_user, get_meeting_service
from ...core.enums import MeetingStatus, MeetingType
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.commands import (
    CancelMeetingCommand,
    CreateMeetingCommand,
    FinalizeMeetingCommand,
    RespondToMeetingCommand,
)
from ...schemas.meeting import (
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
from ...services.meeting_service import ConfirmationRequired, MeetingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["meetings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _meeting_id_path() -> Any:
    return Path(
        ...,
        description="Meeting ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


@router.get("", response_model=MeetingListResponse)
async def list_meetings(
    status_filter: Optional[MeetingStatus] = Query(None, alias="status"),
    meeting_type: Optional[MeetingType] = Query(None, alias="type"),
    upcoming: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> MeetingListResponse:
    """Meetings the caller participates in, newest first."""
    try:
        meetings = await asyncio.to_thread(
            meeting_service.list_for_user,
            current_user.id,
            status=status_filter,
            meeting_type=meeting_type,
            upcoming=upcoming,
            limit=limit,
        )
        items = [MeetingResponse.model_validate(m) for m in meetings]
        return MeetingListResponse(items=items, total=len(items))
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "",
    response_model=MeetingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        402: {"description": "Not enough credits"},
        403: {"description": "Tier does not allow contacting this member"},
        409: {"description": "Slot unavailable"},
    },
)
async def create_meeting(
    payload: MeetingCreateRequest = Body(...),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    """Request a meeting in one of the target's published slots."""
    try:
        command = CreateMeetingCommand(requester_id=current_user.id, **payload.model_dump())
        meeting = await asyncio.to_thread(meeting_service.create_meeting, command)
        return MeetingResponse.model_validate(meeting)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str = _meeting_id_path(),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    try:
        meeting = await asyncio.to_thread(meeting_service.get_meeting, meeting_id, current_user.id)
        return MeetingResponse.model_validate(meeting)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{meeting_id}/respond", response_model=RespondResponse)
async def respond_to_meeting(
    meeting_id: str = _meeting_id_path(),
    payload: MeetingRespondRequest = Body(...),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> RespondResponse:
    """Accept or decline a pending meeting."""
    try:
        command = RespondToMeetingCommand(
            meeting_id=meeting_id, user_id=current_user.id, action=payload.action
        )
        result = await asyncio.to_thread(meeting_service.respond, command)
        return RespondResponse(
            meeting=MeetingResponse.model_validate(result.meeting),
            response=result.response,
            confirmed=result.confirmed,
            declined=result.declined,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{meeting_id}/cancellation-preview", response_model=CancellationPreviewResponse)
async def get_cancellation_preview(
    meeting_id: str = _meeting_id_path(),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> CancellationPreviewResponse:
    """What canceling now would cost the caller. Changes nothing."""
    try:
        decision = await asyncio.to_thread(
            meeting_service.preview_cancellation, meeting_id, current_user.id
        )
        return CancellationPreviewResponse(**decision.to_payload())
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{meeting_id}/cancel",
    response_model=CancelMeetingResponse,
    responses={
        409: {
            "model": ConfirmationRequiredResponse,
            "description": "Fee must be acknowledged with confirmed=true",
        }
    },
)
async def cancel_meeting(
    meeting_id: str = _meeting_id_path(),
    payload: Optional[MeetingCancelRequest] = Body(default=None),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> Union[CancelMeetingResponse, JSONResponse]:
    """Cancel a pending or confirmed meeting."""
    payload = payload or MeetingCancelRequest()
    try:
        command = CancelMeetingCommand(
            meeting_id=meeting_id,
            user_id=current_user.id,
            reason=payload.reason,
            confirmed=payload.confirmed,
        )
        result = await asyncio.to_thread(meeting_service.cancel_meeting, command)
    except DomainException as e:
        handle_domain_exception(e)

    if isinstance(result, ConfirmationRequired):
        body = ConfirmationRequiredResponse(**result.to_payload())
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump())
    return CancelMeetingResponse(
        meeting=MeetingResponse.model_validate(result.meeting),
        fee_cents=result.fee_cents,
        fee_charged_cents=result.fee_charged_cents,
        fee_capped=result.fee_capped,
        credits_refunded=result.credits_refunded,
    )


@router.post("/{meeting_id}/finalize", response_model=MeetingResponse)
async def finalize_meeting(
    meeting_id: str = _meeting_id_path(),
    payload: MeetingFinalizeRequest = Body(...),
    current_user: User = Depends(get_current_user),
    meeting_service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    """Host or admin records how the meeting went and settles the charge."""
    try:
        command = FinalizeMeetingCommand(
            meeting_id=meeting_id, user_id=current_user.id, **payload.model_dump()
        )
        meeting = await asyncio.to_thread(meeting_service.finalize_meeting, command)
        return MeetingResponse.model_validate(meeting)
    except DomainException as e:
        handle_domain_exception(e)


__all__ = ["router"]
