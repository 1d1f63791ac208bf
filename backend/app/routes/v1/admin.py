# backend/app/routes/v1/admin.py
"""
Admin ledger routes - API v1

    POST /wallets/{user_id}/adjust - Manual credit or debit with a reason
    POST /wallets/{user_id}/reconcile - Re-align a wallet with its transaction log
    PATCH /meetings/{meeting_id}/cancellation-fee - Change a meeting's cancellation fee

Every route requires the admin role and writes an audit entry.
"""

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Path, status

from ...api.dependencies import get_wallet_admin_service, require_admin
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.commands import AdjustWalletCommand
from ...schemas.meeting import MeetingResponse
from ...schemas.wallet import (
    CancellationFeeUpdateRequest,
    WalletAdjustmentResponse,
    WalletAdjustRequest,
    WalletReconciliationResponse,
)
from ...services.wallet_admin_service import WalletAdminService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-ledger-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/wallets/{user_id}/adjust", response_model=WalletAdjustmentResponse)
async def adjust_wallet(
    user_id: str = Path(..., min_length=1),
    payload: WalletAdjustRequest = Body(...),
    admin: User = Depends(require_admin),
    service: WalletAdminService = Depends(get_wallet_admin_service),
) -> WalletAdjustmentResponse:
    try:
        command = AdjustWalletCommand(
            admin_id=admin.id,
            user_id=user_id,
            delta_cents=payload.delta_cents,
            reason=payload.reason,
        )
        result = await asyncio.to_thread(service.adjust_wallet, command)
        return WalletAdjustmentResponse(**result.to_payload())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/wallets/{user_id}/reconcile", response_model=WalletReconciliationResponse)
async def reconcile_wallet(
    user_id: str = Path(..., min_length=1),
    admin: User = Depends(require_admin),
    service: WalletAdminService = Depends(get_wallet_admin_service),
) -> WalletReconciliationResponse:
    try:
        result = await asyncio.to_thread(service.reconcile_wallet, admin.id, user_id)
        return WalletReconciliationResponse(**result.to_payload())
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/meetings/{meeting_id}/cancellation-fee", response_model=MeetingResponse)
async def set_cancellation_fee(
    meeting_id: str = Path(..., min_length=1),
    payload: CancellationFeeUpdateRequest = Body(...),
    admin: User = Depends(require_admin),
    service: WalletAdminService = Depends(get_wallet_admin_service),
) -> MeetingResponse:
    try:
        meeting = await asyncio.to_thread(
            service.set_cancellation_fee,
            admin.id,
            meeting_id,
            payload.fee_cents,
            payload.reason,
        )
        return MeetingResponse.model_validate(meeting)
    except DomainException as e:
        handle_domain_exception(e)


__all__ = ["router"]
