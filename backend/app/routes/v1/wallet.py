# backend/app/routes/v1/wallet.py
"""
Wallet routes - API v1

    GET / - The caller's wallet balance, credits and recent transactions
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_current_user, get_ledger_service
from ...core.config import settings
from ...models.user import User
from ...schemas.wallet import WalletSummaryResponse, WalletTransactionOut
from ...services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wallet-v1"])


@router.get("", response_model=WalletSummaryResponse)
async def get_wallet(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> WalletSummaryResponse:
    summary = await asyncio.to_thread(ledger_service.wallet_summary, current_user.id, limit)
    wallet, credits = summary.wallet, summary.credits
    return WalletSummaryResponse(
        user_id=current_user.id,
        currency=settings.currency_code,
        balance_cents=wallet.balance_cents,
        balance_display=settings.format_minor_units(wallet.balance_cents),
        credits_total=credits.total,
        credits_used=credits.used,
        credits_available=credits.available,
        recent_transactions=[
            WalletTransactionOut.model_validate(t) for t in summary.transactions
        ],
    )


__all__ = ["router"]
