# backend/app/routes/v1/payments.py
"""
Payment event routes - API v1

    POST /webhooks/stripe - Stripe webhook (signature verified, no caller auth)
    POST /reconcile - Admin replay of a confirmed payment

Both paths feed PaymentIngestionService, which applies each reference at most
once. A replayed event answers 200 with ``already_processed``.
"""

import asyncio
import logging
from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import ValidationError
import stripe

from ...api.dependencies import get_payment_ingestion_service, require_admin
from ...core.config import settings
from ...core.enums import PaymentEventType
from ...core.exceptions import ConflictException, DomainException, ServiceException
from ...models.user import User
from ...schemas.commands import IngestPaymentEventCommand
from ...schemas.wallet import PaymentIngestResponse, PaymentReconcileRequest, WebhookResponse
from ...services.payment_ingestion_service import PaymentIngestionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])

CHECKOUT_COMPLETED = "checkout.session.completed"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def command_from_checkout_session(session: Dict[str, Any]) -> IngestPaymentEventCommand:
    """
    Build an ingestion command from a completed Checkout Session.

    The session's metadata carries ``user_id`` and ``purpose``
    (``wallet_topup`` | ``credit_purchase`` | ``subscription``); a session with
    a ``tier`` and no purpose is a subscription. The session id is the
    reference.
    """
    metadata = session.get("metadata") or {}
    purpose: Optional[str] = metadata.get("purpose")
    if not purpose:
        purpose = PaymentEventType.SUBSCRIPTION.value if metadata.get("tier") else None
    if purpose is None:
        raise ValueError("checkout session metadata has no purpose")

    event_type = PaymentEventType(purpose)
    fields: Dict[str, Any] = {
        "reference_id": session.get("id"),
        "type": event_type,
        "user_id": metadata.get("user_id"),
    }
    if event_type is PaymentEventType.WALLET_TOPUP:
        fields["amount_cents"] = session.get("amount_total")
    elif event_type is PaymentEventType.CREDIT_PURCHASE:
        fields["credits"] = int(metadata.get("credits") or 0) or None
    else:
        fields["tier"] = metadata.get("tier")
    return IngestPaymentEventCommand(**fields)


def _verify_event(payload: bytes, sig_header: str) -> Any:
    webhook_secrets = settings.webhook_secrets
    if not webhook_secrets:
        logger.error("No webhook secrets configured")
        raise HTTPException(status_code=500, detail="Webhook configuration error")

    for secret in webhook_secrets:
        try:
            return stripe.Webhook.construct_event(payload, sig_header, secret)
        except stripe.SignatureVerificationError:
            continue

    logger.error(
        "Webhook signature verification failed with all %d configured secrets",
        len(webhook_secrets),
    )
    raise HTTPException(status_code=400, detail="Invalid signature")


@router.post("/webhooks/stripe", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    ingestion_service: PaymentIngestionService = Depends(get_payment_ingestion_service),
) -> WebhookResponse:
    """
    Apply a completed checkout to the ledger.

    Events that are not completed checkouts, or that carry unusable metadata,
    are acknowledged with 200 so Stripe stops retrying them. Storage failures
    and wallet contention answer with an error status so Stripe retries later.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.warning("Webhook received without signature")
        raise HTTPException(status_code=400, detail="No signature")

    try:
        event = _verify_event(payload, sig_header)
    except ValueError:
        logger.warning("Webhook payload is not valid JSON")
        raise HTTPException(status_code=400, detail="Invalid payload")

    event_type = event["type"]
    if event_type != CHECKOUT_COMPLETED:
        logger.info("Ignoring Stripe event %s", event_type)
        return WebhookResponse(status="ignored", event_type=event_type)

    session = event["data"]["object"]
    try:
        command = command_from_checkout_session(dict(session))
    except (ValueError, ValidationError) as e:
        logger.warning("Checkout session %s not ingestible: %s", session.get("id"), e)
        return WebhookResponse(status="ignored", event_type=event_type, message=str(e))

    try:
        result = await asyncio.to_thread(ingestion_service.ingest, command)
    except (ServiceException, ConflictException) as e:
        logger.error("Webhook %s could not be applied: %s", command.reference_id, e.message)
        handle_domain_exception(e)
    except DomainException as e:
        logger.warning("Webhook %s rejected: %s", command.reference_id, e.message)
        return WebhookResponse(status="rejected", event_type=event_type, message=e.message)

    return WebhookResponse(
        status="already_processed" if result.already_processed else "success",
        event_type=event_type,
        message=f"reference {command.reference_id}",
    )


@router.post("/reconcile", response_model=PaymentIngestResponse)
async def reconcile_payment(
    payload: PaymentReconcileRequest = Body(...),
    admin: User = Depends(require_admin),
    ingestion_service: PaymentIngestionService = Depends(get_payment_ingestion_service),
) -> PaymentIngestResponse:
    """Manually apply a payment confirmed with the provider."""
    try:
        command = IngestPaymentEventCommand(**payload.model_dump())
        result = await asyncio.to_thread(ingestion_service.ingest, command)
        logger.info(
            "Admin %s reconciled payment %s (applied=%s)",
            admin.id,
            command.reference_id,
            result.applied,
        )
        return PaymentIngestResponse(**result.to_payload())
    except DomainException as e:
        handle_domain_exception(e)


__all__ = ["router", "command_from_checkout_session"]
