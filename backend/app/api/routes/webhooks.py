"""
Payment Webhook Handlers

Receives Mercado Pago and Stripe notifications and reconciles them with
local orders and subscriptions.

Every receipt is written to webhook_logs with its processing time.
Processing is idempotent: the event key is stored in
processed_webhook_events in the same transaction as the record update,
so a redelivered event is acknowledged without touching records again.

Failures return 500 so the gateway retries; events that match no local
record return 200 `ignored`.
"""

import json
import logging
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.rate_limit import rate_limit
from app.domain.webhooks import (
    Gateway,
    MercadoPagoNotification,
    ProcessingResult,
    WebhookStatus,
)
from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.repositories.webhook_repository import (
    ProcessedEventRepository,
    WebhookLogRepository,
)
from app.infrastructure.payments.mercadopago_service import get_mercadopago_service
from app.infrastructure.payments.stripe_service import StripeServiceError, get_stripe_service
from app.infrastructure.services.webhook_reconciliation_service import (
    WebhookReconciliationService,
)


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
    dependencies=[Depends(rate_limit("webhook"))],
)


# =============================================================================
# Idempotency and receipt logging
# =============================================================================

async def is_event_processed(event_key: str) -> bool:
    """Check if a webhook event has already been processed (DB query)."""
    async with get_session_context() as session:
        return await ProcessedEventRepository(session).is_processed(event_key)


async def log_webhook_received(
    gateway: Gateway,
    event_id: Optional[str],
    event_type: Optional[str],
    payload: Optional[Dict[str, Any]],
    action: Optional[str] = None,
    data_id: Optional[str] = None,
) -> Optional[int]:
    """Persist the receipt; returns the log id or None if logging failed."""
    try:
        async with get_session_context() as session:
            log = await WebhookLogRepository(session).record(
                gateway.value, event_id, event_type, payload, action, data_id
            )
            return log.id
    except Exception as e:
        logger.error(f"Could not log {gateway.value} webhook {event_id}: {e}")
        return None


async def log_webhook_finished(
    log_id: Optional[int],
    webhook_status: WebhookStatus,
    started: float,
    error: Optional[str] = None,
) -> None:
    if log_id is None:
        return
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    try:
        async with get_session_context() as session:
            repo = WebhookLogRepository(session)
            log = await repo.get_by_id(log_id)
            if log:
                await repo.finish(log, webhook_status, elapsed_ms, error)
    except Exception as e:
        logger.error(f"Could not update webhook log {log_id}: {e}")


# =============================================================================
# Reconciliation units (one transaction each)
# =============================================================================

async def reconcile_mercadopago_event(
    notification: MercadoPagoNotification,
    event_key: str,
) -> ProcessingResult:
    async with get_session_context() as session:
        service = WebhookReconciliationService(
            session, get_mercadopago_service(), get_stripe_service()
        )
        result = await service.handle_mercadopago(notification)
        await ProcessedEventRepository(session).mark_processed(
            event_key, notification.type or "unknown"
        )
        return result


async def reconcile_stripe_event(event: Dict[str, Any], event_key: str) -> ProcessingResult:
    async with get_session_context() as session:
        service = WebhookReconciliationService(
            session, get_mercadopago_service(), get_stripe_service()
        )
        result = await service.handle_stripe(event)
        await ProcessedEventRepository(session).mark_processed(event_key, event["type"])
        return result


def _result_body(result: ProcessingResult) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": result.status.value, "message": result.message}
    if result.record_id:
        body["record_id"] = result.record_id
    return body


# =============================================================================
# Mercado Pago
# =============================================================================

@router.get("/mercadopago")
async def mercadopago_webhook_check(challenge: Optional[str] = None):
    """Endpoint verification: echo the challenge, otherwise report liveness."""
    if challenge:
        return PlainTextResponse(challenge)
    return {"status": "active"}


@router.post("/mercadopago")
async def mercadopago_webhook(request: Request):
    """
    Handle Mercado Pago notifications.

    Verifies the `x-signature` HMAC when a webhook secret is configured,
    then re-reads the payment or preapproval from the gateway before
    updating local state.
    """
    started = time.perf_counter()
    raw = await request.body()
    if not raw:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty body")

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    notification = MercadoPagoNotification.from_payload(payload)
    if not notification.is_valid():
        logger.warning(f"Invalid Mercado Pago notification: {payload}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid notification structure",
        )

    mercadopago = get_mercadopago_service()
    if not mercadopago.verify_webhook_signature(
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        notification.data.id,
    ):
        logger.warning(f"Invalid Mercado Pago signature for {notification.idempotency_key}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    event_key = notification.idempotency_key
    log_id = await log_webhook_received(
        Gateway.MERCADOPAGO,
        notification.id,
        notification.type,
        payload,
        notification.action,
        notification.data.id,
    )

    try:
        if await is_event_processed(event_key):
            logger.info(f"Event {event_key} already processed, skipping")
            await log_webhook_finished(log_id, WebhookStatus.IGNORED, started, "duplicate")
            return {"status": "already_processed"}

        logger.info(f"Processing Mercado Pago {notification.type} ({event_key})")
        result = await reconcile_mercadopago_event(notification, event_key)

    except Exception as e:
        logger.error(f"Error processing Mercado Pago webhook {event_key}: {e}")
        await log_webhook_finished(log_id, WebhookStatus.FAILED, started, str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed", "details": str(e)},
        )

    await log_webhook_finished(log_id, result.status, started)
    return _result_body(result)


# =============================================================================
# Stripe
# =============================================================================

@router.post("/stripe")
async def stripe_webhook(request: Request):
    """
    Handle Stripe webhook events.

    Verifies the signature, then reconciles checkout sessions, invoices
    and subscription lifecycle events.
    """
    started = time.perf_counter()
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature",
        )

    try:
        get_stripe_service().verify_webhook_signature(payload, signature)
    except StripeServiceError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    # Plain dicts downstream; the signature already covers this payload
    event = json.loads(payload)
    event_id = event.get("id")
    event_type = event.get("type")
    event_key = f"{Gateway.STRIPE.value}:{event_id}"
    log_id = await log_webhook_received(Gateway.STRIPE, event_id, event_type, event)

    try:
        if await is_event_processed(event_key):
            logger.info(f"Event {event_id} already processed, skipping")
            await log_webhook_finished(log_id, WebhookStatus.IGNORED, started, "duplicate")
            return {"status": "already_processed"}

        logger.info(f"Processing webhook event: {event_type} ({event_id})")
        result = await reconcile_stripe_event(event, event_key)

    except Exception as e:
        logger.error(f"Error processing webhook {event_type}: {e}")
        await log_webhook_finished(log_id, WebhookStatus.FAILED, started, str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed", "details": str(e)},
        )

    await log_webhook_finished(log_id, result.status, started)
    return _result_body(result)
