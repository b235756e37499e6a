"""
Mercado Pago Payment Service

Infrastructure service for the regional gateway, spoken over its REST API:
checkout preferences, payment lookup, and preapprovals (recurring charges).

Transient failures (network errors, 429, 5xx) are retried with exponential
backoff. Webhook signatures are verified with HMAC-SHA256.
"""

import asyncio
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from app.config.settings import get_settings
from app.infrastructure.exceptions import PaymentGatewayError, RateLimitError


logger = logging.getLogger(__name__)

GATEWAY_NAME = "mercadopago"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class MercadoPagoError(PaymentGatewayError):
    """Raised when a Mercado Pago API call fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            gateway=GATEWAY_NAME,
            status_code=status_code,
            original_error=original_error,
        )


class MercadoPagoService:
    """
    Mercado Pago REST client.

    Args:
        access_token: Server-held access token (defaults to settings)
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        settings = get_settings()
        self._access_token = access_token or settings.mercadopago_access_token
        self._webhook_secret = webhook_secret or settings.mercadopago_webhook_secret
        self._base_url = (base_url or settings.mercadopago_api_url).rstrip("/")
        self._transport = transport
        self._timeout = settings.gateway_timeout_seconds
        self._max_retries = max_retries if max_retries is not None else settings.max_retries
        self._base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.retry_base_delay
        )
        self._max_delay = settings.retry_max_delay
        self._test_mode = settings.payment_test_mode
        self._currency = settings.store_currency
        self._notification_url = settings.mercadopago_webhook_url

    # =========================================================================
    # HTTP Plumbing
    # =========================================================================

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a request, retrying transient failures with exponential backoff."""
        if not self._access_token:
            raise MercadoPagoError("Mercado Pago access token is not configured")

        attempts = max(self._max_retries, 1)
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            for attempt in range(attempts):
                try:
                    response = await client.request(
                        method,
                        path,
                        json=json,
                        params=params,
                        headers=self._headers(idempotency_key),
                    )
                except httpx.TransportError as e:
                    last_error = MercadoPagoError(
                        f"{method} {path} transport error: {e}", original_error=e
                    )
                else:
                    if response.status_code < 400:
                        return response.json()

                    if response.status_code not in RETRYABLE_STATUS_CODES:
                        raise MercadoPagoError(
                            f"{method} {path} failed: {response.text}",
                            status_code=response.status_code,
                        )

                    if response.status_code == 429:
                        last_error = RateLimitError("Mercado Pago rate limit exceeded")
                    else:
                        last_error = MercadoPagoError(
                            f"{method} {path} failed: {response.text}",
                            status_code=response.status_code,
                        )

                if attempt < attempts - 1:
                    delay = min(self._base_delay * (2 ** attempt), self._max_delay)
                    logger.warning(
                        f"Mercado Pago {method} {path} attempt {attempt + 1}/{attempts} "
                        f"failed. Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        raise last_error

    # =========================================================================
    # Checkout Preferences
    # =========================================================================

    async def create_preference(
        self,
        items: List[Dict[str, Any]],
        external_reference: str,
        payer: Optional[Dict[str, Any]] = None,
        back_urls: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create a checkout preference.

        In test mode a simulated preference is returned without calling
        the gateway.

        Returns:
            Dict with at least `id` and `init_point`
        """
        if self._test_mode:
            preference_id = f"TEST-{external_reference}-{int(time.time() * 1000)}"
            logger.info(f"Test mode: simulated preference {preference_id}")
            success_url = (back_urls or {}).get("success", "")
            return {
                "id": preference_id,
                "init_point": f"{success_url}?external_reference={external_reference}&test=true",
                "sandbox_init_point": None,
                "test_mode": True,
            }

        body: Dict[str, Any] = {
            "items": [
                {
                    "id": str(item.get("id", "")),
                    "title": item["title"],
                    "description": item.get("description") or item["title"],
                    "picture_url": item.get("picture_url"),
                    "category_id": "pet_food",
                    "quantity": int(item["quantity"]),
                    "currency_id": self._currency,
                    "unit_price": float(item["unit_price"]),
                }
                for item in items
            ],
            "external_reference": external_reference,
            "notification_url": self._notification_url,
            "statement_descriptor": "PETGOURMET",
        }
        if payer:
            body["payer"] = payer
        if back_urls:
            body["back_urls"] = back_urls
            body["auto_return"] = "approved"
        if metadata:
            body["metadata"] = metadata

        preference = await self._request(
            "POST",
            "/checkout/preferences",
            json=body,
            idempotency_key=f"{external_reference}-preference",
        )
        logger.info(
            f"Created Mercado Pago preference {preference.get('id')} "
            f"for reference {external_reference}"
        )
        return preference

    # =========================================================================
    # Payments
    # =========================================================================

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        """Fetch the authoritative payment record."""
        return await self._request("GET", f"/v1/payments/{payment_id}")

    async def search_payments(self, external_reference: str) -> List[Dict[str, Any]]:
        """Payments for an external reference, newest first."""
        data = await self._request(
            "GET",
            "/v1/payments/search",
            params={
                "external_reference": external_reference,
                "sort": "date_created",
                "criteria": "desc",
            },
        )
        return data.get("results", [])

    # =========================================================================
    # Preapprovals (Recurring Billing)
    # =========================================================================

    async def get_preapproval(self, preapproval_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/preapproval/{preapproval_id}")

    async def create_preapproval(
        self,
        external_reference: str,
        payer_email: str,
        reason: str,
        frequency: int,
        frequency_type: str,
        transaction_amount: float,
        start_date: str,
        end_date: str,
        back_url: str,
    ) -> Dict[str, Any]:
        """
        Create an authorized preapproval after the first payment cleared.

        Dates are ISO-8601 strings.
        """
        body = {
            "reason": reason,
            "external_reference": external_reference,
            "payer_email": payer_email,
            "auto_recurring": {
                "frequency": frequency,
                "frequency_type": frequency_type,
                "start_date": start_date,
                "end_date": end_date,
                "transaction_amount": transaction_amount,
                "currency_id": self._currency,
            },
            "back_url": back_url,
            "status": "authorized",
        }
        preapproval = await self._request(
            "POST",
            "/preapproval",
            json=body,
            idempotency_key=f"{external_reference}-preapproval",
        )
        logger.info(
            f"Created preapproval {preapproval.get('id')} for {external_reference}"
        )
        return preapproval

    async def update_preapproval_status(
        self, preapproval_id: str, gateway_status: str
    ) -> Dict[str, Any]:
        """Set a preapproval to authorized, paused or cancelled."""
        preapproval = await self._request(
            "PUT",
            f"/preapproval/{preapproval_id}",
            json={"status": gateway_status},
        )
        logger.info(f"Preapproval {preapproval_id} set to {gateway_status}")
        return preapproval

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        signature_header: Optional[str],
        request_id: Optional[str],
        data_id: Optional[str],
    ) -> bool:
        """
        Verify the `x-signature` header.

        The manifest is `id:{data.id};request-id:{x-request-id};ts:{ts};`
        signed with HMAC-SHA256. Without a configured secret every
        notification is accepted.
        """
        if not self._webhook_secret:
            return True
        if not signature_header:
            return False

        parts = {}
        for part in signature_header.split(","):
            key, _, value = part.strip().partition("=")
            parts[key] = value

        ts, v1 = parts.get("ts"), parts.get("v1")
        if not ts or not v1:
            return False

        manifest = f"id:{(data_id or '').lower()};request-id:{request_id or ''};ts:{ts};"
        expected = hmac.new(
            self._webhook_secret.encode("utf-8"),
            manifest.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, v1)


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_mercadopago_service_instance: Optional[MercadoPagoService] = None


def get_mercadopago_service() -> MercadoPagoService:
    """Get or create Mercado Pago service singleton."""
    global _mercadopago_service_instance

    if _mercadopago_service_instance is None:
        _mercadopago_service_instance = MercadoPagoService()

    return _mercadopago_service_instance
