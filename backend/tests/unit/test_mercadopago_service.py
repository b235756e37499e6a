"""
Unit tests for the Mercado Pago REST client.

HTTP traffic goes through httpx.MockTransport; no network access.
"""

import hashlib
import hmac
import json

import httpx
import pytest

from app.infrastructure.exceptions import RateLimitError
from app.infrastructure.payments.mercadopago_service import (
    MercadoPagoError,
    MercadoPagoService,
)


def make_service(handler, **kwargs) -> MercadoPagoService:
    return MercadoPagoService(
        access_token="TEST-token",
        base_url="https://mp.test",
        transport=httpx.MockTransport(handler),
        retry_base_delay=0,
        **kwargs,
    )


def sign(secret: str, data_id: str, request_id: str, ts: str) -> str:
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    digest = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return f"ts={ts},v1={digest}"


class TestRequests:

    @pytest.mark.asyncio
    async def test_get_payment(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"id": 123, "status": "approved"})

        payment = await make_service(handler).get_payment("123")

        assert payment["status"] == "approved"
        assert seen == {"path": "/v1/payments/123", "auth": "Bearer TEST-token"}

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"id": 1})

        result = await make_service(handler, max_retries=3).get_payment("1")

        assert result == {"id": 1}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, text="boom")

        with pytest.raises(MercadoPagoError) as exc_info:
            await make_service(handler, max_retries=2).get_payment("1")

        assert exc_info.value.status_code == 500
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad request")

        with pytest.raises(MercadoPagoError) as exc_info:
            await make_service(handler, max_retries=3).get_payment("1")

        assert exc_info.value.status_code == 400
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_surfaces_after_retries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="slow down")

        with pytest.raises(RateLimitError):
            await make_service(handler, max_retries=2).get_payment("1")

    @pytest.mark.asyncio
    async def test_missing_token(self):
        service = make_service(lambda request: httpx.Response(200, json={}))
        service._access_token = None

        with pytest.raises(MercadoPagoError, match="not configured"):
            await service.get_payment("1")

    @pytest.mark.asyncio
    async def test_search_payments_by_reference(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["external_reference"] == "ref-1"
            assert request.url.params["sort"] == "date_created"
            return httpx.Response(200, json={"results": [{"id": 9}]})

        assert await make_service(handler).search_payments("ref-1") == [{"id": 9}]


class TestPreferences:

    @pytest.mark.asyncio
    async def test_create_preference_body(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            captured["idempotency"] = request.headers.get("X-Idempotency-Key")
            return httpx.Response(201, json={"id": "pref-1", "init_point": "https://mp/checkout"})

        preference = await make_service(handler).create_preference(
            items=[{"id": 7, "title": "Croquetas", "quantity": 2, "unit_price": 450}],
            external_reference="order-ref",
            back_urls={"success": "https://shop/ok"},
        )

        body = captured["body"]
        assert preference["id"] == "pref-1"
        assert body["external_reference"] == "order-ref"
        assert body["items"][0]["unit_price"] == 450.0
        assert body["items"][0]["currency_id"] == "MXN"
        assert body["auto_return"] == "approved"
        assert body["notification_url"].endswith("/api/webhooks/mercadopago")
        assert captured["idempotency"] == "order-ref-preference"

    @pytest.mark.asyncio
    async def test_test_mode_skips_gateway(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("gateway must not be called in test mode")

        service = make_service(handler)
        service._test_mode = True

        preference = await service.create_preference(
            items=[{"title": "Croquetas", "quantity": 1, "unit_price": 1}],
            external_reference="order-ref",
            back_urls={"success": "https://shop/ok"},
        )

        assert preference["test_mode"] is True
        assert preference["id"].startswith("TEST-order-ref-")
        assert preference["init_point"] == "https://shop/ok?external_reference=order-ref&test=true"


class TestWebhookSignature:

    SECRET = "webhook-secret"

    def test_valid_signature(self):
        service = MercadoPagoService(webhook_secret=self.SECRET)
        header = sign(self.SECRET, "123", "req-1", "1700000000")
        assert service.verify_webhook_signature(header, "req-1", "123")

    def test_data_id_is_lowercased(self):
        service = MercadoPagoService(webhook_secret=self.SECRET)
        header = sign(self.SECRET, "abc", "req-1", "1700000000")
        assert service.verify_webhook_signature(header, "req-1", "ABC")

    def test_tampered_signature(self):
        service = MercadoPagoService(webhook_secret=self.SECRET)
        header = sign(self.SECRET, "123", "req-1", "1700000000")
        assert not service.verify_webhook_signature(header, "req-1", "124")

    def test_malformed_header(self):
        service = MercadoPagoService(webhook_secret=self.SECRET)
        assert not service.verify_webhook_signature(None, "req-1", "123")
        assert not service.verify_webhook_signature("v1=abc", "req-1", "123")

    def test_no_secret_accepts_everything(self):
        service = MercadoPagoService()
        service._webhook_secret = None
        assert service.verify_webhook_signature(None, None, None)
