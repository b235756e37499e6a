"""
Unit tests for WebhookReconciliationService.

Gateway clients and repositories are mocked; each test checks which
local record is matched and what changes are written.
"""

from unittest.mock import AsyncMock

import pytest

from app.domain.webhooks import MercadoPagoNotification, WebhookStatus
from app.infrastructure.services.webhook_reconciliation_service import (
    WebhookReconciliationService,
)


@pytest.fixture
def service(mock_session, mock_mercadopago, mock_stripe):
    service = WebhookReconciliationService(mock_session, mock_mercadopago, mock_stripe)
    service.orders = AsyncMock()
    service.orders.get_by_reference.return_value = None
    service.orders.get_by_payment_id.return_value = None
    service.subscriptions = AsyncMock()
    service.products = AsyncMock()
    # OrderService writes through the same mocked repository
    service.order_service.orders = service.orders
    return service


def stripe_event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


class TestMercadoPagoPayments:

    @pytest.mark.asyncio
    async def test_unknown_reference_is_ignored(self, service, mock_mercadopago):
        mock_mercadopago.get_payment.return_value = {
            "id": 1, "status": "approved", "external_reference": "nope"
        }

        result = await service.reconcile_payment("1")

        assert result.status == WebhookStatus.IGNORED
        service.orders.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approved_payment_updates_order(self, service, mock_mercadopago, pending_order):
        mock_mercadopago.get_payment.return_value = {
            "id": 123, "status": "approved", "external_reference": pending_order.external_reference
        }
        service.orders.get_by_reference.return_value = pending_order

        result = await service.reconcile_payment("123")

        assert result.status == WebhookStatus.PROCESSED
        assert result.record_id == str(pending_order.id)
        changes = service.orders.apply.await_args.args[1]
        assert changes["payment_status"] == "paid"
        assert changes["status"] == "processing"
        assert changes["mercadopago_payment_id"] == "123"

    @pytest.mark.asyncio
    async def test_falls_back_to_payment_id(self, service, mock_mercadopago, pending_order):
        mock_mercadopago.get_payment.return_value = {"id": 9, "status": "rejected"}
        service.orders.get_by_payment_id.return_value = pending_order

        result = await service.reconcile_payment("9")

        assert result.status == WebhookStatus.PROCESSED
        service.orders.get_by_payment_id.assert_awaited_once_with("9")

    @pytest.mark.asyncio
    async def test_pending_subscription_payment_is_ignored(self, service, mock_mercadopago):
        mock_mercadopago.get_payment.return_value = {
            "id": 5, "status": "in_process", "external_reference": "SUB-x-7-abcdef12"
        }

        result = await service.reconcile_payment("5")

        assert result.status == WebhookStatus.IGNORED
        mock_mercadopago.create_preapproval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approved_subscription_payment_activates(
        self, service, mock_mercadopago, pending_subscription
    ):
        mock_mercadopago.get_payment.return_value = {
            "id": 777,
            "status": "approved",
            "external_reference": pending_subscription.external_reference,
            "metadata": {"subscription_id": "42"},
            "payer": {"email": "payer@example.com"},
        }
        mock_mercadopago.create_preapproval.return_value = {"id": "pre-1", "status": "authorized"}
        service.subscriptions.find_for_activation.return_value = pending_subscription

        result = await service.reconcile_payment("777")

        assert result.status == WebhookStatus.PROCESSED
        assert result.record_id == "42"
        service.subscriptions.find_for_activation.assert_awaited_once_with(
            "42", pending_subscription.external_reference, "777"
        )

        kwargs = mock_mercadopago.create_preapproval.await_args.kwargs
        assert kwargs["payer_email"] == "payer@example.com"
        assert kwargs["transaction_amount"] == 405.0
        assert kwargs["frequency"] == 1
        assert kwargs["frequency_type"] == "months"

        changes = service.subscriptions.apply.await_args.args[1]
        assert changes["status"] == "active"
        assert changes["mercadopago_subscription_id"] == "pre-1"
        assert changes["charges_made"] == 1
        assert changes["extra_metadata"]["first_payment_id"] == "777"

    @pytest.mark.asyncio
    async def test_subscription_metadata_flag(self, service, mock_mercadopago):
        mock_mercadopago.get_payment.return_value = {
            "id": 8, "status": "approved", "external_reference": "custom",
            "metadata": {"is_subscription": "true"},
        }
        service.subscriptions.find_for_activation.return_value = None

        result = await service.reconcile_payment("8")

        assert result.status == WebhookStatus.IGNORED
        service.orders.get_by_reference.assert_not_awaited()


class TestPreapprovalSync:

    @pytest.mark.asyncio
    async def test_dispatches_subscription_events(self, service, mock_mercadopago, pending_subscription):
        pending_subscription.status = "active"
        mock_mercadopago.get_preapproval.return_value = {
            "id": "pre-1",
            "status": "paused",
            "external_reference": pending_subscription.external_reference,
        }
        service.subscriptions.get_by_external_reference.return_value = pending_subscription
        notification = MercadoPagoNotification.from_payload(
            {"type": "subscription_preapproval", "data": {"id": "pre-1"}}
        )

        result = await service.handle_mercadopago(notification)

        assert result.status == WebhookStatus.PROCESSED
        changes = service.subscriptions.apply.await_args.args[1]
        assert changes["status"] == "paused"
        assert changes["mercadopago_subscription_id"] == "pre-1"

    @pytest.mark.asyncio
    async def test_cancelled_sets_canceled_at(self, service, mock_mercadopago, pending_subscription):
        pending_subscription.status = "active"
        pending_subscription.mercadopago_subscription_id = "pre-1"
        mock_mercadopago.get_preapproval.return_value = {"id": "pre-1", "status": "cancelled"}
        service.subscriptions.get_by_mercadopago_id.return_value = pending_subscription

        await service.sync_preapproval("pre-1")

        changes = service.subscriptions.apply.await_args.args[1]
        assert changes["status"] == "cancelled"
        assert "canceled_at" in changes
        assert "mercadopago_subscription_id" not in changes

    @pytest.mark.asyncio
    async def test_unknown_subscription(self, service, mock_mercadopago):
        mock_mercadopago.get_preapproval.return_value = {"id": "pre-x", "status": "authorized"}
        service.subscriptions.get_by_mercadopago_id.return_value = None

        result = await service.sync_preapproval("pre-x")

        assert result.status == WebhookStatus.IGNORED

    @pytest.mark.asyncio
    async def test_unchanged_status(self, service, mock_mercadopago, pending_subscription):
        mock_mercadopago.get_preapproval.return_value = {"id": "pre-1", "status": "pending"}
        service.subscriptions.get_by_mercadopago_id.return_value = pending_subscription

        result = await service.sync_preapproval("pre-1")

        assert result.message == "status unchanged"
        service.subscriptions.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_gateway_status(self, service, mock_mercadopago, pending_subscription):
        mock_mercadopago.get_preapproval.return_value = {"id": "pre-1", "status": "weird"}
        service.subscriptions.get_by_mercadopago_id.return_value = pending_subscription

        result = await service.sync_preapproval("pre-1")

        assert result.status == WebhookStatus.IGNORED

    @pytest.mark.asyncio
    async def test_other_topics_are_acknowledged(self, service):
        notification = MercadoPagoNotification.from_payload({"type": "plan", "data": {"id": "1"}})

        result = await service.handle_mercadopago(notification)

        assert result.status == WebhookStatus.PROCESSED


class TestStripeEvents:

    @pytest.mark.asyncio
    async def test_checkout_with_order_id_marks_paid(self, service, pending_order):
        service.orders.get_by_id.return_value = pending_order
        event = stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "mode": "payment",
                "payment_status": "paid",
                "payment_intent": "pi_1",
                "metadata": {"order_id": str(pending_order.id)},
            },
        )

        result = await service.handle_stripe(event)

        assert result.record_id == str(pending_order.id)
        changes = service.orders.apply.await_args.args[1]
        assert changes["stripe_session_id"] == "cs_1"
        assert changes["payment_status"] == "paid"
        assert changes["status"] == "processing"
        assert "confirmed_at" in changes

    @pytest.mark.asyncio
    async def test_checkout_without_order_creates_one(self, service, mock_stripe):
        service.orders.get_by_stripe_session.return_value = None
        service.orders.create_with_items.side_effect = lambda order, items: order
        mock_stripe.list_session_line_items.return_value = [
            {"name": "Croquetas", "quantity": 2, "price": 450.0}
        ]
        event = stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_2",
                "mode": "payment",
                "payment_status": "paid",
                "amount_total": 90000,
                "currency": "mxn",
                "customer_details": {"email": "buyer@example.com", "name": "Buyer"},
            },
        )

        result = await service.handle_stripe(event)

        assert result.message == "order created"
        order, items = service.orders.create_with_items.call_args.args
        assert order.total == 900.0
        assert order.currency == "MXN"
        assert order.payment_status == "paid"
        assert items[0].quantity == 2

    @pytest.mark.asyncio
    async def test_invoice_failed_marks_past_due(self, service, pending_subscription):
        service.subscriptions.get_by_stripe_id.return_value = pending_subscription

        result = await service.handle_stripe(
            stripe_event("invoice.payment_failed", {"subscription": "sub_1"})
        )

        assert result.status == WebhookStatus.PROCESSED
        assert service.subscriptions.apply.await_args.args[1]["status"] == "past_due"

    @pytest.mark.asyncio
    async def test_invoice_without_subscription(self, service):
        result = await service.handle_stripe(stripe_event("invoice.payment_succeeded", {}))
        assert result.status == WebhookStatus.IGNORED

    @pytest.mark.asyncio
    async def test_subscription_deleted(self, service, pending_subscription):
        service.subscriptions.get_by_stripe_id.return_value = pending_subscription

        await service.handle_stripe(stripe_event("customer.subscription.deleted", {"id": "sub_1"}))

        changes = service.subscriptions.apply.await_args.args[1]
        assert changes["status"] == "cancelled"
        assert "canceled_at" in changes

    @pytest.mark.asyncio
    async def test_subscription_updated(self, service, pending_subscription):
        service.subscriptions.get_by_stripe_id.return_value = pending_subscription

        await service.handle_stripe(
            stripe_event(
                "customer.subscription.updated",
                {
                    "id": "sub_1",
                    "status": "active",
                    "current_period_start": 1760000000,
                    "current_period_end": 1762600000,
                    "cancel_at_period_end": True,
                },
            )
        )

        changes = service.subscriptions.apply.await_args.args[1]
        assert changes["status"] == "active"
        assert changes["cancel_at_period_end"] is True
        assert changes["next_billing_date"] == changes["current_period_end"]

    @pytest.mark.asyncio
    async def test_unhandled_type(self, service):
        result = await service.handle_stripe(stripe_event("charge.refunded", {}))
        assert result.status == WebhookStatus.IGNORED
