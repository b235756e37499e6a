"""
Unit tests for OrderService: server-side pricing, order creation and the
stale order sweep. Repositories are replaced with AsyncMocks.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.domain.orders import CartItem, CreateOrderRequest, CustomerData
from app.infrastructure.db.models.order import Order
from app.infrastructure.exceptions import ValidationError
from app.infrastructure.services.order_service import OrderService


@pytest.fixture
def service(mock_session, sample_product):
    service = OrderService(mock_session)
    service.products = AsyncMock()
    service.products.get_many.return_value = {sample_product.id: sample_product}
    service.orders = AsyncMock()
    service.orders.create_with_items.side_effect = lambda order, items: order
    return service


def make_request(sample_customer, *items) -> CreateOrderRequest:
    return CreateOrderRequest(
        items=list(items),
        customer=CustomerData(**sample_customer),
    )


class TestCreateOrder:

    @pytest.mark.asyncio
    async def test_prices_from_catalog_not_client(self, service, sample_customer, mock_user_id):
        request = make_request(
            sample_customer,
            CartItem(product_id=7, name="Croquetas", price=1.0, quantity=2),
        )

        order, items = await service.create_order(request, mock_user_id)

        assert items[0].price == 450.0
        assert order.subtotal == 900.0
        assert order.shipping_cost == 100.0
        assert order.total == 1000.0
        assert order.user_id == mock_user_id
        assert order.external_reference == str(order.id)
        assert order.order_number.startswith("PG")
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.customer_name == "María López"
        assert order.shipping_address["customer_data"]["phone"] == "5512345678"
        service.orders.create_with_items.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_free_shipping_at_threshold(self, service, sample_customer):
        request = make_request(sample_customer, CartItem(product_id=7, quantity=3))

        order, _ = await service.create_order(request)

        assert order.subtotal == 1350.0
        assert order.shipping_cost == 0.0
        assert order.total == 1350.0
        assert order.user_id is None

    @pytest.mark.asyncio
    async def test_subscription_line_gets_period_discount(self, service, sample_customer):
        request = make_request(
            sample_customer,
            CartItem(product_id=7, is_subscription=True, subscription_type="quarterly"),
        )

        _, items = await service.create_order(request)

        assert items[0].price == 382.5

    @pytest.mark.asyncio
    async def test_unknown_product(self, service, sample_customer):
        request = make_request(sample_customer, CartItem(product_id=99))

        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(request)

        assert exc_info.value.errors == ["Item 1: product 99 is not available"]
        service.orders.create_with_items.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_product(self, service, sample_customer, sample_product):
        sample_product.is_active = False
        request = make_request(sample_customer, CartItem(product_id=7))

        with pytest.raises(ValidationError):
            await service.create_order(request)

    @pytest.mark.asyncio
    async def test_invalid_customer_and_cart_reported_together(self, service, sample_customer):
        sample_customer["email"] = "not-an-email"
        request = make_request(sample_customer)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(request)

        assert "Cart is empty" in exc_info.value.errors
        assert "Email format is invalid" in exc_info.value.errors
        service.products.get_many.assert_not_awaited()


class TestApplyGatewayPayment:

    @pytest.mark.asyncio
    async def test_applies_changes(self, service, pending_order):
        changed = await service.apply_gateway_payment(
            pending_order, {"id": 555, "status": "approved"}
        )

        assert changed is True
        changes = service.orders.apply.await_args.args[1]
        assert changes["payment_status"] == "paid"
        assert changes["status"] == "processing"
        assert changes["mercadopago_payment_id"] == "555"

    @pytest.mark.asyncio
    async def test_no_changes(self, service, pending_order):
        changed = await service.apply_gateway_payment(pending_order, {"id": None, "status": "pending"})

        assert changed is False
        service.orders.apply.assert_not_awaited()


class TestStaleOrderSweep:

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, service, mock_session):
        @asynccontextmanager
        async def nested():
            yield

        mock_session.begin_nested = MagicMock(side_effect=lambda: nested())

        orders = [Order(order_number=f"PG{i}", status="pending") for i in range(3)]
        service.orders.list_stale_pending.return_value = orders
        service.orders.apply.side_effect = [None, RuntimeError("lock timeout"), None]
        now = datetime(2026, 10, 19, tzinfo=timezone.utc)

        result = await service.cancel_stale_orders(now)

        assert result["checked"] == 3
        assert result["cancelled"] == 2
        assert result["errors"] == [{"order_id": str(orders[1].id), "error": "lock timeout"}]
        service.orders.list_stale_pending.assert_awaited_once_with(now - timedelta(days=3))
        first_changes = service.orders.apply.await_args_list[0].args[1]
        assert first_changes == {"status": "cancelled", "payment_status": "failed"}
