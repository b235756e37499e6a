"""
Order Service

Server-side pricing and persistence of checkout orders, plus the shared
rule that applies a gateway payment result to an order.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import get_settings
from app.domain.catalog import apply_discount, calculate_shipping, get_discount_percentage
from app.domain.orders import (
    CartItem,
    CreateOrderRequest,
    OrderItemResponse,
    OrderResponse,
    OrderStatus,
    PaymentStatus,
    generate_order_number,
    map_gateway_payment_status,
    validate_cart,
    validate_customer_data,
)
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.order import Order, OrderItem
from app.infrastructure.db.repositories.order_repository import OrderRepository
from app.infrastructure.db.repositories.product_repository import ProductRepository
from app.infrastructure.exceptions import ValidationError


logger = logging.getLogger(__name__)


def build_shipping_address(request: CreateOrderRequest) -> Dict[str, Any]:
    """JSON blob stored on the order with the checkout contact data."""
    customer = request.customer
    return {
        "customer_data": {
            "firstName": customer.first_name,
            "lastName": customer.last_name,
            "email": customer.email,
            "phone": customer.phone,
        },
        "address": customer.address.model_dump() if customer.address else None,
    }


def to_order_response(order: Order, items: List[OrderItem]) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        subtotal=order.subtotal,
        shipping_cost=order.shipping_cost,
        total=order.total,
        currency=order.currency,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        items=[
            OrderItemResponse(
                product_id=item.product_id,
                product_name=item.product_name,
                product_image=item.product_image,
                quantity=item.quantity,
                price=item.price,
                size=item.size,
            )
            for item in items
        ],
        created_at=order.created_at,
        confirmed_at=order.confirmed_at,
    )


# Order statuses a payment result may move an order out of. Shipped and
# delivered orders only follow the gateway in the payment column.
STATUS_SOURCES = {
    OrderStatus.PROCESSING: (OrderStatus.PENDING.value, OrderStatus.CANCELLED.value),
    OrderStatus.CANCELLED: (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value),
}


def apply_payment_result(
    order: Order,
    gateway_status: Optional[str],
    payment_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Compute the column changes a gateway payment status implies.

    A paid order only moves on a refund or chargeback, and a refunded one
    never moves again. An approval reopens an order the stale sweep
    cancelled. `confirmed_at` is only set on the first approval. Returns
    an empty dict when nothing would change.
    """
    payment_status, order_status = map_gateway_payment_status(gateway_status)
    changes: Dict[str, Any] = {}

    if order.payment_status == PaymentStatus.REFUNDED.value:
        return changes
    if order.payment_status == PaymentStatus.PAID.value and payment_status not in (
        PaymentStatus.PAID,
        PaymentStatus.REFUNDED,
    ):
        return changes

    if order.payment_status != payment_status.value:
        changes["payment_status"] = payment_status.value
    if (
        order_status is not None
        and order.status != order_status.value
        and order.status in STATUS_SOURCES.get(order_status, ())
        and (order_status != OrderStatus.PROCESSING or "payment_status" in changes)
    ):
        changes["status"] = order_status.value
    if payment_status == PaymentStatus.PAID and order.confirmed_at is None:
        changes["confirmed_at"] = now or utcnow()
    if payment_id and order.mercadopago_payment_id != str(payment_id):
        changes["mercadopago_payment_id"] = str(payment_id)

    return changes


class OrderService:
    """
    Creates orders from carts and keeps them in sync with gateway payments.

    Args:
        session: Request or job session; the caller owns the commit
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.orders = OrderRepository(session)
        self.products = ProductRepository(session)
        self.settings = get_settings()

    async def price_cart(self, items: List[CartItem]) -> List[OrderItem]:
        """
        Build item rows priced from the catalog, never from client input.

        Raises:
            ValidationError: unknown or inactive products
        """
        products = await self.products.get_many(item.product_id for item in items)

        errors = []
        rows = []
        for index, item in enumerate(items, start=1):
            product = products.get(item.product_id)
            if product is None or not product.is_active:
                errors.append(f"Item {index}: product {item.product_id} is not available")
                continue

            price = product.price
            if item.is_subscription and item.subscription_type:
                price = apply_discount(
                    price, get_discount_percentage(product, item.subscription_type)
                )

            rows.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    product_image=product.image,
                    quantity=item.quantity,
                    price=price,
                    size=item.size,
                )
            )

        if errors:
            raise ValidationError("Cart contains unavailable products", errors=errors)
        return rows

    async def create_order(
        self,
        request: CreateOrderRequest,
        user_id: Optional[UUID] = None,
    ) -> Tuple[Order, List[OrderItem]]:
        """
        Validate and persist one order with its items.

        Returns:
            (order, items) flushed in the current session
        """
        cart_check = validate_cart(request.items)
        customer_check = validate_customer_data(request.customer)
        errors = cart_check.errors + customer_check.errors
        if errors:
            raise ValidationError("Invalid checkout data", errors=errors)

        items = await self.price_cart(request.items)
        subtotal = round(sum(item.price * item.quantity for item in items), 2)
        shipping = calculate_shipping(
            subtotal,
            free_threshold=self.settings.free_shipping_threshold,
            flat_cost=self.settings.shipping_cost,
        )

        order_id = uuid4()
        order = Order(
            id=order_id,
            user_id=user_id,
            order_number=generate_order_number(utcnow()),
            external_reference=str(order_id),
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=subtotal,
            shipping_cost=shipping,
            total=round(subtotal + shipping, 2),
            currency=self.settings.store_currency,
            customer_email=request.customer.email.strip(),
            customer_name=request.customer.full_name,
            customer_phone=request.customer.phone.strip(),
            shipping_address=build_shipping_address(request),
        )

        order = await self.orders.create_with_items(order, items)
        logger.info(
            f"Created order {order.order_number} ({order.id}) with "
            f"{len(items)} items, total {order.total}"
        )
        return order, items

    async def apply_gateway_payment(
        self,
        order: Order,
        payment: Dict[str, Any],
    ) -> bool:
        """
        Apply a Mercado Pago payment record to an order.

        Returns:
            True if the order changed
        """
        changes = apply_payment_result(order, payment.get("status"), payment.get("id"))
        if not changes:
            logger.info(f"Order {order.id} already reflects payment {payment.get('id')}")
            return False

        await self.orders.apply(order, changes)
        logger.info(
            f"Order {order.id} updated from payment {payment.get('id')} "
            f"({payment.get('status')}): {sorted(changes)}"
        )
        return True

    async def cancel_stale_orders(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Cancel orders left pending past the configured number of days.

        Each order is updated independently; one failure does not stop the rest.
        """
        now = now or utcnow()
        cutoff = now - timedelta(days=self.settings.stale_order_days)
        stale = await self.orders.list_stale_pending(cutoff)

        cancelled, errors = 0, []
        for order in stale:
            try:
                async with self.session.begin_nested():
                    await self.orders.apply(
                        order,
                        {
                            "status": OrderStatus.CANCELLED.value,
                            "payment_status": PaymentStatus.FAILED.value,
                        },
                    )
                cancelled += 1
            except Exception as e:
                logger.error(f"Failed to cancel stale order {order.id}: {e}")
                errors.append({"order_id": str(order.id), "error": str(e)})

        logger.info(f"Stale order sweep: {cancelled} cancelled, {len(errors)} errors")
        return {"checked": len(stale), "cancelled": cancelled, "errors": errors}
