"""
Checkout Service

Creates the order and hands the storefront a gateway checkout to redirect to.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import get_settings
from app.domain.catalog import apply_discount, get_discount_percentage, get_frequency
from app.domain.orders import CheckoutRequest, CheckoutResponse
from app.domain.subscription import generate_subscription_reference
from app.domain.webhooks import Gateway
from app.infrastructure.db.models.order import OrderItem
from app.infrastructure.exceptions import ValidationError
from app.infrastructure.payments.mercadopago_service import MercadoPagoService
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.order_service import OrderService


logger = logging.getLogger(__name__)


def build_payer(request: CheckoutRequest) -> Dict[str, Any]:
    """Mercado Pago payer block from checkout customer data."""
    customer = request.customer
    payer: Dict[str, Any] = {
        "name": customer.first_name,
        "surname": customer.last_name,
        "email": customer.email,
        "phone": {"number": customer.phone},
    }
    if customer.address:
        payer["address"] = {
            "street_name": customer.address.street_name,
            "street_number": customer.address.street_number,
            "zip_code": customer.address.zip_code,
        }
    return payer


class CheckoutService:
    """
    Order + gateway checkout creation.

    Args:
        session: Request session; the order commits with the request
        mercadopago: Regional gateway client
        stripe_service: Card gateway client
    """

    def __init__(
        self,
        session: AsyncSession,
        mercadopago: MercadoPagoService,
        stripe_service: StripeService,
    ):
        self.session = session
        self.mercadopago = mercadopago
        self.stripe = stripe_service
        self.order_service = OrderService(session)
        self.settings = get_settings()

    def _back_url(self, value: Optional[str], default_path: str) -> str:
        return value or f"{self.settings.app_url.rstrip('/')}{default_path}"

    async def mercadopago_checkout(
        self,
        request: CheckoutRequest,
        user_id: Optional[UUID] = None,
    ) -> CheckoutResponse:
        """Create the order, then a preference whose external_reference is the order id."""
        order, items = await self.order_service.create_order(request, user_id)
        reference = order.external_reference

        preference_items = self._preference_items(items)
        if order.shipping_cost:
            preference_items.append(
                {"id": "shipping", "title": "Envío", "quantity": 1, "unit_price": order.shipping_cost}
            )

        query = f"order_id={reference}&order_number={order.order_number}"
        preference = await self.mercadopago.create_preference(
            items=preference_items,
            external_reference=reference,
            payer=build_payer(request),
            back_urls={
                "success": f"{self._back_url(request.success_url, '/pago-exitoso')}?{query}",
                "failure": f"{self._back_url(request.failure_url, '/error-pago')}?{query}",
                "pending": f"{self._back_url(request.pending_url, '/pago-pendiente')}?{query}",
            },
        )

        await self.order_service.orders.apply(
            order, {"mercadopago_preference_id": preference["id"]}
        )
        return CheckoutResponse(
            gateway=Gateway.MERCADOPAGO.value,
            order_id=str(order.id),
            order_number=order.order_number,
            external_reference=reference,
            total=order.total,
            checkout_id=preference["id"],
            checkout_url=preference.get("init_point"),
            test_mode=bool(preference.get("test_mode")),
        )

    async def stripe_checkout(
        self,
        request: CheckoutRequest,
        user_id: Optional[UUID] = None,
    ) -> CheckoutResponse:
        """
        Create a Stripe Checkout Session.

        Carts holding a subscription item become a subscription-mode session
        for the first such item; anything else is a one-time payment.
        """
        subscription_item = next(
            (item for item in request.items if item.is_subscription), None
        )
        success_url = self._back_url(request.success_url, "/pago-exitoso")
        cancel_url = self._back_url(request.failure_url, "/error-pago")

        if subscription_item is not None:
            return await self._stripe_subscription_checkout(
                request, subscription_item, user_id, success_url, cancel_url
            )

        order, items = await self.order_service.create_order(request, user_id)
        session = await self.stripe.create_payment_session(
            order_id=str(order.id),
            items=[
                {
                    "name": item.product_name,
                    "price": item.price,
                    "quantity": item.quantity,
                    "image": item.product_image,
                }
                for item in items
            ],
            customer_email=request.customer.email,
            success_url=success_url,
            cancel_url=cancel_url,
            shipping_cost=order.shipping_cost,
        )
        await self.order_service.orders.apply(order, {"stripe_session_id": session.id})

        return CheckoutResponse(
            gateway=Gateway.STRIPE.value,
            order_id=str(order.id),
            order_number=order.order_number,
            external_reference=order.external_reference,
            total=order.total,
            checkout_id=session.id,
            checkout_url=session.url,
        )

    async def _stripe_subscription_checkout(
        self,
        request: CheckoutRequest,
        item,
        user_id: Optional[UUID],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutResponse:
        if user_id is None:
            raise ValidationError("Sign in to start a subscription")

        product = await self.order_service.products.get_by_id(item.product_id)
        if product is None or not product.is_active or not product.subscription_available:
            raise ValidationError(f"Product {item.product_id} is not available for subscription")

        frequency, frequency_type = get_frequency(item.subscription_type)
        unit_amount = apply_discount(
            product.price, get_discount_percentage(product, item.subscription_type)
        )
        reference = generate_subscription_reference(str(user_id), product.id, "stripe")

        session = await self.stripe.create_subscription_session(
            product_name=product.name,
            unit_amount=unit_amount,
            quantity=item.quantity,
            frequency=frequency,
            frequency_type=frequency_type.value,
            customer_email=request.customer.email,
            success_url=success_url,
            cancel_url=cancel_url,
            image=product.image,
            metadata={
                "user_id": str(user_id),
                "product_id": str(product.id),
                "subscription_type": item.subscription_type.value,
                "external_reference": reference,
            },
        )

        return CheckoutResponse(
            gateway=Gateway.STRIPE.value,
            external_reference=reference,
            total=round(unit_amount * item.quantity, 2),
            checkout_id=session.id,
            checkout_url=session.url,
        )

    @staticmethod
    def _preference_items(items: List[OrderItem]) -> List[Dict[str, Any]]:
        return [
            {
                "id": item.product_id,
                "title": item.product_name,
                "picture_url": item.product_image,
                "quantity": item.quantity,
                "unit_price": item.price,
            }
            for item in items
        ]
