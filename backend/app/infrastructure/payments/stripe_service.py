"""
Stripe Payment Service

Infrastructure service for the card-network gateway.
Handles hosted Checkout Sessions (one-time and subscription), subscription
lifecycle calls, and webhook signature verification.
"""

import logging
from typing import Any, Dict, List, Optional

import stripe
from stripe import StripeError

from app.config.settings import get_settings
from app.infrastructure.exceptions import PaymentGatewayError


logger = logging.getLogger(__name__)

# Gateway frequency unit -> Stripe recurring interval
STRIPE_INTERVALS = {
    "days": "day",
    "weeks": "week",
    "months": "month",
}


class StripeServiceError(PaymentGatewayError):
    """Base exception for Stripe service errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, gateway="stripe", original_error=original_error)


class StripeService:
    """
    Stripe payment processing service.

    Prices are sent inline (`price_data`) so the catalog stays the source
    of truth; no Stripe Price objects need to be pre-created.
    """

    def __init__(self):
        """Initialize Stripe with API key from settings."""
        settings = get_settings()
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.store_currency.lower()

        if self._api_key:
            stripe.api_key = self._api_key

    def _line_item(
        self,
        name: str,
        unit_amount: float,
        quantity: int,
        image: Optional[str] = None,
        recurring: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        product_data: Dict[str, Any] = {"name": name}
        if image:
            product_data["images"] = [image]

        price_data: Dict[str, Any] = {
            "currency": self._currency,
            "product_data": product_data,
            "unit_amount": int(round(unit_amount * 100)),
        }
        if recurring:
            price_data["recurring"] = recurring

        return {"price_data": price_data, "quantity": quantity}

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    async def create_payment_session(
        self,
        order_id: str,
        items: List[Dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        shipping_cost: float = 0.0,
    ) -> stripe.checkout.Session:
        """
        Create a one-time payment Checkout Session for an existing order.

        Args:
            order_id: Local order id, echoed back in `metadata.order_id`
            items: Dicts with name, price, quantity, image
            customer_email: Prefilled receipt email
            success_url: Redirect after successful payment
            cancel_url: Redirect after cancelled payment
            shipping_cost: Added as its own line when non-zero

        Returns:
            stripe.checkout.Session with checkout URL
        """
        line_items = [
            self._line_item(item["name"], item["price"], item["quantity"], item.get("image"))
            for item in items
        ]
        if shipping_cost:
            line_items.append(self._line_item("Envío", shipping_cost, 1))

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=line_items,
                customer_email=customer_email,
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                client_reference_id=order_id,
                metadata={"order_id": order_id},
                payment_intent_data={"metadata": {"order_id": order_id}},
            )
            logger.info(f"Created payment session {session.id} for order {order_id}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create payment session: {e}")
            raise StripeServiceError(
                f"Failed to create checkout: {e.user_message}", original_error=e
            )

    async def create_subscription_session(
        self,
        product_name: str,
        unit_amount: float,
        quantity: int,
        frequency: int,
        frequency_type: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        image: Optional[str] = None,
    ) -> stripe.checkout.Session:
        """
        Create a subscription-mode Checkout Session.

        `metadata` is copied onto the Stripe subscription so later
        subscription events can be matched locally.
        """
        recurring = {
            "interval": STRIPE_INTERVALS.get(frequency_type, "month"),
            "interval_count": frequency,
        }

        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                payment_method_types=["card"],
                line_items=[
                    self._line_item(product_name, unit_amount, quantity, image, recurring)
                ],
                customer_email=customer_email,
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
            logger.info(
                f"Created subscription session {session.id} for "
                f"{metadata.get('external_reference')}"
            )
            return session

        except StripeError as e:
            logger.error(f"Failed to create subscription session: {e}")
            raise StripeServiceError(
                f"Failed to create checkout: {e.user_message}", original_error=e
            )

    async def list_session_line_items(self, session_id: str) -> List[Dict[str, Any]]:
        """Line items of a completed session (used to rebuild an order)."""
        try:
            line_items = stripe.checkout.Session.list_line_items(session_id, limit=100)
            return [
                {
                    "name": item.get("description") or "Producto",
                    "quantity": item.get("quantity") or 1,
                    "price": (item.get("amount_total") or 0) / 100 / (item.get("quantity") or 1),
                }
                for item in line_items.get("data", [])
            ]
        except StripeError as e:
            logger.error(f"Failed to list line items for {session_id}: {e}")
            raise StripeServiceError(f"Failed to list line items: {e}", original_error=e)

    # =========================================================================
    # Subscription Lifecycle
    # =========================================================================

    async def get_subscription(
        self,
        subscription_id: str,
    ) -> Optional[stripe.Subscription]:
        """
        Retrieve a subscription by ID.

        Returns:
            stripe.Subscription or None if not found
        """
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except StripeError as e:
            logger.warning(f"Failed to retrieve subscription {subscription_id}: {e}")
            return None

    async def cancel_subscription(
        self,
        subscription_id: str,
        cancel_at_period_end: bool = False,
    ) -> stripe.Subscription:
        try:
            if cancel_at_period_end:
                subscription = stripe.Subscription.modify(
                    subscription_id,
                    cancel_at_period_end=True,
                )
            else:
                subscription = stripe.Subscription.cancel(subscription_id)

            logger.info(
                f"Cancelled subscription {subscription_id}, "
                f"at_period_end={cancel_at_period_end}"
            )
            return subscription

        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise StripeServiceError(f"Failed to cancel: {e.user_message}", original_error=e)

    async def set_paused(self, subscription_id: str, paused: bool) -> stripe.Subscription:
        """Pause or resume collection on a subscription."""
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                pause_collection={"behavior": "void"} if paused else "",
            )
            logger.info(f"Subscription {subscription_id} paused={paused}")
            return subscription

        except StripeError as e:
            logger.error(f"Failed to update subscription {subscription_id}: {e}")
            raise StripeServiceError(f"Failed to update: {e.user_message}", original_error=e)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> stripe.Event:
        """
        Verify webhook signature and construct event.

        Raises:
            StripeServiceError if the payload or signature is invalid
        """
        try:
            return stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )
        except ValueError as e:
            raise StripeServiceError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise StripeServiceError(f"Invalid signature: {e}")


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
