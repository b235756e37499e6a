"""
Subscription Service

Storefront subscription checkout and customer lifecycle actions.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import get_settings
from app.domain.catalog import apply_discount, get_discount_percentage, get_frequency
from app.domain.subscription import (
    ACTION_TRANSITIONS,
    CreateSubscriptionRequest,
    SubscriptionAction,
    SubscriptionCheckoutResponse,
    SubscriptionResponse,
    SubscriptionStatus,
    can_apply_action,
    generate_subscription_reference,
)
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.unified_subscription import UnifiedSubscription
from app.infrastructure.db.repositories.product_repository import ProductRepository
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.exceptions import DuplicateError, ValidationError
from app.infrastructure.payments.mercadopago_service import MercadoPagoService
from app.infrastructure.payments.stripe_service import StripeService


logger = logging.getLogger(__name__)


def to_subscription_response(subscription: UnifiedSubscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=str(subscription.id),
        user_id=str(subscription.user_id) if subscription.user_id else None,
        product_id=subscription.product_id,
        product_name=subscription.product_name,
        status=subscription.status,
        subscription_type=subscription.subscription_type,
        frequency=subscription.frequency,
        frequency_type=subscription.frequency_type,
        discounted_price=subscription.discounted_price,
        transaction_amount=subscription.transaction_amount,
        external_reference=subscription.external_reference,
        next_billing_date=subscription.next_billing_date,
        last_billing_date=subscription.last_billing_date,
        charges_made=subscription.charges_made or 0,
        created_at=subscription.created_at,
    )


class SubscriptionService:
    """
    Subscription checkout and lifecycle.

    Args:
        session: Request session
        mercadopago: Regional gateway client
        stripe_service: Card gateway client (Stripe-backed subscriptions)
    """

    def __init__(
        self,
        session: AsyncSession,
        mercadopago: MercadoPagoService,
        stripe_service: Optional[StripeService] = None,
    ):
        self.session = session
        self.mercadopago = mercadopago
        self.stripe = stripe_service
        self.subscriptions = SubscriptionRepository(session)
        self.products = ProductRepository(session)
        self.settings = get_settings()

    # =========================================================================
    # Checkout
    # =========================================================================

    async def _resolve_reference(self, user_id: UUID, product_id: int):
        """
        Deterministic reference for a user/product pair.

        A pending row with that reference is reused. A live one blocks a
        duplicate subscription. A finished one chains to a renewal
        reference derived from its id, so every resubscription after a
        cancellation gets a fresh row and a fresh preference.
        """
        reference = generate_subscription_reference(str(user_id), product_id)
        existing = await self.subscriptions.get_by_external_reference(reference)

        while existing is not None:
            if existing.status in (SubscriptionStatus.PENDING.value, SubscriptionStatus.PROCESSING.value):
                return reference, existing
            if existing.status in (
                SubscriptionStatus.ACTIVE.value,
                SubscriptionStatus.PAUSED.value,
                SubscriptionStatus.PAST_DUE.value,
            ):
                raise DuplicateError(
                    "You already have a subscription for this product",
                    operation="create",
                    table="unified_subscriptions",
                )
            reference = generate_subscription_reference(
                str(user_id), product_id, f"renew:{existing.id}"
            )
            existing = await self.subscriptions.get_by_external_reference(reference)

        return reference, None

    async def start_checkout(
        self,
        user_id: UUID,
        request: CreateSubscriptionRequest,
    ) -> SubscriptionCheckoutResponse:
        """
        Create (or reuse) a pending subscription and its first-payment preference.

        The preference metadata carries `subscription_id` so the payment
        webhook can find the row to activate.
        """
        product = await self.products.get_by_id(request.product_id)
        if product is None or not product.is_active:
            raise ValidationError(f"Product {request.product_id} is not available")
        if not product.subscription_available:
            raise ValidationError(f"Product {product.name} does not offer subscriptions")

        frequency, frequency_type = get_frequency(request.subscription_type)
        discount = get_discount_percentage(product, request.subscription_type)
        discounted = apply_discount(product.price, discount)
        amount = round(discounted * request.quantity, 2)

        reference, subscription = await self._resolve_reference(user_id, product.id)
        values: Dict[str, Any] = {
            "product_name": product.name,
            "customer_email": request.customer.email,
            "size": request.size,
            "quantity": request.quantity,
            "subscription_type": request.subscription_type.value,
            "frequency": frequency,
            "frequency_type": frequency_type.value,
            "base_price": product.price,
            "discount_percentage": discount,
            "discounted_price": discounted,
            "transaction_amount": amount,
            "currency": self.settings.store_currency,
            "extra_metadata": {
                "customer_data": request.customer.model_dump(by_alias=True),
            },
        }

        if subscription is None:
            subscription = await self.subscriptions.add(
                UnifiedSubscription(
                    user_id=user_id,
                    product_id=product.id,
                    status=SubscriptionStatus.PENDING.value,
                    external_reference=reference,
                    **values,
                )
            )
            logger.info(f"Created pending subscription {subscription.id} ({reference})")
        else:
            subscription = await self.subscriptions.apply(subscription, values)
            logger.info(f"Reusing pending subscription {subscription.id} ({reference})")

        app_url = self.settings.app_url.rstrip("/")
        preference = await self.mercadopago.create_preference(
            items=[
                {
                    "id": product.id,
                    "title": f"Suscripción {product.name}",
                    "picture_url": product.image,
                    "quantity": request.quantity,
                    "unit_price": discounted,
                }
            ],
            external_reference=reference,
            payer={"email": request.customer.email},
            back_urls={
                "success": request.success_url or f"{app_url}/suscripcion/exito?ref={reference}",
                "failure": request.failure_url or f"{app_url}/error-pago?ref={reference}",
                "pending": f"{app_url}/pago-pendiente?ref={reference}",
            },
            metadata={
                "is_subscription": True,
                "first_payment": True,
                "subscription_id": subscription.id,
            },
        )

        return SubscriptionCheckoutResponse(
            subscription_id=str(subscription.id),
            external_reference=reference,
            init_point=preference.get("init_point") or "",
            preference_id=preference["id"],
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def apply_action(
        self,
        subscription: UnifiedSubscription,
        action: SubscriptionAction,
    ) -> UnifiedSubscription:
        """
        Cancel, pause or resume a subscription at the gateway, then locally.

        Raises:
            ValidationError: action not allowed from the current status
        """
        if not can_apply_action(subscription.status, action):
            raise ValidationError(
                f"Cannot {action.value} a subscription that is {subscription.status}"
            )

        gateway_status, local_status = ACTION_TRANSITIONS[action]

        if subscription.mercadopago_subscription_id:
            await self.mercadopago.update_preapproval_status(
                subscription.mercadopago_subscription_id, gateway_status
            )
        elif subscription.stripe_subscription_id and self.stripe is not None:
            if action == SubscriptionAction.CANCEL:
                await self.stripe.cancel_subscription(subscription.stripe_subscription_id)
            else:
                await self.stripe.set_paused(
                    subscription.stripe_subscription_id,
                    paused=action == SubscriptionAction.PAUSE,
                )

        now = utcnow()
        changes: Dict[str, Any] = {"status": local_status.value, "last_sync_at": now}
        if action == SubscriptionAction.CANCEL:
            changes["canceled_at"] = now

        subscription = await self.subscriptions.apply(subscription, changes)
        logger.info(f"Subscription {subscription.id} {action.value} -> {local_status.value}")
        return subscription

    async def metrics(self) -> Dict[str, Any]:
        """Status counts and expected revenue per period for the admin dashboard."""
        counts = await self.subscriptions.count_by_status()
        return {
            "total": sum(counts.values()),
            "by_status": {status.value: counts.get(status.value, 0) for status in SubscriptionStatus},
            "active_revenue": round(await self.subscriptions.active_revenue(), 2),
        }
