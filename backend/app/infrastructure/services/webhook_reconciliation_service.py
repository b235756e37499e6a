"""
Webhook Reconciliation Service

Applies gateway notifications to local orders and subscriptions.

Every handler re-reads the authoritative record from the gateway (or
trusts the signature-verified Stripe event), matches a local row by its
external reference or gateway id, and updates status columns. A
notification that matches nothing is reported as ignored, never raised.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import get_settings
from app.domain.catalog import (
    add_billing_period,
    add_months,
    apply_discount,
    get_discount_percentage,
    get_frequency,
    parse_subscription_type,
)
from app.domain.orders import OrderStatus, PaymentStatus, generate_order_number
from app.domain.subscription import (
    SubscriptionStatus,
    generate_subscription_reference,
    is_subscription_reference,
    map_preapproval_status,
    map_stripe_status,
)
from app.domain.webhooks import MercadoPagoEventType, MercadoPagoNotification, ProcessingResult
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.order import Order, OrderItem
from app.infrastructure.db.models.unified_subscription import UnifiedSubscription
from app.infrastructure.db.repositories.order_repository import OrderRepository
from app.infrastructure.db.repositories.product_repository import ProductRepository
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.payments.mercadopago_service import MercadoPagoService
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.order_service import OrderService


logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENT_TYPES = {
    MercadoPagoEventType.SUBSCRIPTION_PREAPPROVAL.value,
    MercadoPagoEventType.SUBSCRIPTION_AUTHORIZED_PAYMENT.value,
}


def _truthy(value: Any) -> bool:
    return value is True or str(value).lower() == "true"


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _as_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value)) if value else None
    except ValueError:
        return None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class WebhookReconciliationService:
    """
    Reconciles Mercado Pago and Stripe events with local records.

    Args:
        session: Session shared by every write of one event
        mercadopago: Mercado Pago REST client
        stripe_service: Stripe SDK wrapper
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
        self.orders = OrderRepository(session)
        self.subscriptions = SubscriptionRepository(session)
        self.products = ProductRepository(session)
        self.order_service = OrderService(session)
        self.settings = get_settings()

    # =========================================================================
    # Mercado Pago
    # =========================================================================

    async def handle_mercadopago(self, notification: MercadoPagoNotification) -> ProcessingResult:
        """Dispatch a Mercado Pago notification by type."""
        event_type = notification.type

        if event_type == MercadoPagoEventType.PAYMENT.value:
            return await self.reconcile_payment(notification.data.id)

        if event_type in SUBSCRIPTION_EVENT_TYPES:
            return await self.sync_preapproval(notification.data.id)

        logger.info(f"Mercado Pago {event_type} notification acknowledged without processing")
        return ProcessingResult.processed(f"{event_type} acknowledged")

    async def reconcile_payment(self, payment_id: str) -> ProcessingResult:
        """
        Apply a payment to the order or subscription it references.

        Subscription payments are recognized by the `SUB-` reference
        prefix or by `is_subscription` metadata.
        """
        payment = await self.mercadopago.get_payment(payment_id)
        reference = payment.get("external_reference")
        status = payment.get("status")
        metadata = payment.get("metadata") or {}

        logger.info(
            f"Payment {payment_id}: status={status}, reference={reference}"
        )

        if is_subscription_reference(reference) or _truthy(metadata.get("is_subscription")):
            if status != "approved":
                return ProcessingResult.ignored(
                    f"Subscription payment {payment_id} is {status}, nothing to activate"
                )
            return await self.activate_subscription(payment)

        order = None
        if reference:
            order = await self.orders.get_by_reference(reference)
        if order is None:
            order = await self.orders.get_by_payment_id(str(payment_id))
        if order is None:
            logger.warning(f"No order matches payment {payment_id} (reference {reference})")
            return ProcessingResult.ignored(f"No order for reference {reference}")

        changed = await self.order_service.apply_gateway_payment(order, payment)
        return ProcessingResult.processed(
            "order updated" if changed else "order unchanged",
            record_id=str(order.id),
        )

    async def activate_subscription(self, payment: Dict[str, Any]) -> ProcessingResult:
        """
        Turn a first approved payment into an active recurring subscription.

        Creates the gateway preapproval starting one billing period from now.
        """
        payment_id = str(payment.get("id"))
        metadata = payment.get("metadata") or {}
        reference = payment.get("external_reference")

        subscription = await self.subscriptions.find_for_activation(
            metadata.get("subscription_id"), reference, payment_id
        )
        if subscription is None:
            logger.warning(
                f"No pending subscription for payment {payment_id} (reference {reference})"
            )
            return ProcessingResult.ignored(f"No pending subscription for {reference}")

        now = utcnow()
        next_billing = add_billing_period(
            now, subscription.frequency, subscription.frequency_type
        )
        payer_email = (payment.get("payer") or {}).get("email") or subscription.customer_email

        preapproval = await self.mercadopago.create_preapproval(
            external_reference=subscription.external_reference,
            payer_email=payer_email,
            reason=f"Suscripción {subscription.product_name}",
            frequency=subscription.frequency,
            frequency_type=subscription.frequency_type,
            transaction_amount=subscription.transaction_amount or subscription.discounted_price,
            start_date=next_billing.isoformat(),
            end_date=add_months(next_billing, 12).isoformat(),
            back_url=f"{self.settings.app_url}/suscripcion/exito?ref={subscription.external_reference}",
        )

        await self.subscriptions.apply(
            subscription,
            {
                "status": SubscriptionStatus.ACTIVE.value,
                "mercadopago_subscription_id": preapproval.get("id"),
                "mercadopago_payment_id": payment_id,
                "next_billing_date": _parse_iso(preapproval.get("next_payment_date")) or next_billing,
                "last_billing_date": now,
                "charges_made": 1,
                "last_sync_at": now,
                "extra_metadata": {
                    **(subscription.extra_metadata or {}),
                    "first_payment_id": payment_id,
                    "preapproval_status": preapproval.get("status"),
                    "preapproval_created_at": now.isoformat(),
                },
            },
        )
        logger.info(
            f"Subscription {subscription.id} activated with preapproval {preapproval.get('id')}"
        )
        return ProcessingResult.processed("subscription activated", record_id=str(subscription.id))

    async def sync_preapproval(self, preapproval_id: str) -> ProcessingResult:
        """Mirror a preapproval status change onto the local subscription."""
        preapproval = await self.mercadopago.get_preapproval(preapproval_id)
        reference = preapproval.get("external_reference")

        subscription = None
        if reference:
            subscription = await self.subscriptions.get_by_external_reference(reference)
        if subscription is None:
            subscription = await self.subscriptions.get_by_mercadopago_id(preapproval_id)
        if subscription is None:
            logger.warning(f"No subscription matches preapproval {preapproval_id} ({reference})")
            return ProcessingResult.ignored(f"No subscription for {reference}")

        gateway_status = preapproval.get("status")
        new_status = map_preapproval_status(gateway_status)
        if new_status is None:
            logger.warning(f"Unknown preapproval status {gateway_status} for {preapproval_id}")
            return ProcessingResult.ignored(f"Unknown preapproval status {gateway_status}")

        if subscription.status == new_status.value:
            return ProcessingResult.processed("status unchanged", record_id=str(subscription.id))

        now = utcnow()
        changes: Dict[str, Any] = {"status": new_status.value, "last_sync_at": now}
        if not subscription.mercadopago_subscription_id:
            changes["mercadopago_subscription_id"] = preapproval_id
        if new_status == SubscriptionStatus.CANCELLED:
            changes["canceled_at"] = now
        next_payment = _parse_iso(preapproval.get("next_payment_date"))
        if next_payment:
            changes["next_billing_date"] = next_payment

        await self.subscriptions.apply(subscription, changes)
        logger.info(
            f"Subscription {subscription.id} {subscription.status} -> {new_status.value}"
        )
        return ProcessingResult.processed("subscription updated", record_id=str(subscription.id))

    # =========================================================================
    # Stripe
    # =========================================================================

    async def handle_stripe(self, event: Dict[str, Any]) -> ProcessingResult:
        """Dispatch a verified Stripe event by type."""
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "checkout.session.completed":
            if obj.get("mode") == "subscription":
                return await self._stripe_subscription_checkout(obj)
            return await self._stripe_payment_checkout(obj)
        if event_type == "invoice.payment_succeeded":
            return await self._stripe_invoice(obj, paid=True)
        if event_type == "invoice.payment_failed":
            return await self._stripe_invoice(obj, paid=False)
        if event_type == "customer.subscription.updated":
            return await self._stripe_subscription_updated(obj)
        if event_type == "customer.subscription.deleted":
            return await self._stripe_subscription_deleted(obj)

        logger.debug(f"Unhandled Stripe event type: {event_type}")
        return ProcessingResult.ignored(f"Unhandled event type {event_type}")

    async def _stripe_payment_checkout(self, session: Dict[str, Any]) -> ProcessingResult:
        metadata = session.get("metadata") or {}
        order_id = metadata.get("order_id") or session.get("client_reference_id")
        now = utcnow()
        paid = session.get("payment_status") == "paid"

        if order_id:
            order = await self.orders.get_by_id(order_id)
            if order is None:
                logger.warning(f"Stripe session {session.get('id')} references unknown order {order_id}")
                return ProcessingResult.ignored(f"No order {order_id}")

            changes: Dict[str, Any] = {
                "stripe_session_id": session.get("id"),
                "stripe_payment_intent_id": session.get("payment_intent"),
            }
            if paid:
                changes["payment_status"] = PaymentStatus.PAID.value
                if order.status == OrderStatus.PENDING.value:
                    changes["status"] = OrderStatus.PROCESSING.value
                if order.confirmed_at is None:
                    changes["confirmed_at"] = now
            await self.orders.apply(order, changes)
            return ProcessingResult.processed("order updated", record_id=str(order.id))

        existing = await self.orders.get_by_stripe_session(session.get("id"))
        if existing:
            return ProcessingResult.processed("order already recorded", record_id=str(existing.id))

        return await self._create_order_from_session(session, paid, now)

    async def _create_order_from_session(
        self, session: Dict[str, Any], paid: bool, now: datetime
    ) -> ProcessingResult:
        """Record an order for a session created outside the storefront checkout."""
        line_items = await self.stripe.list_session_line_items(session["id"])
        details = session.get("customer_details") or {}
        total = (session.get("amount_total") or 0) / 100

        order = Order(
            order_number=generate_order_number(now),
            status=OrderStatus.PROCESSING.value if paid else OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PAID.value if paid else PaymentStatus.PENDING.value,
            subtotal=total,
            shipping_cost=0.0,
            total=total,
            currency=(session.get("currency") or self.settings.store_currency).upper(),
            customer_email=details.get("email"),
            customer_name=details.get("name"),
            customer_phone=details.get("phone"),
            shipping_address={"address": details.get("address")},
            stripe_session_id=session.get("id"),
            stripe_payment_intent_id=session.get("payment_intent"),
            confirmed_at=now if paid else None,
        )
        items = [
            OrderItem(product_name=item["name"], quantity=item["quantity"], price=item["price"])
            for item in line_items
        ]
        order = await self.orders.create_with_items(order, items)
        logger.info(f"Created order {order.id} from Stripe session {session.get('id')}")
        return ProcessingResult.processed("order created", record_id=str(order.id))

    async def _stripe_subscription_checkout(self, session: Dict[str, Any]) -> ProcessingResult:
        metadata = session.get("metadata") or {}
        stripe_subscription_id = session.get("subscription")

        existing = await self.subscriptions.get_by_stripe_id(stripe_subscription_id)
        if existing:
            return ProcessingResult.processed("subscription already recorded", record_id=str(existing.id))

        stripe_sub = await self.stripe.get_subscription(stripe_subscription_id)
        if stripe_sub is None:
            return ProcessingResult.ignored(f"Stripe subscription {stripe_subscription_id} not found")

        product = None
        if str(metadata.get("product_id", "")).isdigit():
            product = await self.products.get_by_id(int(metadata["product_id"]))

        subscription_type = parse_subscription_type(metadata.get("subscription_type"))
        frequency, frequency_type = get_frequency(subscription_type)
        base_price = product.price if product else float(metadata.get("base_price") or 0)
        discount = get_discount_percentage(product, subscription_type) if product else 0.0
        discounted = apply_discount(base_price, discount)
        user_id = _as_uuid(metadata.get("user_id"))

        reference = metadata.get("external_reference")
        if not reference:
            reference = generate_subscription_reference(
                str(user_id or "guest"), product.id if product else 0, f"stripe:{stripe_subscription_id}"
            )

        # An earlier storefront checkout may have left the row pending
        subscription = await self.subscriptions.get_by_external_reference(reference)
        period_start = _from_timestamp(stripe_sub.get("current_period_start"))
        period_end = _from_timestamp(stripe_sub.get("current_period_end"))
        values = {
            "status": SubscriptionStatus.ACTIVE.value,
            "stripe_subscription_id": stripe_subscription_id,
            "stripe_customer_id": session.get("customer"),
            "current_period_start": period_start,
            "current_period_end": period_end,
            "next_billing_date": period_end,
            "last_billing_date": utcnow(),
            "charges_made": 1,
            "last_sync_at": utcnow(),
        }

        if subscription:
            await self.subscriptions.apply(subscription, values)
        else:
            subscription = await self.subscriptions.add(
                UnifiedSubscription(
                    user_id=user_id,
                    product_id=product.id if product else None,
                    product_name=product.name if product else metadata.get("product_name"),
                    customer_email=(session.get("customer_details") or {}).get("email"),
                    subscription_type=subscription_type.value,
                    frequency=frequency,
                    frequency_type=frequency_type.value,
                    base_price=base_price,
                    discount_percentage=discount,
                    discounted_price=discounted,
                    transaction_amount=discounted,
                    currency=self.settings.store_currency,
                    external_reference=reference,
                    **values,
                )
            )

        logger.info(f"Stripe subscription {stripe_subscription_id} active as {subscription.id}")
        return ProcessingResult.processed("subscription active", record_id=str(subscription.id))

    async def _stripe_invoice(self, invoice: Dict[str, Any], paid: bool) -> ProcessingResult:
        stripe_subscription_id = invoice.get("subscription")
        if not stripe_subscription_id:
            return ProcessingResult.ignored("Invoice is not for a subscription")

        subscription = await self.subscriptions.get_by_stripe_id(stripe_subscription_id)
        if subscription is None:
            return ProcessingResult.ignored(f"No subscription for {stripe_subscription_id}")

        now = utcnow()
        if paid:
            changes = {
                "status": SubscriptionStatus.ACTIVE.value,
                "last_billing_date": now,
                "last_sync_at": now,
            }
        else:
            changes = {"status": SubscriptionStatus.PAST_DUE.value, "last_sync_at": now}

        await self.subscriptions.apply(subscription, changes)
        logger.info(f"Subscription {subscription.id} invoice {'paid' if paid else 'failed'}")
        return ProcessingResult.processed("invoice applied", record_id=str(subscription.id))

    async def _stripe_subscription_updated(self, stripe_sub: Dict[str, Any]) -> ProcessingResult:
        subscription = await self.subscriptions.get_by_stripe_id(stripe_sub.get("id"))
        if subscription is None:
            return ProcessingResult.ignored(f"No subscription for {stripe_sub.get('id')}")

        new_status = map_stripe_status(stripe_sub.get("status"))
        period_end = _from_timestamp(stripe_sub.get("current_period_end"))
        changes: Dict[str, Any] = {
            "current_period_start": _from_timestamp(stripe_sub.get("current_period_start")),
            "current_period_end": period_end,
            "cancel_at_period_end": bool(stripe_sub.get("cancel_at_period_end")),
            "last_sync_at": utcnow(),
        }
        if period_end:
            changes["next_billing_date"] = period_end
        if new_status is not None:
            changes["status"] = new_status.value
        else:
            logger.warning(f"Unknown Stripe status {stripe_sub.get('status')}")

        await self.subscriptions.apply(subscription, changes)
        return ProcessingResult.processed("subscription synced", record_id=str(subscription.id))

    async def _stripe_subscription_deleted(self, stripe_sub: Dict[str, Any]) -> ProcessingResult:
        subscription = await self.subscriptions.get_by_stripe_id(stripe_sub.get("id"))
        if subscription is None:
            return ProcessingResult.ignored(f"No subscription for {stripe_sub.get('id')}")

        now = utcnow()
        await self.subscriptions.apply(
            subscription,
            {
                "status": SubscriptionStatus.CANCELLED.value,
                "canceled_at": now,
                "last_sync_at": now,
            },
        )
        logger.info(f"Subscription {subscription.id} cancelled by Stripe")
        return ProcessingResult.processed("subscription cancelled", record_id=str(subscription.id))
