"""
Recurring Billing Service

Cron-driven loop over subscriptions whose next billing date has passed.

Each subscription is handled in its own transaction. A failure is
recorded as a failed payment row for that subscription and the loop
moves on to the next one.
"""

import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.catalog import add_billing_period
from app.domain.subscription import SubscriptionPaymentStatus, generate_auto_payment_reference
from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.unified_subscription import SubscriptionPayment
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionPaymentRepository,
    SubscriptionRepository,
)
from app.infrastructure.payments.mercadopago_service import MercadoPagoService
from app.infrastructure.services.order_service import OrderService


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

PROCESSED = "processed"
SKIPPED = "skipped"
RECENT_PAYMENT_WINDOW = timedelta(hours=24)


class RecurringBillingService:
    """
    Records the periodic charge of every due subscription.

    Mercado Pago collects the money itself through the authorized
    preapproval; this loop confirms the preapproval is still authorized,
    records the expected payment, and advances the schedule.

    Args:
        mercadopago: Gateway client used to confirm preapprovals
        session_factory: Opens one transactional session per unit of work
    """

    def __init__(
        self,
        mercadopago: MercadoPagoService,
        session_factory: SessionFactory = get_session_context,
    ):
        self.mercadopago = mercadopago
        self.session_factory = session_factory

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Bill every due subscription sequentially.

        Returns:
            {"processed", "skipped", "failed", "errors"}
        """
        now = now or utcnow()
        async with self.session_factory() as session:
            due = await SubscriptionRepository(session).list_due(now)
            due_ids = [subscription.id for subscription in due]

        logger.info(f"Recurring billing: {len(due_ids)} subscriptions due")

        results: Dict[str, Any] = {"processed": 0, "skipped": 0, "failed": 0, "errors": []}
        for subscription_id in due_ids:
            try:
                async with self.session_factory() as session:
                    outcome = await self.bill_subscription(session, subscription_id, now)
                results[outcome] += 1
            except Exception as e:
                logger.error(f"Billing failed for subscription {subscription_id}: {e}")
                results["failed"] += 1
                results["errors"].append({"subscription_id": subscription_id, "error": str(e)})
                await self._record_failure(subscription_id, now, e)

        logger.info(
            f"Recurring billing done: {results['processed']} processed, "
            f"{results['skipped']} skipped, {results['failed']} failed"
        )
        return results

    async def bill_subscription(
        self,
        session: AsyncSession,
        subscription_id: int,
        now: datetime,
    ) -> str:
        """
        Bill one subscription inside `session`.

        Returns:
            "processed" or "skipped"
        """
        subscriptions = SubscriptionRepository(session)
        payments = SubscriptionPaymentRepository(session)

        subscription = await subscriptions.get_by_id(subscription_id)
        if subscription is None:
            return SKIPPED

        preapproval_id = subscription.mercadopago_subscription_id
        if not preapproval_id:
            logger.info(f"Subscription {subscription_id} has no preapproval, skipping")
            return SKIPPED

        preapproval = await self.mercadopago.get_preapproval(preapproval_id)
        if preapproval.get("status") != "authorized":
            logger.info(
                f"Preapproval {preapproval_id} is {preapproval.get('status')}, skipping"
            )
            return SKIPPED

        if await payments.has_payment_since(subscription_id, now - RECENT_PAYMENT_WINDOW):
            logger.info(f"Subscription {subscription_id} already billed in the last 24h")
            return SKIPPED

        await payments.add(
            SubscriptionPayment(
                subscription_id=subscription_id,
                status=SubscriptionPaymentStatus.PENDING.value,
                amount=subscription.transaction_amount,
                currency=subscription.currency,
                due_date=now,
                external_reference=generate_auto_payment_reference(subscription_id, now),
            )
        )

        next_billing = add_billing_period(
            subscription.next_billing_date or now,
            subscription.frequency,
            subscription.frequency_type,
        )
        await subscriptions.apply(
            subscription,
            {
                "next_billing_date": next_billing,
                "last_billing_date": now,
                "charges_made": (subscription.charges_made or 0) + 1,
            },
        )
        logger.info(
            f"Subscription {subscription_id} billed, next billing {next_billing.isoformat()}"
        )
        return PROCESSED

    async def _record_failure(self, subscription_id: int, now: datetime, error: Exception) -> None:
        try:
            async with self.session_factory() as session:
                await SubscriptionPaymentRepository(session).add(
                    SubscriptionPayment(
                        subscription_id=subscription_id,
                        status=SubscriptionPaymentStatus.FAILED.value,
                        due_date=now,
                        external_reference=generate_auto_payment_reference(subscription_id, now),
                        error=str(error)[:1000],
                    )
                )
        except Exception as e:
            logger.error(f"Could not record failed payment for {subscription_id}: {e}")


async def cancel_stale_orders(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run the stale pending order sweep in its own session."""
    async with get_session_context() as session:
        return await OrderService(session).cancel_stale_orders(now)


async def run_scheduled_jobs(
    mercadopago: MercadoPagoService,
    jobs: List[str],
) -> Dict[str, Any]:
    """Run the named jobs ("billing", "stale-orders") in order."""
    results: Dict[str, Any] = {}
    if "billing" in jobs:
        results["billing"] = await RecurringBillingService(mercadopago).run()
    if "stale-orders" in jobs:
        results["stale_orders"] = await cancel_stale_orders()
    return results
