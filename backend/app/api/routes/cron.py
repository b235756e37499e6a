"""
Cron API Routes

Scheduled jobs triggered by an external scheduler with `Authorization:
Bearer <CRON_SECRET>`.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import MercadoPagoDep, verify_cron_secret
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.services.billing_service import (
    RecurringBillingService,
    cancel_stale_orders,
)


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.post("/subscription-payments")
async def run_subscription_payments(mercadopago: MercadoPagoDep):
    """
    Bill every active subscription whose next billing date has passed.

    Each subscription is handled independently; failures are reported in
    `results.errors` without stopping the run.
    """
    now = utcnow()
    logger.info("Cron: recurring subscription billing started")
    results = await RecurringBillingService(mercadopago).run(now)
    return {"success": True, "timestamp": now.isoformat(), "results": results}


@router.post("/auto-cancel-orders")
async def run_auto_cancel_orders():
    """Cancel orders left pending with no payment past the configured age."""
    now = utcnow()
    logger.info("Cron: stale order sweep started")
    results = await cancel_stale_orders(now)
    return {"success": True, "timestamp": now.isoformat(), "results": results}
