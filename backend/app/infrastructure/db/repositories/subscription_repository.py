"""
Subscription Repository

Data access for unified_subscriptions and their billing history.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import SubscriptionPaymentStatus, SubscriptionStatus
from app.infrastructure.db.models.unified_subscription import (
    SubscriptionPayment,
    UnifiedSubscription,
)
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)

ACTIVATABLE_STATUSES = (
    SubscriptionStatus.PENDING.value,
    SubscriptionStatus.PROCESSING.value,
)


class SubscriptionRepository(
    BaseRepository[UnifiedSubscription, UnifiedSubscription, UnifiedSubscription]
):
    """
    Repository for subscription lookups by gateway correlation ids.

    Webhooks match local rows on `external_reference` and gateway ids,
    never on user input.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(UnifiedSubscription, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def _first(self, *conditions) -> Optional[UnifiedSubscription]:
        stmt = (
            select(UnifiedSubscription)
            .where(*conditions)
            .order_by(UnifiedSubscription.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_external_reference(
        self, external_reference: str
    ) -> Optional[UnifiedSubscription]:
        return await self._first(
            UnifiedSubscription.external_reference == external_reference
        )

    async def get_by_mercadopago_id(
        self, preapproval_id: str
    ) -> Optional[UnifiedSubscription]:
        return await self._first(
            UnifiedSubscription.mercadopago_subscription_id == preapproval_id
        )

    async def get_by_stripe_id(
        self, stripe_subscription_id: str
    ) -> Optional[UnifiedSubscription]:
        return await self._first(
            UnifiedSubscription.stripe_subscription_id == stripe_subscription_id
        )

    async def find_for_activation(
        self,
        subscription_id: Optional[str],
        external_reference: Optional[str],
        payment_id: Optional[str],
    ) -> Optional[UnifiedSubscription]:
        """
        Find the pending/processing subscription a first payment belongs to.

        Tried in order: the id carried in payment metadata, the external
        reference, then a previously stored payment id.
        """
        pending = UnifiedSubscription.status.in_(ACTIVATABLE_STATUSES)

        if subscription_id and str(subscription_id).isdigit():
            subscription = await self._first(
                UnifiedSubscription.id == int(subscription_id), pending
            )
            if subscription:
                return subscription

        if external_reference:
            subscription = await self._first(
                UnifiedSubscription.external_reference == external_reference, pending
            )
            if subscription:
                return subscription

        if payment_id:
            return await self._first(
                UnifiedSubscription.mercadopago_payment_id == payment_id, pending
            )

        return None

    async def list_due(self, now: datetime, limit: int = 500) -> List[UnifiedSubscription]:
        """Active subscriptions whose next billing date has passed."""
        stmt = (
            select(UnifiedSubscription)
            .where(
                UnifiedSubscription.status == SubscriptionStatus.ACTIVE.value,
                UnifiedSubscription.next_billing_date <= now,
            )
            .order_by(UnifiedSubscription.next_billing_date)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_user(self, user_id) -> List[UnifiedSubscription]:
        stmt = (
            select(UnifiedSubscription)
            .where(UnifiedSubscription.user_id == user_id)
            .order_by(UnifiedSubscription.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_subscriptions(
        self,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[UnifiedSubscription]:
        stmt = select(UnifiedSubscription)
        if status:
            stmt = stmt.where(UnifiedSubscription.status == status)
        stmt = stmt.order_by(UnifiedSubscription.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> Dict[str, int]:
        stmt = select(
            UnifiedSubscription.status, func.count()
        ).group_by(UnifiedSubscription.status)
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def active_revenue(self) -> float:
        """Sum of per-period amounts over active subscriptions."""
        stmt = select(
            func.coalesce(func.sum(UnifiedSubscription.transaction_amount), 0)
        ).where(UnifiedSubscription.status == SubscriptionStatus.ACTIVE.value)
        result = await self.session.execute(stmt)
        return float(result.scalar_one() or 0)


class SubscriptionPaymentRepository(
    BaseRepository[SubscriptionPayment, SubscriptionPayment, SubscriptionPayment]
):
    """Billing history for recurring charges."""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionPayment, session)

    async def has_payment_since(self, subscription_id: int, since: datetime) -> bool:
        """Whether a non-failed charge was recorded at or after `since`."""
        stmt = (
            select(SubscriptionPayment.id)
            .where(
                SubscriptionPayment.subscription_id == subscription_id,
                SubscriptionPayment.created_at >= since,
                SubscriptionPayment.status != SubscriptionPaymentStatus.FAILED.value,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_for_subscription(
        self, subscription_id: int, limit: int = 50
    ) -> List[SubscriptionPayment]:
        stmt = (
            select(SubscriptionPayment)
            .where(SubscriptionPayment.subscription_id == subscription_id)
            .order_by(SubscriptionPayment.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
