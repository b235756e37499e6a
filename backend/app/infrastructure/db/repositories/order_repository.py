"""
Order Repository

Orders and their items. An order and its items are always written through
`create_with_items` in the caller's session so they commit or roll back together.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.orders import OrderStatus, PaymentStatus
from app.infrastructure.db.models.order import Order, OrderItem, OrderUpdate
from app.infrastructure.db.repositories.base_repository import BaseRepository


class OrderRepository(BaseRepository[Order, Order, OrderUpdate]):
    """Repository for orders and order items."""

    def __init__(self, session: AsyncSession):
        super().__init__(Order, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_id(self, id: Union[str, UUID]) -> Optional[Order]:
        """Get an order by id; malformed ids are treated as not found."""
        try:
            order_id = id if isinstance(id, UUID) else UUID(str(id))
        except ValueError:
            return None
        return await self.session.get(Order, order_id)

    async def get_by_reference(self, external_reference: str) -> Optional[Order]:
        """
        Resolve a gateway external_reference to an order.

        Falls back to the primary key because references equal str(id).
        """
        stmt = select(Order).where(Order.external_reference == external_reference)
        result = await self.session.execute(stmt)
        order = result.scalar_one_or_none()
        if order:
            return order
        return await self.get_by_id(external_reference)

    async def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        stmt = select(Order).where(Order.mercadopago_payment_id == payment_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_stripe_session(self, session_id: str) -> Optional[Order]:
        stmt = select(Order).where(Order.stripe_session_id == session_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_items(self, order_id: UUID) -> List[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: UUID, limit: int = 50) -> List[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_orders(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Order]:
        """Admin listing, newest first."""
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == status)
        if payment_status:
            stmt = stmt.where(Order.payment_status == payment_status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_stale_pending(self, cutoff: datetime) -> List[Order]:
        """Orders still pending/pending that were created before `cutoff`."""
        stmt = select(Order).where(
            Order.status == OrderStatus.PENDING.value,
            Order.payment_status == PaymentStatus.PENDING.value,
            Order.created_at < cutoff,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create_with_items(
        self,
        order: Order,
        items: Sequence[OrderItem],
    ) -> Order:
        """
        Insert one order row and its item rows.

        Nothing is committed here; a failure on any item leaves the
        whole unit to be rolled back by the session owner.
        """
        if order.external_reference is None:
            order.external_reference = str(order.id)
        self.session.add(order)
        await self.session.flush()

        for item in items:
            item.order_id = order.id
            self.session.add(item)
        await self.session.flush()

        await self.session.refresh(order)
        return order
