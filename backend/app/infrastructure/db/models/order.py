"""
Order SQLModels

Orders and their line items. `external_reference` is what the gateways
echo back in notifications and always equals str(order.id).
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import ConfigDict
from sqlalchemy import JSON, Column, ForeignKey
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlmodel import Field, SQLModel

from app.domain.orders import OrderStatus, PaymentStatus
from app.infrastructure.db.models.base import DateTimeField, TimestampMixin, UUIDMixin


class Order(UUIDMixin, TimestampMixin, table=True):
    """Order table."""

    __tablename__ = "orders"

    user_id: Optional[UUID] = Field(default=None, index=True)
    order_number: Optional[str] = Field(default=None, max_length=40, index=True)
    external_reference: Optional[str] = Field(
        default=None, max_length=64, unique=True, index=True
    )

    status: str = Field(default=OrderStatus.PENDING.value, max_length=20, index=True)
    payment_status: str = Field(default=PaymentStatus.PENDING.value, max_length=20)

    subtotal: float = Field(default=0.0)
    shipping_cost: float = Field(default=0.0)
    total: float = Field(default=0.0)
    currency: str = Field(default="MXN", max_length=3)

    customer_email: Optional[str] = Field(default=None, max_length=255)
    customer_name: Optional[str] = Field(default=None, max_length=200)
    customer_phone: Optional[str] = Field(default=None, max_length=30)
    shipping_address: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON)
    )

    # Gateway identifiers
    mercadopago_preference_id: Optional[str] = Field(default=None, max_length=100)
    mercadopago_payment_id: Optional[str] = Field(default=None, max_length=100, index=True)
    stripe_session_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_payment_intent_id: Optional[str] = Field(default=None, max_length=255)

    confirmed_at: Optional[datetime] = DateTimeField()

    model_config = ConfigDict(from_attributes=True)


class OrderItem(SQLModel, table=True):
    """Order line item table."""

    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: UUID = Field(
        sa_column=Column(
            PGUUID(as_uuid=True),
            ForeignKey("orders.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
    )
    product_id: Optional[int] = Field(default=None)
    product_name: str = Field(default="", max_length=200)
    product_image: Optional[str] = Field(default=None, max_length=500)
    quantity: int = Field(default=1, ge=1)
    price: float = Field(default=0.0, ge=0)
    size: Optional[str] = Field(default=None, max_length=50)


class OrderUpdate(SQLModel):
    """Admin partial update of an order."""

    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
