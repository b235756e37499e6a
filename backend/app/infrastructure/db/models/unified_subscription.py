"""
Unified Subscription SQLModels

`unified_subscriptions` is the single authoritative subscription table for
both gateways. Rows start `pending` at checkout and are activated by webhooks.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import ConfigDict
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.domain.subscription import SubscriptionPaymentStatus, SubscriptionStatus
from app.infrastructure.db.models.base import DateTimeField, TimestampMixin, utcnow


class UnifiedSubscription(TimestampMixin, table=True):
    """Subscription table shared by Mercado Pago and Stripe flows."""

    __tablename__ = "unified_subscriptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[UUID] = Field(default=None, index=True)
    product_id: Optional[int] = Field(default=None, index=True)
    product_name: Optional[str] = Field(default=None, max_length=200)
    customer_email: Optional[str] = Field(default=None, max_length=255)
    size: Optional[str] = Field(default=None, max_length=50)
    quantity: int = Field(default=1, ge=1)

    status: str = Field(default=SubscriptionStatus.PENDING.value, max_length=20, index=True)
    subscription_type: str = Field(default="monthly", max_length=20)
    frequency: int = Field(default=1, ge=1)
    frequency_type: str = Field(default="months", max_length=10)

    # Pricing
    base_price: float = Field(default=0.0)
    discount_percentage: float = Field(default=0.0)
    discounted_price: float = Field(default=0.0)
    transaction_amount: float = Field(default=0.0)
    currency: str = Field(default="MXN", max_length=3)

    # Gateway correlation
    external_reference: str = Field(..., max_length=64, unique=True, index=True)
    mercadopago_subscription_id: Optional[str] = Field(default=None, max_length=100, index=True)
    mercadopago_payment_id: Optional[str] = Field(default=None, max_length=100)
    stripe_subscription_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255)

    # Billing schedule
    next_billing_date: Optional[datetime] = DateTimeField(index=True)
    last_billing_date: Optional[datetime] = DateTimeField()
    current_period_start: Optional[datetime] = DateTimeField()
    current_period_end: Optional[datetime] = DateTimeField()
    cancel_at_period_end: bool = Field(default=False)
    charges_made: int = Field(default=0, ge=0)

    canceled_at: Optional[datetime] = DateTimeField()
    last_sync_at: Optional[datetime] = DateTimeField()

    # `metadata` is reserved on declarative classes
    extra_metadata: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column("metadata", JSON)
    )

    model_config = ConfigDict(from_attributes=True)


class SubscriptionPayment(SQLModel, table=True):
    """Billing history row per recurring charge attempt."""

    __tablename__ = "subscription_payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    subscription_id: int = Field(foreign_key="unified_subscriptions.id", index=True)
    status: str = Field(default=SubscriptionPaymentStatus.PENDING.value, max_length=20)
    amount: float = Field(default=0.0)
    currency: str = Field(default="MXN", max_length=3)
    due_date: Optional[datetime] = DateTimeField()
    external_reference: Optional[str] = Field(default=None, max_length=100)
    error: Optional[str] = Field(default=None)
    created_at: datetime = DateTimeField(default_factory=utcnow, nullable=False, index=True)
