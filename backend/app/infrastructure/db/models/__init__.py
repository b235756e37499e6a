"""
SQLModel ORM Models for the Pet Gourmet store

Import models here to register them with SQLModel.metadata for Alembic.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
    utcnow,
)
from app.infrastructure.db.models.profile import Profile, ProfileRead, ProfileRole
from app.infrastructure.db.models.product import (
    Product,
    ProductBase,
    ProductCreate,
    ProductUpdate,
    ProductRead,
)
from app.infrastructure.db.models.order import Order, OrderItem, OrderUpdate
from app.infrastructure.db.models.unified_subscription import (
    UnifiedSubscription,
    SubscriptionPayment,
)
from app.infrastructure.db.models.webhook import WebhookLog, ProcessedWebhookEvent


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    "utcnow",
    # Profiles
    "Profile",
    "ProfileRead",
    "ProfileRole",
    # Catalog
    "Product",
    "ProductBase",
    "ProductCreate",
    "ProductUpdate",
    "ProductRead",
    # Orders
    "Order",
    "OrderItem",
    "OrderUpdate",
    # Subscriptions
    "UnifiedSubscription",
    "SubscriptionPayment",
    # Webhooks
    "WebhookLog",
    "ProcessedWebhookEvent",
]
