"""
Repository Layer for the Pet Gourmet store

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    IReadRepository,
    IWriteRepository,
)
from app.infrastructure.db.repositories.profile_repository import ProfileRepository
from app.infrastructure.db.repositories.product_repository import ProductRepository
from app.infrastructure.db.repositories.order_repository import OrderRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
    SubscriptionPaymentRepository,
)
from app.infrastructure.db.repositories.webhook_repository import (
    WebhookLogRepository,
    ProcessedEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    "IReadRepository",
    "IWriteRepository",
    # Repositories
    "ProfileRepository",
    "ProductRepository",
    "OrderRepository",
    "SubscriptionRepository",
    "SubscriptionPaymentRepository",
    "WebhookLogRepository",
    "ProcessedEventRepository",
]
