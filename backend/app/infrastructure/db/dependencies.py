"""
Dependency Injection Providers for the Pet Gourmet store

FastAPI dependencies that bind repositories to the request session.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session
from app.infrastructure.db.repositories import (
    OrderRepository,
    ProductRepository,
    ProfileRepository,
    SubscriptionPaymentRepository,
    SubscriptionRepository,
    WebhookLogRepository,
)


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_product_repository(
    session: SessionDep,
) -> AsyncGenerator[ProductRepository, None]:
    """
    Dependency provider for ProductRepository.

    Usage:
        @router.get("/products")
        async def list_products(repo: ProductRepoDep):
            ...
    """
    yield ProductRepository(session)


async def get_order_repository(
    session: SessionDep,
) -> AsyncGenerator[OrderRepository, None]:
    yield OrderRepository(session)


async def get_subscription_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionRepository, None]:
    yield SubscriptionRepository(session)


async def get_subscription_payment_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionPaymentRepository, None]:
    yield SubscriptionPaymentRepository(session)


async def get_profile_repository(
    session: SessionDep,
) -> AsyncGenerator[ProfileRepository, None]:
    yield ProfileRepository(session)


async def get_webhook_log_repository(
    session: SessionDep,
) -> AsyncGenerator[WebhookLogRepository, None]:
    yield WebhookLogRepository(session)


# Type aliases for repository dependencies
ProductRepoDep = Annotated[ProductRepository, Depends(get_product_repository)]
OrderRepoDep = Annotated[OrderRepository, Depends(get_order_repository)]
SubscriptionRepoDep = Annotated[SubscriptionRepository, Depends(get_subscription_repository)]
SubscriptionPaymentRepoDep = Annotated[
    SubscriptionPaymentRepository, Depends(get_subscription_payment_repository)
]
ProfileRepoDep = Annotated[ProfileRepository, Depends(get_profile_repository)]
WebhookLogRepoDep = Annotated[WebhookLogRepository, Depends(get_webhook_log_repository)]
