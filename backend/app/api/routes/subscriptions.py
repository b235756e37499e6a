"""
Subscription API Routes

Recurring delivery checkout and the owner's lifecycle actions.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import (
    CurrentUser,
    SubscriptionRepoDep,
    SubscriptionServiceDep,
)
from app.api.rate_limit import rate_limit
from app.domain.subscription import (
    CreateSubscriptionRequest,
    SubscriptionAction,
    SubscriptionCheckoutResponse,
    SubscriptionResponse,
)
from app.infrastructure.db.models.unified_subscription import UnifiedSubscription
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.services.subscription_service import to_subscription_response


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


async def _get_owned(
    subscription_id: int,
    user_id,
    repo: SubscriptionRepository,
) -> UnifiedSubscription:
    subscription = await repo.get_by_id(subscription_id)
    if subscription is None or subscription.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        )
    return subscription


# =============================================================================
# Checkout
# =============================================================================

@router.post(
    "/checkout",
    response_model=SubscriptionCheckoutResponse,
    dependencies=[Depends(rate_limit("checkout"))],
)
async def create_subscription_checkout(
    request: CreateSubscriptionRequest,
    user: CurrentUser,
    service: SubscriptionServiceDep,
):
    """
    Start a subscription checkout.

    Creates (or reuses) a pending subscription and returns the Mercado Pago
    preference for the first payment. The subscription becomes active when
    the payment webhook confirms that payment.
    """
    return await service.start_checkout(user.id, request)


# =============================================================================
# Owner Endpoints
# =============================================================================

@router.get("/me", response_model=List[SubscriptionResponse])
async def list_my_subscriptions(user: CurrentUser, repo: SubscriptionRepoDep):
    subscriptions = await repo.list_for_user(user.id)
    return [to_subscription_response(subscription) for subscription in subscriptions]


async def _apply(
    subscription_id: int,
    action: SubscriptionAction,
    user,
    repo: SubscriptionRepository,
    service,
) -> SubscriptionResponse:
    subscription = await _get_owned(subscription_id, user.id, repo)
    subscription = await service.apply_action(subscription, action)
    return to_subscription_response(subscription)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: int,
    user: CurrentUser,
    repo: SubscriptionRepoDep,
    service: SubscriptionServiceDep,
):
    return await _apply(subscription_id, SubscriptionAction.CANCEL, user, repo, service)


@router.post("/{subscription_id}/pause", response_model=SubscriptionResponse)
async def pause_subscription(
    subscription_id: int,
    user: CurrentUser,
    repo: SubscriptionRepoDep,
    service: SubscriptionServiceDep,
):
    return await _apply(subscription_id, SubscriptionAction.PAUSE, user, repo, service)


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume_subscription(
    subscription_id: int,
    user: CurrentUser,
    repo: SubscriptionRepoDep,
    service: SubscriptionServiceDep,
):
    return await _apply(subscription_id, SubscriptionAction.RESUME, user, repo, service)
