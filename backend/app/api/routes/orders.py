"""
Order API Routes

Order creation for the storefront checkout and order history for customers.
Guests may create orders; reading them requires the owner's token.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import (
    CurrentProfile,
    CurrentUser,
    OptionalUser,
    OrderRepoDep,
    OrderServiceDep,
)
from app.api.rate_limit import rate_limit
from app.domain.orders import CreateOrderRequest, OrderCreatedResponse, OrderResponse
from app.infrastructure.services.order_service import to_order_response


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("checkout"))],
)
async def create_order(
    request: CreateOrderRequest,
    user: OptionalUser,
    service: OrderServiceDep,
):
    """
    Create an order and its items from a cart.

    Prices come from the catalog; client-sent prices are ignored.
    Validation failures surface as 400 with the list of problems.
    """
    order, _ = await service.create_order(request, user.id if user else None)
    return OrderCreatedResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        external_reference=order.external_reference,
        subtotal=order.subtotal,
        shipping_cost=order.shipping_cost,
        total=order.total,
    )


@router.get("/me", response_model=List[OrderResponse])
async def list_my_orders(user: CurrentUser, repo: OrderRepoDep):
    orders = await repo.list_for_user(user.id)
    return [to_order_response(order, await repo.get_items(order.id)) for order in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, profile: CurrentProfile, repo: OrderRepoDep):
    """Order detail, visible to its owner and to admins."""
    order = await repo.get_by_id(order_id)
    if order is None or (order.user_id != profile.id and not profile.is_admin):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        )
    return to_order_response(order, await repo.get_items(order.id))
