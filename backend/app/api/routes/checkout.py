"""
Checkout API Routes

Create an order and return the gateway checkout the storefront redirects to.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import CheckoutServiceDep, OptionalUser
from app.api.rate_limit import rate_limit
from app.domain.orders import CheckoutRequest, CheckoutResponse


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/checkout",
    tags=["Checkout"],
    dependencies=[Depends(rate_limit("checkout"))],
)


@router.post("/mercadopago", response_model=CheckoutResponse)
async def create_mercadopago_checkout(
    request: CheckoutRequest,
    user: OptionalUser,
    service: CheckoutServiceDep,
):
    """
    Create the order, then a Mercado Pago preference for it.

    With PAYMENT_TEST_MODE the preference is simulated and `test_mode` is true.
    """
    response = await service.mercadopago_checkout(request, user.id if user else None)
    logger.info(f"Mercado Pago checkout {response.checkout_id} for order {response.order_id}")
    return response


@router.post("/stripe", response_model=CheckoutResponse)
async def create_stripe_checkout(
    request: CheckoutRequest,
    user: OptionalUser,
    service: CheckoutServiceDep,
):
    """
    Create a Stripe Checkout Session.

    One-time carts get an order first; a cart with a subscription item
    opens a subscription-mode session for the first such item.
    """
    response = await service.stripe_checkout(request, user.id if user else None)
    logger.info(f"Stripe checkout {response.checkout_id} ({response.external_reference})")
    return response
