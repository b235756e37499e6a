"""
Payments Infrastructure Module

Mercado Pago (REST) and Stripe (SDK) gateway services.
"""

from app.infrastructure.payments.mercadopago_service import (
    MercadoPagoError,
    MercadoPagoService,
    get_mercadopago_service,
)
from app.infrastructure.payments.stripe_service import (
    StripeService,
    StripeServiceError,
    get_stripe_service,
)

__all__ = [
    "MercadoPagoError",
    "MercadoPagoService",
    "get_mercadopago_service",
    "StripeService",
    "StripeServiceError",
    "get_stripe_service",
]
