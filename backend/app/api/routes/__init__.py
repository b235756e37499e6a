# API Routes Module
from app.api.routes import (
    admin,
    auth,
    checkout,
    cron,
    orders,
    products,
    subscriptions,
    webhooks,
)

__all__ = [
    "admin",
    "auth",
    "checkout",
    "cron",
    "orders",
    "products",
    "subscriptions",
    "webhooks",
]
