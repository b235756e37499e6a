"""
Subscription Domain Models

Domain models for recurring pet-food subscriptions.
Enums, DTOs, external reference convention, and gateway status mapping.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.domain.catalog import SubscriptionType
from app.domain.orders import CustomerData


SUBSCRIPTION_REFERENCE_PREFIX = "SUB-"
AUTO_PAYMENT_REFERENCE_PREFIX = "AUTO-"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    PENDING = "pending"
    PROCESSING = "processing"
    ACTIVE = "active"
    PAUSED = "paused"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class SubscriptionPaymentStatus(str, Enum):
    """Status of a recorded recurring charge."""
    PENDING = "pending"
    APPROVED = "approved"
    FAILED = "failed"


class SubscriptionAction(str, Enum):
    """Customer-initiated lifecycle actions."""
    CANCEL = "cancel"
    PAUSE = "pause"
    RESUME = "resume"


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateSubscriptionRequest(BaseModel):
    """Request DTO for starting a subscription checkout."""
    product_id: int
    subscription_type: SubscriptionType = Field(
        default=SubscriptionType.MONTHLY,
        description="Billing period"
    )
    quantity: int = Field(default=1, ge=1)
    size: Optional[str] = None
    customer: CustomerData
    success_url: Optional[str] = None
    failure_url: Optional[str] = None


class SubscriptionCheckoutResponse(BaseModel):
    """Response DTO for subscription checkout creation."""
    subscription_id: str
    external_reference: str
    init_point: str
    preference_id: str


class SubscriptionResponse(BaseModel):
    """Subscription as shown to its owner and to admins."""
    id: str
    user_id: Optional[str] = None
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    status: SubscriptionStatus
    subscription_type: Optional[str] = None
    frequency: Optional[int] = None
    frequency_type: Optional[str] = None
    discounted_price: Optional[float] = None
    transaction_amount: Optional[float] = None
    external_reference: Optional[str] = None
    next_billing_date: Optional[datetime] = None
    last_billing_date: Optional[datetime] = None
    charges_made: int = 0
    created_at: Optional[datetime] = None


class SubscriptionPaymentResponse(BaseModel):
    """One recorded recurring charge."""
    id: int
    status: SubscriptionPaymentStatus
    amount: float
    currency: str
    due_date: Optional[datetime] = None
    external_reference: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# External Reference Convention
# =============================================================================

def generate_subscription_reference(
    user_id: str,
    product_id: int,
    reference_type: str = "new",
    max_length: int = 64,
) -> str:
    """
    Deterministic external reference for a subscription intent.

    The same user/product/type always yields the same reference, so a
    retried checkout reuses the pending subscription instead of duplicating it.
    """
    base = f"{user_id}:{product_id}:{reference_type}"
    digest = hashlib.sha256(base.encode("utf-8")).hexdigest()[:8]
    reference = f"{SUBSCRIPTION_REFERENCE_PREFIX}{user_id}-{product_id}-{digest}"
    if len(reference) > max_length:
        return f"{SUBSCRIPTION_REFERENCE_PREFIX}{digest}"
    return reference


def is_subscription_reference(reference: Optional[str]) -> bool:
    """Whether a gateway external_reference belongs to a subscription."""
    return bool(reference) and reference.startswith(SUBSCRIPTION_REFERENCE_PREFIX)


def generate_auto_payment_reference(subscription_id: int, now: datetime) -> str:
    return f"{AUTO_PAYMENT_REFERENCE_PREFIX}{subscription_id}-{int(now.timestamp() * 1000)}"


# =============================================================================
# Gateway Status Mapping
# =============================================================================

PREAPPROVAL_STATUS_MAP = {
    "authorized": SubscriptionStatus.ACTIVE,
    "paused": SubscriptionStatus.PAUSED,
    "cancelled": SubscriptionStatus.CANCELLED,
    "pending": SubscriptionStatus.PENDING,
}

STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAUSED,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.PENDING,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}

# action -> (preapproval status sent to the gateway, resulting local status)
ACTION_TRANSITIONS = {
    SubscriptionAction.CANCEL: ("cancelled", SubscriptionStatus.CANCELLED),
    SubscriptionAction.PAUSE: ("paused", SubscriptionStatus.PAUSED),
    SubscriptionAction.RESUME: ("authorized", SubscriptionStatus.ACTIVE),
}

# Local statuses from which each action is allowed
ACTION_ALLOWED_FROM = {
    SubscriptionAction.CANCEL: {
        SubscriptionStatus.PENDING,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAUSED,
        SubscriptionStatus.PAST_DUE,
    },
    SubscriptionAction.PAUSE: {SubscriptionStatus.ACTIVE},
    SubscriptionAction.RESUME: {SubscriptionStatus.PAUSED},
}


def map_preapproval_status(gateway_status: Optional[str]) -> Optional[SubscriptionStatus]:
    """Map a Mercado Pago preapproval status. None means unrecognized."""
    return PREAPPROVAL_STATUS_MAP.get((gateway_status or "").lower())


def map_stripe_status(gateway_status: Optional[str]) -> Optional[SubscriptionStatus]:
    """Map a Stripe subscription status. None means unrecognized."""
    return STRIPE_STATUS_MAP.get((gateway_status or "").lower())


def can_apply_action(status: str, action: SubscriptionAction) -> bool:
    """Check if a lifecycle action is allowed from the current status."""
    try:
        current = SubscriptionStatus(status)
    except ValueError:
        return False
    return current in ACTION_ALLOWED_FROM[action]
