"""
Order Domain Models

Enums, DTOs, validation rules, and gateway status mapping
for the order bounded context.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, Field

from app.domain.catalog import SubscriptionType


class OrderStatus(str, Enum):
    """Fulfilment status of an order."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status of an order."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CustomerAddress(BaseModel):
    """Shipping address as submitted by the checkout form."""
    street_name: str = ""
    street_number: str = ""
    zip_code: str = ""
    city: str = ""
    state: str = ""
    country: str = "México"


class CustomerData(BaseModel):
    """Customer contact data captured at checkout."""
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    email: str = ""
    phone: str = ""
    address: Optional[CustomerAddress] = None

    model_config = {"populate_by_name": True}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CartItem(BaseModel):
    """A cart line as sent by the storefront."""
    product_id: int
    name: str = ""
    price: float = 0.0
    quantity: int = 1
    image: Optional[str] = None
    size: Optional[str] = None
    is_subscription: bool = False
    subscription_type: Optional[SubscriptionType] = None


class CreateOrderRequest(BaseModel):
    """Request DTO for creating an order."""
    items: List[CartItem]
    customer: CustomerData


class OrderCreatedResponse(BaseModel):
    """Response DTO after creating an order."""
    order_id: str
    order_number: str
    external_reference: str
    subtotal: float
    shipping_cost: float
    total: float


class OrderItemResponse(BaseModel):
    product_id: Optional[int]
    product_name: str
    product_image: Optional[str] = None
    quantity: int
    price: float
    size: Optional[str] = None


class OrderResponse(BaseModel):
    """Order detail returned to customers and admins."""
    id: UUID
    order_number: Optional[str]
    status: str
    payment_status: str
    subtotal: float
    shipping_cost: float
    total: float
    currency: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    items: List[OrderItemResponse] = []
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None


# =============================================================================
# Validation (Business Rules)
# =============================================================================

@dataclass
class ValidationResult:
    """Outcome of a checkout validation pass."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


NAME_PATTERN = re.compile(r"^[a-zA-ZáéíóúÁÉÍÓÚñÑüÜ\s]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[+]?[0-9\s\-()]+$")
PHONE_DIGITS = (10, 15)
ZIP_PATTERN = re.compile(r"^[0-9]{5,6}$")
STREET_NUMBER_PATTERN = re.compile(r"^[0-9a-zA-Z\s\-#]+$")


def _validate_name(value: str, label: str, errors: List[str]) -> None:
    value = (value or "").strip()
    if not value:
        errors.append(f"{label} is required")
    elif len(value) < 2:
        errors.append(f"{label} must have at least 2 characters")
    elif not NAME_PATTERN.match(value):
        errors.append(f"{label} may only contain letters")


def validate_customer_data(customer: CustomerData) -> ValidationResult:
    """Validate checkout customer data."""
    errors: List[str] = []

    _validate_name(customer.first_name, "First name", errors)
    _validate_name(customer.last_name, "Last name", errors)

    email = (customer.email or "").strip()
    if not email:
        errors.append("Email is required")
    elif not EMAIL_PATTERN.match(email):
        errors.append("Email format is invalid")

    phone = (customer.phone or "").strip()
    if not phone:
        errors.append("Phone is required")
    elif not PHONE_PATTERN.match(phone) or not (
        PHONE_DIGITS[0] <= sum(char.isdigit() for char in phone) <= PHONE_DIGITS[1]
    ):
        errors.append("Phone format is invalid (10-15 digits)")

    address = customer.address
    if address is None:
        errors.append("Address is required")
    else:
        if not address.street_name.strip():
            errors.append("Street name is required")
        if not address.street_number.strip():
            errors.append("Street number is required")
        elif not STREET_NUMBER_PATTERN.match(address.street_number.strip()):
            errors.append("Street number is invalid")
        if not address.zip_code.strip():
            errors.append("Zip code is required")
        elif not ZIP_PATTERN.match(address.zip_code.strip()):
            errors.append("Zip code must have 5 or 6 digits")
        if len(address.city.strip()) < 2:
            errors.append("City is required")
        if not address.state.strip():
            errors.append("State is required")
        if not address.country.strip():
            errors.append("Country is required")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_cart(items: List[CartItem]) -> ValidationResult:
    """Validate cart lines before pricing."""
    errors: List[str] = []

    if not items:
        return ValidationResult(is_valid=False, errors=["Cart is empty"])

    for index, item in enumerate(items, start=1):
        if item.product_id <= 0:
            errors.append(f"Item {index}: product id is required")
        if item.quantity <= 0:
            errors.append(f"Item {index}: quantity must be a positive integer")
        if item.is_subscription and item.subscription_type is None:
            errors.append(f"Item {index}: subscription type is required")

    return ValidationResult(is_valid=not errors, errors=errors)


# =============================================================================
# Gateway Status Mapping
# =============================================================================

# Mercado Pago payment status -> (payment_status, order_status or None to keep)
GATEWAY_PAYMENT_STATUS_MAP = {
    "approved": (PaymentStatus.PAID, OrderStatus.PROCESSING),
    "authorized": (PaymentStatus.PENDING, None),
    "pending": (PaymentStatus.PENDING, None),
    "in_process": (PaymentStatus.PENDING, None),
    "in_mediation": (PaymentStatus.PENDING, None),
    "rejected": (PaymentStatus.FAILED, OrderStatus.CANCELLED),
    "cancelled": (PaymentStatus.FAILED, OrderStatus.CANCELLED),
    "refunded": (PaymentStatus.REFUNDED, OrderStatus.CANCELLED),
    "charged_back": (PaymentStatus.REFUNDED, OrderStatus.CANCELLED),
}


def map_gateway_payment_status(
    gateway_status: Optional[str],
) -> Tuple[PaymentStatus, Optional[OrderStatus]]:
    """Map a gateway payment status to local payment/order statuses."""
    return GATEWAY_PAYMENT_STATUS_MAP.get(
        (gateway_status or "").lower(),
        (PaymentStatus.PENDING, None),
    )


def generate_order_number(now: datetime) -> str:
    """Human-facing order number, PG<epoch-ms>."""
    return f"PG{int(now.timestamp() * 1000)}"


# =============================================================================
# Checkout DTOs
# =============================================================================

class CheckoutRequest(CreateOrderRequest):
    """Order creation plus the storefront redirect targets."""
    success_url: Optional[str] = None
    failure_url: Optional[str] = None
    pending_url: Optional[str] = None


class CheckoutResponse(BaseModel):
    """Gateway checkout handle for the storefront to redirect to."""
    gateway: str
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    external_reference: str
    total: float
    checkout_id: str
    checkout_url: Optional[str] = None
    test_mode: bool = False
