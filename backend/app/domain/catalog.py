"""
Catalog Domain Rules

Billing periods, subscription discounts, and shipping cost rules.
Pure functions with no framework dependencies.
"""

import calendar
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional, Tuple


class SubscriptionType(str, Enum):
    """Billing period a customer can subscribe to."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class FrequencyType(str, Enum):
    """Gateway frequency unit."""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


# subscription_type -> (frequency, frequency_type)
FREQUENCIES = {
    SubscriptionType.WEEKLY: (1, FrequencyType.WEEKS),
    SubscriptionType.BIWEEKLY: (2, FrequencyType.WEEKS),
    SubscriptionType.MONTHLY: (1, FrequencyType.MONTHS),
    SubscriptionType.QUARTERLY: (3, FrequencyType.MONTHS),
    SubscriptionType.ANNUAL: (12, FrequencyType.MONTHS),
}

# subscription_type -> product discount column
DISCOUNT_FIELDS = {
    SubscriptionType.WEEKLY: "weekly_discount",
    SubscriptionType.BIWEEKLY: "biweekly_discount",
    SubscriptionType.MONTHLY: "monthly_discount",
    SubscriptionType.QUARTERLY: "quarterly_discount",
    SubscriptionType.ANNUAL: "annual_discount",
}


def parse_subscription_type(value: Optional[str]) -> SubscriptionType:
    """Parse a subscription type, defaulting to monthly."""
    try:
        return SubscriptionType(value)
    except ValueError:
        return SubscriptionType.MONTHLY


def get_frequency(subscription_type: SubscriptionType) -> Tuple[int, FrequencyType]:
    """Get (frequency, frequency_type) for a subscription type."""
    return FREQUENCIES[subscription_type]


def get_discount_percentage(product: Any, subscription_type: SubscriptionType) -> float:
    """
    Read the per-period discount from a product.

    Works with ORM rows and plain objects; a missing or null column means 0.
    """
    value = getattr(product, DISCOUNT_FIELDS[subscription_type], None)
    return float(value or 0)


def apply_discount(price: float, discount_percentage: float) -> float:
    """Apply a percentage discount, rounded to cents."""
    discount_percentage = max(0.0, min(float(discount_percentage), 100.0))
    return round(price * (1 - discount_percentage / 100), 2)


def calculate_shipping(
    subtotal: float,
    free_threshold: float = 1000.0,
    flat_cost: float = 100.0,
) -> float:
    """Shipping is free from the threshold up, otherwise a flat cost."""
    if subtotal <= 0:
        return 0.0
    return 0.0 if subtotal >= free_threshold else flat_cost


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_billing_period(
    value: datetime,
    frequency: int,
    frequency_type: str,
) -> datetime:
    """Advance a date by one billing period."""
    frequency = frequency or 1
    if frequency_type == FrequencyType.DAYS.value:
        return value + timedelta(days=frequency)
    if frequency_type == FrequencyType.WEEKS.value:
        return value + timedelta(weeks=frequency)
    return add_months(value, frequency)
