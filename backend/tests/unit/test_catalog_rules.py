"""
Unit tests for catalog pricing and billing-period rules.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.domain.catalog import (
    FrequencyType,
    SubscriptionType,
    add_billing_period,
    add_months,
    apply_discount,
    calculate_shipping,
    get_discount_percentage,
    get_frequency,
    parse_subscription_type,
)


class TestFrequencies:

    @pytest.mark.parametrize(
        "subscription_type,expected",
        [
            (SubscriptionType.WEEKLY, (1, FrequencyType.WEEKS)),
            (SubscriptionType.BIWEEKLY, (2, FrequencyType.WEEKS)),
            (SubscriptionType.MONTHLY, (1, FrequencyType.MONTHS)),
            (SubscriptionType.QUARTERLY, (3, FrequencyType.MONTHS)),
            (SubscriptionType.ANNUAL, (12, FrequencyType.MONTHS)),
        ],
    )
    def test_frequency_per_subscription_type(self, subscription_type, expected):
        assert get_frequency(subscription_type) == expected

    def test_unknown_subscription_type_defaults_to_monthly(self):
        assert parse_subscription_type("fortnightly") == SubscriptionType.MONTHLY
        assert parse_subscription_type(None) == SubscriptionType.MONTHLY
        assert parse_subscription_type("quarterly") == SubscriptionType.QUARTERLY


class TestPricing:

    def test_discount_read_from_product_period_column(self):
        product = SimpleNamespace(monthly_discount=10, quarterly_discount=None)

        assert get_discount_percentage(product, SubscriptionType.MONTHLY) == 10.0
        assert get_discount_percentage(product, SubscriptionType.QUARTERLY) == 0.0
        # Missing attribute behaves like no discount
        assert get_discount_percentage(product, SubscriptionType.WEEKLY) == 0.0

    def test_apply_discount(self):
        assert apply_discount(450.0, 10) == 405.0
        assert apply_discount(199.99, 15) == 169.99
        assert apply_discount(100.0, 0) == 100.0

    def test_apply_discount_is_clamped(self):
        assert apply_discount(100.0, 150) == 0.0
        assert apply_discount(100.0, -5) == 100.0

    def test_shipping_free_from_threshold(self):
        assert calculate_shipping(1000.0) == 0.0
        assert calculate_shipping(1500.0) == 0.0

    def test_shipping_flat_below_threshold(self):
        assert calculate_shipping(999.99) == 100.0
        assert calculate_shipping(450.0, free_threshold=400.0, flat_cost=80.0) == 0.0
        assert calculate_shipping(350.0, free_threshold=400.0, flat_cost=80.0) == 80.0

    def test_empty_cart_has_no_shipping(self):
        assert calculate_shipping(0.0) == 0.0


class TestBillingPeriods:

    def test_add_months_clamps_day(self):
        jan_31 = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)
        assert add_months(jan_31, 1) == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)

    def test_add_months_crosses_year(self):
        nov = datetime(2026, 11, 15, tzinfo=timezone.utc)
        assert add_months(nov, 3) == datetime(2027, 2, 15, tzinfo=timezone.utc)
        assert add_months(nov, 12) == datetime(2027, 11, 15, tzinfo=timezone.utc)

    def test_leap_year(self):
        assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)

    def test_add_billing_period_weeks(self):
        start = datetime(2026, 10, 1, tzinfo=timezone.utc)
        assert add_billing_period(start, 2, "weeks") == datetime(2026, 10, 15, tzinfo=timezone.utc)

    def test_add_billing_period_days(self):
        start = datetime(2026, 10, 1)
        assert add_billing_period(start, 10, "days") == datetime(2026, 10, 11)

    def test_add_billing_period_months(self):
        start = datetime(2026, 10, 31)
        assert add_billing_period(start, 1, "months") == datetime(2026, 11, 30)

    def test_zero_frequency_counts_as_one(self):
        start = datetime(2026, 10, 1)
        assert add_billing_period(start, 0, "months") == datetime(2026, 11, 1)
