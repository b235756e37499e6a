"""
Test configuration and fixtures for the Pet Gourmet store backend.

Provides shared fixtures for unit and integration tests.
"""

import os

# Deterministic settings before the app (and its cached Settings) is imported
os.environ["ENVIRONMENT"] = "testing"
os.environ["SUPABASE_URL"] = "http://localhost:54321"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["MERCADOPAGO_ACCESS_TOKEN"] = "TEST-access-token"
os.environ["MERCADOPAGO_WEBHOOK_SECRET"] = ""
os.environ["PAYMENT_TEST_MODE"] = "false"
os.environ["APP_URL"] = "https://petgourmet.test"

import time
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import jwt
import pytest
from fastapi.testclient import TestClient

from app.infrastructure.db.models.order import Order
from app.infrastructure.db.models.product import Product
from app.infrastructure.db.models.profile import Profile, ProfileRole
from app.infrastructure.db.models.unified_subscription import UnifiedSubscription


TEST_USER_ID = UUID("aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee")
ADMIN_USER_ID = UUID("11111111-2222-3333-4444-555555555555")


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from app.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client (lifespan not started, no DB)."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from app.api.rate_limit import reset_limiters

    reset_limiters()
    yield
    reset_limiters()


@pytest.fixture(autouse=True)
def no_jwks():
    """Tokens in tests are HS256; the JWKS lookup always misses."""
    jwks_client = MagicMock()
    jwks_client.get_signing_key_from_jwt.side_effect = jwt.exceptions.PyJWKClientError(
        "no JWKS in tests"
    )
    with patch("app.api.dependencies._get_jwks_client", return_value=jwks_client):
        yield jwks_client


# =============================================================================
# Auth Fixtures
# =============================================================================

def make_token(
    user_id: UUID = TEST_USER_ID,
    email: Optional[str] = "cliente@example.com",
    expires_in: int = 3600,
    audience: str = "authenticated",
) -> str:
    """HS256 Supabase-style access token signed with the test secret."""
    from app.config.settings import get_settings

    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "aud": audience,
        "iss": f"{settings.supabase_url}/auth/v1",
        "exp": int(time.time()) + expires_in,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


@pytest.fixture
def mock_user_id() -> UUID:
    return TEST_USER_ID


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(ADMIN_USER_ID, 'admin@example.com')}"}


@pytest.fixture
def profile_repo(app):
    """Profile repository override resolving the test user and the test admin."""
    from app.infrastructure.db.dependencies import get_profile_repository

    profiles = {
        TEST_USER_ID: Profile(id=TEST_USER_ID, email="cliente@example.com", role=ProfileRole.USER),
        ADMIN_USER_ID: Profile(id=ADMIN_USER_ID, email="admin@example.com", role=ProfileRole.ADMIN),
    }
    repo = AsyncMock()
    repo.get_by_id.side_effect = lambda user_id: profiles.get(user_id)
    app.dependency_overrides[get_profile_repository] = lambda: repo
    return repo


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_session():
    """AsyncSession stand-in; add() is synchronous like the real one."""
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_mercadopago():
    mock = MagicMock()
    mock.get_payment = AsyncMock()
    mock.search_payments = AsyncMock(return_value=[])
    mock.get_preapproval = AsyncMock()
    mock.create_preapproval = AsyncMock()
    mock.update_preapproval_status = AsyncMock()
    mock.create_preference = AsyncMock()
    mock.verify_webhook_signature = MagicMock(return_value=True)
    return mock


@pytest.fixture
def mock_stripe():
    mock = MagicMock()
    mock.create_payment_session = AsyncMock()
    mock.create_subscription_session = AsyncMock()
    mock.list_session_line_items = AsyncMock(return_value=[])
    mock.get_subscription = AsyncMock()
    mock.cancel_subscription = AsyncMock()
    mock.set_paused = AsyncMock()
    return mock


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def sample_customer():
    return {
        "firstName": "María",
        "lastName": "López",
        "email": "maria@example.com",
        "phone": "5512345678",
        "address": {
            "street_name": "Av. Insurgentes Sur",
            "street_number": "1234",
            "zip_code": "03100",
            "city": "Ciudad de México",
            "state": "CDMX",
            "country": "México",
        },
    }


@pytest.fixture
def sample_product():
    return Product(
        id=7,
        name="Croquetas Premium Pollo",
        slug="croquetas-premium-pollo",
        price=450.0,
        image="https://cdn.example.com/croquetas.jpg",
        category="perros",
        stock=20,
        is_active=True,
        subscription_available=True,
        monthly_discount=10.0,
        quarterly_discount=15.0,
    )


@pytest.fixture
def pending_order():
    return Order(
        id=UUID("0f0f0f0f-1111-2222-3333-444444444444"),
        user_id=TEST_USER_ID,
        order_number="PG1760000000000",
        external_reference="0f0f0f0f-1111-2222-3333-444444444444",
        status="pending",
        payment_status="pending",
        subtotal=900.0,
        shipping_cost=100.0,
        total=1000.0,
        currency="MXN",
        customer_email="maria@example.com",
        created_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def pending_subscription():
    return UnifiedSubscription(
        id=42,
        user_id=TEST_USER_ID,
        product_id=7,
        product_name="Croquetas Premium Pollo",
        customer_email="maria@example.com",
        status="pending",
        subscription_type="monthly",
        frequency=1,
        frequency_type="months",
        base_price=450.0,
        discount_percentage=10.0,
        discounted_price=405.0,
        transaction_amount=405.0,
        external_reference="SUB-aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee-7-1a2b3c4d",
    )
