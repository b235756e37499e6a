"""
Unit tests for the Supabase auth admin wrapper.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.infrastructure.auth.supabase_admin import SupabaseAdminService


@pytest.mark.asyncio
async def test_get_user_email():
    client = MagicMock()
    client.auth.admin.get_user_by_id.return_value = SimpleNamespace(
        user=SimpleNamespace(email="cliente@example.com")
    )

    email = await SupabaseAdminService(client).get_user_email("user-1")

    assert email == "cliente@example.com"
    client.auth.admin.get_user_by_id.assert_called_once_with("user-1")


@pytest.mark.asyncio
async def test_unknown_user():
    client = MagicMock()
    client.auth.admin.get_user_by_id.return_value = SimpleNamespace(user=None)

    assert await SupabaseAdminService(client).get_user_email("user-1") is None


@pytest.mark.asyncio
async def test_without_service_role_key():
    # SUPABASE_SERVICE_ROLE_KEY is unset in tests
    assert await SupabaseAdminService().get_user_email("user-1") is None
