"""
Supabase Auth Admin Service

Service-role client for reading auth users (email lookup when a token
carries no email claim).
"""

import asyncio
import logging
from typing import Optional

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from app.config.settings import get_settings


logger = logging.getLogger(__name__)


class SupabaseAdminService:
    """Thin wrapper over `supabase.auth.admin`."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Optional[Client]:
        if self._client is None:
            settings = get_settings()
            if not settings.supabase_service_role_key:
                return None
            self._client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                ClientOptions(postgrest_client_timeout=30),
            )
        return self._client

    async def get_user_email(self, user_id: str) -> Optional[str]:
        """Email of an auth user, or None when unknown or not configured."""
        client = self.client
        if client is None:
            return None

        response = await asyncio.to_thread(client.auth.admin.get_user_by_id, user_id)
        user = getattr(response, "user", None)
        return getattr(user, "email", None)


_supabase_admin_instance: Optional[SupabaseAdminService] = None


def get_supabase_admin() -> SupabaseAdminService:
    """Get or create the Supabase admin singleton."""
    global _supabase_admin_instance

    if _supabase_admin_instance is None:
        _supabase_admin_instance = SupabaseAdminService()

    return _supabase_admin_instance
