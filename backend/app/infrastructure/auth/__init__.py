"""Supabase Auth admin access."""

from app.infrastructure.auth.supabase_admin import SupabaseAdminService, get_supabase_admin

__all__ = ["SupabaseAdminService", "get_supabase_admin"]
