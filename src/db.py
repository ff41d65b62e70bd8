from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client

from src.config import settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Process-wide supabase client, created on first use."""
    return create_client(settings.supabase_url, settings.supabase_service_role_key)
