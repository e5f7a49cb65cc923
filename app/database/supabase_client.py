from supabase import create_client, Client
from app.config import settings
from typing import Optional


class SupabaseClient:
    """Lazily created process-wide Supabase clients"""

    _client: Optional[Client] = None
    _service_client: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """service_role client; bypasses RLS, so only for probes and admin reads"""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        return cls._service_client or cls.get_client()


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_service_supabase() -> Client:
    return SupabaseClient.get_service_client()
