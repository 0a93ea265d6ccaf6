from supabase import create_client, Client
from script_labs.config import settings


class SupabaseClient:
    _client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        """Anon-key client; only the auth API is used, never the data API."""
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_anon_key)
        return cls._client

    @classmethod
    def reset_client(cls):
        cls._client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()
