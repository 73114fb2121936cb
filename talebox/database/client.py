"""
Supabase Client Configuration

Provides the admin client used by the background pipeline and the anon client
used to verify end-user sessions.
"""

from functools import lru_cache

from supabase import create_client, Client

from talebox.config import config
from talebox.utils.logging import get_logger

logger = get_logger("database")


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    Use this for:
    - The job processor and audio generation service
    - Dispatch surfaces that run outside a user's request context

    WARNING: This client bypasses Row Level Security!
    Every query made with it must filter by owner explicitly where ownership matters.
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_SERVICE_KEY
    )


def get_supabase_client() -> Client:
    """Get Supabase client with the anon key (used to resolve user tokens)."""
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_ANON_KEY:
        raise SupabaseClientError(
            "SUPABASE_ANON_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_ANON_KEY
    )


def verify_supabase_connection(client: Client | None = None) -> bool:
    """
    Verify that Supabase is properly configured and the pipeline tables are reachable.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = client or get_supabase_admin_client()
        client.table("story_jobs").select("id").limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"Supabase connection failed: {e}")
        return False
