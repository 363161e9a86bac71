"""
Database connections: Supabase client setup.

Clients are created once in the application lifespan and stored on
``app.state``; request handlers receive them through dependencies.
"""

from supabase import create_client, Client

from app.config import Settings


def create_supabase_client(settings: Settings) -> Client:
    """Create the Supabase client.

    Uses the service_role key when configured (the engine writes to
    memory tables that are not exposed to learners), else the anon key.
    """
    key = settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY
    return create_client(settings.SUPABASE_URL, key)
