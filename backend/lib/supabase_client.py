"""
Supabase client used to persist season progress
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()
load_dotenv('../.env')  # Also try parent directory

logger = logging.getLogger(__name__)

_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create the Supabase client singleton.

    Raises:
        ValueError: if SUPABASE_URL or SUPABASE_SERVICE_KEY is missing
    """
    global _supabase_client

    if _supabase_client is None:
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")

        _supabase_client = create_client(url, key)

    return _supabase_client


def get_optional_supabase_client() -> Optional[Client]:
    """Supabase client, or None when the backend runs without a database."""
    try:
        return get_supabase_client()
    except ValueError as e:
        logger.warning(f"⚠️ [Supabase] {e}; progress will be stored locally")
        return None
