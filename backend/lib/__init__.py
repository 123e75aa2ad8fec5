"""Backend utilities"""
from .supabase_client import get_optional_supabase_client, get_supabase_client

__all__ = ["get_supabase_client", "get_optional_supabase_client"]
