# vendors/supabase_client.py: single cached Supabase client

from functools import lru_cache

from supabase import Client, create_client

from config import load_config


@lru_cache(maxsize=1)
def get_client() -> Client:
    """Create (once) the Supabase client from SUPABASE_URL / SUPABASE_KEY."""
    cfg = load_config()
    return create_client(cfg["SUPABASE_URL"], cfg["SUPABASE_KEY"])
