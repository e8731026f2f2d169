"""
Database client configuration.
Uses Supabase for PostgreSQL (authorities + reports tables), Auth and the
report photo bucket.
"""

import os
from typing import Optional

from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

if not SUPABASE_URL or not SUPABASE_KEY:
    raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

# Client for token verification (uses anon key + RLS)
supabase: Client = create_client(SUPABASE_URL, SUPABASE_KEY)

# Service-role client: every table and bucket access goes through it (bypasses RLS)
supabase_admin: Optional[Client] = (
    create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY) if SUPABASE_SERVICE_KEY else None
)


def require_admin_client() -> Client:
    """Return the service-role client, or raise when SUPABASE_SERVICE_KEY is unset."""
    if supabase_admin is None:
        raise ValueError("SUPABASE_SERVICE_KEY is required for report, authority and storage operations")
    return supabase_admin
