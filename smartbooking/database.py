"""
Supabase client for the primary appointment store.

This is the only module that imports create_client. Timeouts are tight so an
unreachable primary is noticed within a probe interval and requests move to
the local fallback store.
"""
import os
import logging
from typing import Optional

import httpx
from supabase import create_client, Client
from supabase.client import ClientOptions

from smartbooking.config import PRIMARY_PROBE_TIMEOUT, SUPABASE_SCHEMA
from smartbooking.exceptions import ConnectivityError

logger = logging.getLogger(__name__)

DEFAULT_DB_TIMEOUT = 10.0  # seconds

_client: Optional[Client] = None


def _get_credentials() -> tuple:
    """Read Supabase credentials from the environment."""
    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")

    if not supabase_url or not supabase_key:
        raise ConnectivityError("SUPABASE_URL and SUPABASE_ANON_KEY/SERVICE_ROLE_KEY are not set")

    return supabase_url, supabase_key


def _build_http_client() -> httpx.Client:
    return httpx.Client(
        http2=False,
        timeout=httpx.Timeout(DEFAULT_DB_TIMEOUT, connect=PRIMARY_PROBE_TIMEOUT),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
        follow_redirects=True,
    )


def create_supabase_client() -> Client:
    """
    Create the shared Supabase client on first use.

    Raises:
        ConnectivityError: credentials are missing, so the primary is treated as down
    """
    global _client
    if _client is not None:
        return _client

    supabase_url, supabase_key = _get_credentials()
    options = ClientOptions(
        schema=SUPABASE_SCHEMA,
        auto_refresh_token=False,
        persist_session=False,
    )
    client = create_client(supabase_url, supabase_key, options=options)

    # postgrest keeps its own httpx session; swap in one with the short connect timeout
    if hasattr(client, 'postgrest') and hasattr(client.postgrest, 'session'):
        client.postgrest.session = _build_http_client()

    _client = client
    logger.info(f"Created Supabase client for schema: {SUPABASE_SCHEMA}")
    return client


def reset_client() -> None:
    """Drop the cached client so the next call reconnects."""
    global _client
    _client = None
