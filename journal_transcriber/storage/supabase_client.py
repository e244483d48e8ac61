"""Service-role Supabase client factory."""

from __future__ import annotations

import os

from supabase import Client, create_client

from journal_transcriber.utils.errors import StorageError


def create_service_client(url: str | None = None, key: str | None = None) -> Client:
    """Create a Supabase client authenticated with the service role key.

    Reads SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY when not given.

    Raises:
        StorageError: If the URL or key is not configured.
    """
    url = url or os.environ.get("SUPABASE_URL", "")
    key = key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    if not url or not key:
        raise StorageError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set",
            operation="init",
        )
    return create_client(url, key)
