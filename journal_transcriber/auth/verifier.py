"""Bearer credential verification.

The HTTP layer only needs "Authorization header -> user id". The Supabase
verifier validates the session JWT against Supabase Auth.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod

from supabase import Client, create_client

from journal_transcriber.utils.errors import AuthError

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token of a ``Bearer`` Authorization header.

    Raises:
        AuthError: If the header is missing, malformed, or empty.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthError("Missing or invalid bearer token")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthError("Missing or invalid bearer token")
    return token


class CredentialVerifier(ABC):
    """Resolves an Authorization header to the owning user id."""

    @abstractmethod
    async def verify(self, authorization: str | None) -> str:
        """Return the user id for a valid bearer credential.

        Raises:
            AuthError: If the credential is missing or invalid.
        """


class SupabaseCredentialVerifier(CredentialVerifier):
    """Validates Supabase session JWTs with ``auth.get_user``.

    Reads SUPABASE_URL and SUPABASE_ANON_KEY when not given.
    """

    def __init__(
        self,
        url: str | None = None,
        anon_key: str | None = None,
        client: Client | None = None,
    ) -> None:
        if client is None:
            url = url or os.environ.get("SUPABASE_URL", "")
            anon_key = anon_key or os.environ.get("SUPABASE_ANON_KEY", "")
            if not url or not anon_key:
                raise AuthError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
            client = create_client(url, anon_key)
        self._client = client

    async def verify(self, authorization: str | None) -> str:
        token = extract_bearer_token(authorization)
        try:
            response = await asyncio.to_thread(self._client.auth.get_user, token)
        # gotrue raises several error types for expired or forged tokens
        except Exception as exc:
            raise AuthError("Invalid token") from exc

        user = getattr(response, "user", None)
        user_id = getattr(user, "id", None)
        if not user_id:
            raise AuthError("No user for token")
        return str(user_id)
