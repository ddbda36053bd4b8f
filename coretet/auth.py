"""Caller identity resolution from bearer credentials."""

import logging
from typing import Optional

import requests

from .constants import DEFAULT_NETWORK_TIMEOUT
from .errors import Unauthorized
from .models import Identity

logger = logging.getLogger(__name__)


def bearer_token(header: Optional[str]) -> str:
    """Extract the token from an `Authorization: Bearer ...` header value."""
    if not header:
        raise Unauthorized()
    token = header.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if not token:
        raise Unauthorized()
    return token


class SupabaseAuthClient:
    """Resolves access tokens against the Supabase auth (GoTrue) API."""

    def __init__(self, base_url: str, api_key: str, timeout: float = DEFAULT_NETWORK_TIMEOUT):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    def get_user(self, token: str) -> Identity:
        """
        Look up the user a token belongs to.

        Raises:
            Unauthorized: If the token is rejected or the auth service is unreachable
        """
        try:
            r = requests.get(
                f"{self._base_url}/auth/v1/user",
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {token}",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Auth lookup failed: %s", e)
            raise Unauthorized(details=str(e))

        if r.status_code != 200:
            raise Unauthorized(details=f"auth service returned {r.status_code}")

        try:
            data = r.json()
        except ValueError:
            raise Unauthorized(details="auth service returned invalid JSON")

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise Unauthorized(details="auth payload has no user id")
        return Identity(id=user_id, email=data.get("email"))
