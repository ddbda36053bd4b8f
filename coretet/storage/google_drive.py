"""
Google Drive storage backend.

Implements the OAuth 2.0 authorization-code flow server side: the client
sends the `code` it received on the redirect, we exchange it for tokens and
keep them encrypted in `user_storage_providers`.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

from ..constants import (
    DEFAULT_NETWORK_TIMEOUT,
    GOOGLE_AUDIO_MIME_TYPES,
    GOOGLE_AUTH_URL,
    GOOGLE_DRIVE_API,
    GOOGLE_DRIVE_SCOPES,
    GOOGLE_REVOKE_URL,
    GOOGLE_TOKEN_URL,
)
from ..errors import ProviderError
from ..models import ProviderName, ProviderTokens, Quota
from .base import StorageBackend

logger = logging.getLogger(__name__)


class GoogleDriveBackend(StorageBackend):
    name = ProviderName.GOOGLE_DRIVE

    def __init__(self, token_store, client_id: Optional[str], client_secret: Optional[str],
                 redirect_uri: Optional[str], timeout: float = DEFAULT_NETWORK_TIMEOUT,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            token_store: TokenStore bound to the user and this provider
            client_id: OAuth client ID
            client_secret: OAuth client secret
            redirect_uri: Redirect URI registered for the client
            timeout: Seconds before any Google call is abandoned
            clock: Returns the current epoch time
        """
        self.token_store = token_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.clock = clock

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ProviderError("Google Drive is unreachable", provider=self.name.value,
                                details=str(e)) from e

    def _require_client(self):
        if not self.client_id:
            raise ProviderError("Google Client ID not configured", provider=self.name.value)

    def authorization_url(self, state: Optional[str] = None) -> str:
        """URL the user visits to grant Drive access."""
        self._require_client()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_DRIVE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    @property
    def account_email(self) -> Optional[str]:
        tokens = self.token_store.load()
        return tokens.provider_email if tokens else None

    def connect(self, credentials: Optional[Dict[str, Any]] = None) -> bool:
        """
        Exchange an authorization code for tokens.

        Without a code, succeeds only if previously stored tokens are still
        usable.
        """
        code = (credentials or {}).get("code")
        if not code:
            return self.is_connected()

        self._require_client()
        response = self._request("POST", GOOGLE_TOKEN_URL, data={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        })
        if not response.ok:
            raise ProviderError(f"Token exchange failed: {response.reason}",
                                provider=self.name.value, details=response.text)

        payload = response.json()
        tokens = ProviderTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=self.clock() + int(payload.get("expires_in", 3600)),
        )
        tokens.provider_email = self._fetch_email(tokens.access_token)
        self.token_store.save(tokens)
        logger.info("Connected Google Drive account %s", tokens.provider_email or "(unknown)")
        return True

    def _fetch_email(self, access_token: str) -> Optional[str]:
        response = self._request(
            "GET", f"{GOOGLE_DRIVE_API}/about",
            params={"fields": "user(emailAddress)"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not response.ok:
            logger.warning("Could not read Google account email: %s", response.reason)
            return None
        return response.json().get("user", {}).get("emailAddress")

    def _refresh(self, tokens: ProviderTokens) -> ProviderTokens:
        if not tokens.refresh_token:
            raise ProviderError("Token expired and refresh failed", provider=self.name.value,
                                details="no refresh token stored")

        response = self._request("POST", GOOGLE_TOKEN_URL, data={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": tokens.refresh_token,
            "grant_type": "refresh_token",
        })
        if not response.ok:
            raise ProviderError("Token expired and refresh failed", provider=self.name.value,
                                details=response.text)

        payload = response.json()
        refreshed = ProviderTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or tokens.refresh_token,
            expires_at=self.clock() + int(payload.get("expires_in", 3600)),
            provider_email=tokens.provider_email,
        )
        self.token_store.save(refreshed)
        return refreshed

    def _access_token(self) -> str:
        tokens = self.token_store.load()
        if tokens is None:
            raise ProviderError("Not connected to Google Drive", provider=self.name.value)
        if tokens.is_expired(self.clock()):
            tokens = self._refresh(tokens)
        return tokens.access_token

    def _get(self, path: str, params: Dict[str, str], failure: str) -> Dict[str, Any]:
        response = self._request(
            "GET", f"{GOOGLE_DRIVE_API}/{path}",
            params=params,
            headers={"Authorization": f"Bearer {self._access_token()}"},
        )
        if not response.ok:
            raise ProviderError(f"{failure}: {response.reason}", provider=self.name.value,
                                details=response.text)
        return response.json()

    def disconnect(self) -> None:
        tokens = self.token_store.load()
        try:
            if tokens is not None:
                response = self._request("POST", GOOGLE_REVOKE_URL,
                                         params={"token": tokens.access_token})
                if not response.ok:
                    logger.warning("Google token revocation returned %s", response.status_code)
        finally:
            self.token_store.clear()

    def is_connected(self) -> bool:
        try:
            self._access_token()
        except ProviderError as e:
            logger.debug("Google Drive not connected: %s", e)
            return False
        return True

    def get_quota(self) -> Quota:
        data = self._get("about", {"fields": "storageQuota"}, "Failed to get quota")
        quota = data.get("storageQuota", {})
        # Accounts with unlimited storage report no limit.
        return Quota(used=int(quota.get("usage", 0)), total=int(quota.get("limit", 0)))

    def list_files(self, path: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Discover audio files directly inside a Drive folder.

        Args:
            path: Folder ID; defaults to the Drive root
        """
        folder_id = path or "root"
        audio_query = " or ".join(f"mimeType='{t}'" for t in GOOGLE_AUDIO_MIME_TYPES)
        data = self._get("files", {
            "q": f"'{folder_id}' in parents and ({audio_query}) and trashed=false",
            "fields": "files(id,name,size,mimeType,webViewLink)",
        }, "Failed to discover audio files")

        return [
            {
                "id": f["id"],
                "name": f["name"],
                "size": int(f.get("size", 0)),
                "mime_type": f.get("mimeType"),
                "url": f.get("webViewLink"),
            }
            for f in data.get("files", [])
        ]
