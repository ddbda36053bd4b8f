"""Outbound email through the Resend HTTP API."""

import logging
from typing import List, Optional

import requests

from .constants import DEFAULT_NETWORK_TIMEOUT, RESEND_API_URL
from .errors import UpstreamError

logger = logging.getLogger(__name__)


class ResendMailer:
    """Sends transactional email. Requires RESEND_API_KEY."""

    def __init__(self, api_key: str, timeout: float = DEFAULT_NETWORK_TIMEOUT,
                 api_url: str = RESEND_API_URL):
        self._api_key = api_key
        self._timeout = timeout
        self._api_url = api_url

    def send(self, sender: str, to: List[str], subject: str,
             html: str, text: Optional[str] = None) -> Optional[str]:
        """
        Send one message.

        Returns:
            The provider's message id, if reported

        Raises:
            UpstreamError: If the API call fails or is rejected
        """
        payload = {"from": sender, "to": to, "subject": subject, "html": html}
        if text:
            payload["text"] = text
        try:
            r = requests.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError("Failed to send email", details=str(e)) from e

        if not r.ok:
            logger.error("Resend API error: %s %s", r.status_code, r.text)
            raise UpstreamError("Failed to send email", details=f"{r.status_code}: {r.text}")

        try:
            return r.json().get("id")
        except ValueError:
            return None
