"""
Encryption for OAuth tokens stored in the database.

Provider access and refresh tokens are never written in clear text; they are
sealed with Fernet under a key derived from the configured secret.
"""

import base64
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

_SALT = b"coretet-token-salt-v1"
_ITERATIONS = 100000


class TokenCipher:
    """Encrypts and decrypts provider tokens."""

    def __init__(self, secret: Optional[str] = None):
        self._fernet = Fernet(self.derive_key(secret or self._machine_secret()))

    @staticmethod
    def derive_key(secret: str, salt: bytes = _SALT) -> bytes:
        """
        Derive a Fernet key from a secret using PBKDF2.

        Args:
            secret: Key material (CORETET_SECRET)
            salt: Salt bytes for key derivation

        Returns:
            URL-safe base64 encoded 32-byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret.encode()))

    @staticmethod
    def _machine_secret() -> str:
        # Development fallback when CORETET_SECRET is unset.
        try:
            with open("/etc/machine-id", "r") as f:
                machine_id = f.read().strip()
        except OSError:
            machine_id = os.getenv("HOSTNAME", "default-machine")
        logger.warning("CORETET_SECRET not set; deriving token key from machine id")
        return f"{machine_id}-{os.getenv('USER', 'default-user')}"

    def encrypt(self, data: str) -> str:
        return self._fernet.encrypt(data.encode()).decode()

    def decrypt(self, token: Optional[str]) -> Optional[str]:
        """
        Decrypt a stored token.

        Returns:
            The clear text, or None if the token is missing or was sealed
            under a different key.
        """
        if not token:
            return None
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.warning("Stored provider token could not be decrypted")
            return None
