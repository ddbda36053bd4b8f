"""Encrypted persistence of one user's tokens for one provider."""

from typing import Optional

from ..models import ProviderName, ProviderTokens


class TokenStore:
    def __init__(self, database, cipher, user_id: str, provider: ProviderName):
        self.db = database
        self.cipher = cipher
        self.user_id = user_id
        self.provider = provider

    def load(self) -> Optional[ProviderTokens]:
        row = self.db.get_provider_tokens(self.user_id, self.provider.value)
        if not row:
            return None
        access_token = self.cipher.decrypt(row.get("encrypted_access_token"))
        if not access_token:
            return None
        return ProviderTokens(
            access_token=access_token,
            refresh_token=self.cipher.decrypt(row.get("encrypted_refresh_token")),
            expires_at=row.get("token_expiry"),
            provider_email=row.get("provider_email"),
        )

    def save(self, tokens: ProviderTokens):
        self.db.save_provider_tokens(
            self.user_id,
            self.provider.value,
            encrypted_access_token=self.cipher.encrypt(tokens.access_token),
            encrypted_refresh_token=(
                self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None
            ),
            token_expiry=tokens.expires_at,
            provider_email=tokens.provider_email,
        )

    def clear(self):
        self.db.clear_provider_tokens(self.user_id, self.provider.value)
