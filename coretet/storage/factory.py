"""
Factory for creating storage backends.

Binds each backend to one user: tokens, quota and file listings are
always per user.
"""

import logging
from typing import Optional, Union

from ..models import ProviderName
from .base import PROVIDER_CONFIGS, StorageBackend
from .builtin import CoreTetStorageBackend
from .dropbox import DropboxBackend
from .google_drive import GoogleDriveBackend
from .onedrive import OneDriveBackend
from .registry import StorageRegistry
from .tokens import TokenStore

logger = logging.getLogger(__name__)


def _provider(name: Union[ProviderName, str]) -> ProviderName:
    if isinstance(name, ProviderName):
        return name
    try:
        return ProviderName(name)
    except ValueError:
        raise ValueError(f"Unknown provider type: {name}")


class StorageBackendFactory:
    """Factory for creating storage backend instances."""

    def __init__(self, config, database, object_store, cipher):
        self.config = config
        self.db = database
        self.object_store = object_store
        self.cipher = cipher

    def create(self, name: Union[ProviderName, str], user_id: str) -> StorageBackend:
        """
        Create a storage backend for one user.

        Args:
            name: Provider to create
            user_id: Owner of the tokens and files

        Returns:
            Storage backend instance

        Raises:
            ValueError: If the provider is not known
        """
        provider = _provider(name)

        if provider == ProviderName.GOOGLE_DRIVE:
            return GoogleDriveBackend(
                TokenStore(self.db, self.cipher, user_id, provider),
                client_id=self.config.google_client_id,
                client_secret=self.config.google_client_secret,
                redirect_uri=self.config.google_redirect_uri,
                timeout=self.config.network_timeout,
            )

        elif provider == ProviderName.CORETET:
            return CoreTetStorageBackend(
                self.object_store, self.db, user_id,
                default_storage_limit=self.config.default_storage_limit,
            )

        elif provider == ProviderName.DROPBOX:
            return DropboxBackend()

        return OneDriveBackend()

    def create_registry(self, user_id: str) -> StorageRegistry:
        """
        A registry holding every provider for one user.

        The active choice is mirrored to `user_storage_providers` so it
        survives a restart; `refresh()` restores it.
        """
        backends = {name: self.create(name, user_id) for name in ProviderName}
        registry = StorageRegistry(
            backends,
            on_active_change=lambda active: self.db.set_active_provider(
                user_id, active.value if active else None
            ),
        )
        stored = self.db.get_active_provider(user_id)
        registry.refresh(preferred=_provider(stored) if stored else None)
        if stored and registry.active_provider is None:
            logger.info("Stored active provider %s for %s is no longer connected", stored, user_id)
            self.db.set_active_provider(user_id, None)
        return registry

    @staticmethod
    def get_provider_name(name: Union[ProviderName, str]) -> str:
        """Get human-readable provider name."""
        config = PROVIDER_CONFIGS.get(_provider(name))
        return config.display_name if config else "Unknown"

    @staticmethod
    def get_provider_description(name: Union[ProviderName, str]) -> Optional[str]:
        config = PROVIDER_CONFIGS.get(_provider(name))
        return config.description if config else None
