"""
Storage providers: the built-in bucket plus external drives a user can
connect ("bring your own storage").
"""

from .base import PROVIDER_CONFIGS, ProviderConfig, StorageBackend, UnimplementedBackend
from .builtin import CoreTetStorageBackend
from .dropbox import DropboxBackend
from .factory import StorageBackendFactory
from .google_drive import GoogleDriveBackend
from .onedrive import OneDriveBackend
from .registry import ProviderState, RegistryCache, StorageRegistry
from .tokens import TokenStore

__all__ = [
    "PROVIDER_CONFIGS",
    "ProviderConfig",
    "StorageBackend",
    "UnimplementedBackend",
    "CoreTetStorageBackend",
    "DropboxBackend",
    "GoogleDriveBackend",
    "OneDriveBackend",
    "StorageBackendFactory",
    "ProviderState",
    "RegistryCache",
    "StorageRegistry",
    "TokenStore",
]
