"""
Abstract base class for external storage providers.

Every provider exposes the same capability set (connect, disconnect,
is_connected, get_quota, list_files) so the registry can drive them
uniformly, even when a provider is only declared and not yet implemented.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import ProviderName, Quota


@dataclass(frozen=True)
class ProviderConfig:
    """Static description of a storage provider."""
    name: ProviderName
    display_name: str
    description: str
    max_file_size: int
    supported_formats: List[str] = field(default_factory=list)
    enabled: bool = True


PROVIDER_CONFIGS: Dict[ProviderName, ProviderConfig] = {
    ProviderName.GOOGLE_DRIVE: ProviderConfig(
        name=ProviderName.GOOGLE_DRIVE,
        display_name="Google Drive",
        description="Store your music in Google Drive with 15GB free storage",
        max_file_size=100 * 1024 * 1024,
        supported_formats=["mp3", "m4a", "wav", "flac", "aiff"],
    ),
    ProviderName.DROPBOX: ProviderConfig(
        name=ProviderName.DROPBOX,
        display_name="Dropbox",
        description="Professional storage with advanced sharing controls",
        max_file_size=150 * 1024 * 1024,
        supported_formats=["mp3", "m4a", "wav", "flac", "aiff"],
        enabled=False,
    ),
    ProviderName.ONEDRIVE: ProviderConfig(
        name=ProviderName.ONEDRIVE,
        display_name="OneDrive",
        description="Integrated with Microsoft 365 suite",
        max_file_size=100 * 1024 * 1024,
        supported_formats=["mp3", "m4a", "wav", "flac"],
        enabled=False,
    ),
    ProviderName.CORETET: ProviderConfig(
        name=ProviderName.CORETET,
        display_name="CoreTet Storage",
        description="Built-in storage, optimized for audio",
        max_file_size=100 * 1024 * 1024,
        supported_formats=["mp3", "m4a", "wav", "flac"],
    ),
}


class StorageBackend(ABC):
    """
    Interface every storage provider backend implements.

    Failures are raised, never returned silently: ProviderError for a
    failed call, NotImplementedError for a capability the provider does
    not have yet.
    """

    name: ProviderName

    @property
    def config(self) -> ProviderConfig:
        return PROVIDER_CONFIGS[self.name]

    @property
    def account_email(self) -> Optional[str]:
        """Email of the connected provider account, if known."""
        return None

    @abstractmethod
    def connect(self, credentials: Optional[Dict[str, Any]] = None) -> bool:
        """
        Establish a session with the provider.

        Args:
            credentials: Provider-specific input (e.g. an OAuth `code`)

        Returns:
            True if the provider is now connected
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Tear down the external session and forget stored tokens."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether a usable session exists."""
        pass

    @abstractmethod
    def get_quota(self) -> Quota:
        """Current byte usage and capacity."""
        pass

    @abstractmethod
    def list_files(self, path: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List audio files.

        Args:
            path: Provider-specific folder reference

        Returns:
            List of dictionaries with file information (id, name, size, ...)
        """
        pass


class UnimplementedBackend(StorageBackend):
    """
    A provider that is declared but not built yet.

    Every capability raises NotImplementedError so callers and tests see
    the gap instead of a silent no-op.
    """

    def _missing(self, capability: str) -> NotImplementedError:
        return NotImplementedError(f"{self.config.display_name} {capability} not yet implemented")

    def connect(self, credentials: Optional[Dict[str, Any]] = None) -> bool:
        raise self._missing("connection")

    def disconnect(self) -> None:
        raise self._missing("disconnect")

    def is_connected(self) -> bool:
        return False

    def get_quota(self) -> Quota:
        raise self._missing("quota")

    def list_files(self, path: Optional[str] = None) -> List[Dict[str, Any]]:
        raise self._missing("file listing")
