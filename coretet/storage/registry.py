"""
Per-user registry of storage providers and their connection state.

The active provider lives in a single slot, so there can never be two of
them; every transition that takes a provider out of `connected` also
empties the slot if that provider held it.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from ..models import ConnectionStatus, ProviderName, Quota, utc_now_iso
from .base import PROVIDER_CONFIGS, StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class ProviderState:
    """Connection state of one provider."""
    name: ProviderName
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    quota: Optional[Quota] = None
    last_sync: Optional[str] = None
    email: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def reset(self):
        self.status = ConnectionStatus.DISCONNECTED
        self.quota = None
        self.email = None
        self.error_message = None

    def to_dict(self, active: bool) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "display_name": PROVIDER_CONFIGS[self.name].display_name,
            "status": self.status.value,
            "active": active,
            "quota": self.quota.to_dict() if self.quota else None,
            "last_sync": self.last_sync,
            "email": self.email,
            "error_message": self.error_message,
        }


class StorageRegistry:
    def __init__(self, backends: Dict[ProviderName, StorageBackend],
                 on_active_change: Optional[Callable[[Optional[ProviderName]], None]] = None):
        """
        Args:
            backends: One backend per provider
            on_active_change: Called with the new active provider (or None)
                whenever it changes
        """
        self._backends = dict(backends)
        self._states = {name: ProviderState(name=name) for name in self._backends}
        self._active: Optional[ProviderName] = None
        self._on_active_change = on_active_change

    def resolve(self, name: Union[ProviderName, str]) -> ProviderName:
        try:
            provider = name if isinstance(name, ProviderName) else ProviderName(name)
        except ValueError:
            raise ValueError(f"Unknown provider: {name}")
        if provider not in self._backends:
            raise ValueError(f"Provider {provider.value} is not registered")
        return provider

    def _set_active(self, name: Optional[ProviderName]):
        if name == self._active:
            return
        self._active = name
        if self._on_active_change is not None:
            try:
                self._on_active_change(name)
            except Exception as e:
                logger.error("Could not persist active provider %s: %s", name, e)

    @property
    def active_provider(self) -> Optional[ProviderName]:
        return self._active

    def state(self, name: Union[ProviderName, str]) -> ProviderState:
        return self._states[self.resolve(name)]

    def connect(self, name: Union[ProviderName, str],
                credentials: Optional[Dict[str, Any]] = None) -> ProviderState:
        """
        Connect a provider and make it the active one.

        Failure never raises: the provider moves to `error` with a message,
        and the others are left as they were.
        """
        provider = self.resolve(name)
        state = self._states[provider]
        if self._active == provider:
            self._set_active(None)
        state.status = ConnectionStatus.CONNECTING
        state.error_message = None

        display_name = PROVIDER_CONFIGS[provider].display_name
        try:
            connected = self._backends[provider].connect(credentials)
            error_message = None if connected else f"Failed to connect to {display_name}"
        except Exception as e:
            logger.warning("Connecting %s failed: %s", provider.value, e)
            error_message = getattr(e, "message", None) or str(e) or "Connection failed"

        if error_message:
            state.status = ConnectionStatus.ERROR
            state.error_message = error_message
            return state

        state.status = ConnectionStatus.CONNECTED
        state.email = self._backends[provider].account_email
        state.last_sync = utc_now_iso()
        self._set_active(provider)
        self.get_quota(provider)
        logger.info("Connected storage provider %s", provider.value)
        return state

    def disconnect(self, name: Union[ProviderName, str]) -> ProviderState:
        provider = self.resolve(name)
        try:
            self._backends[provider].disconnect()
        except Exception as e:
            logger.warning("Disconnecting %s failed: %s", provider.value, e)

        state = self._states[provider]
        state.reset()
        if self._active == provider:
            self._set_active(None)
        return state

    def switch_active(self, name: Union[ProviderName, str]) -> bool:
        """Make a connected provider the active one. Returns False otherwise."""
        provider = self.resolve(name)
        if not self._states[provider].connected:
            return False
        self._set_active(provider)
        return True

    def get_quota(self, name: Union[ProviderName, str]) -> Optional[Quota]:
        provider = self.resolve(name)
        state = self._states[provider]
        if not state.connected:
            return None
        try:
            state.quota = self._backends[provider].get_quota()
        except Exception as e:
            logger.warning("Quota lookup for %s failed: %s", provider.value, e)
            return None
        return state.quota

    def list_files(self, name: Union[ProviderName, str], path: Optional[str] = None) -> List[Dict[str, Any]]:
        provider = self.resolve(name)
        if not self._states[provider].connected:
            return []
        try:
            files = self._backends[provider].list_files(path)
        except Exception as e:
            logger.warning("Listing files on %s failed: %s", provider.value, e)
            return []
        self._states[provider].last_sync = utc_now_iso()
        return files

    def refresh(self, preferred: Optional[ProviderName] = None):
        """
        Re-derive every provider's status from its backend.

        Args:
            preferred: Provider to make active if it turns out connected
                and nothing else is active
        """
        for provider, backend in self._backends.items():
            state = self._states[provider]
            try:
                connected = backend.is_connected()
            except Exception as e:
                logger.warning("Status check for %s failed: %s", provider.value, e)
                connected = False

            if connected:
                state.status = ConnectionStatus.CONNECTED
                state.error_message = None
                state.email = backend.account_email
            elif state.status != ConnectionStatus.ERROR:
                state.reset()

        if self._active is not None and not self._states[self._active].connected:
            self._set_active(None)
        if self._active is None and preferred in self._states and self._states[preferred].connected:
            self._set_active(preferred)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [state.to_dict(active=name == self._active) for name, state in self._states.items()]


class RegistryCache:
    """
    Least-recently-used map of user id to registry.

    Evicted registries are rebuilt from the database on the next request,
    so the cap only bounds memory.
    """

    def __init__(self, build: Callable[[str], StorageRegistry], max_size: int):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._build = build
        self._max_size = max_size
        self._registries: "OrderedDict[str, StorageRegistry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, user_id: str) -> StorageRegistry:
        with self._lock:
            registry = self._registries.get(user_id)
            if registry is None:
                registry = self._build(user_id)
                self._registries[user_id] = registry
                while len(self._registries) > self._max_size:
                    evicted, _ = self._registries.popitem(last=False)
                    logger.debug("Evicted storage registry for %s", evicted)
            else:
                self._registries.move_to_end(user_id)
            return registry

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._registries

    def __len__(self) -> int:
        with self._lock:
            return len(self._registries)
