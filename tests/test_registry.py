import random
import threading

import pytest

from coretet.errors import ProviderError
from coretet.models import ConnectionStatus, ProviderName, Quota
from coretet.storage import DropboxBackend, OneDriveBackend, RegistryCache, StorageBackend, StorageRegistry


class FakeBackend(StorageBackend):
    def __init__(self, name, outcome=True):
        self.name = name
        self.outcome = outcome
        self.connected = False
        self.quota_fails = False

    def connect(self, credentials=None):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        self.connected = bool(self.outcome)
        return self.connected

    def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    def get_quota(self):
        if self.quota_fails:
            raise ProviderError("quota down")
        return Quota(used=10, total=100)

    def list_files(self, path=None):
        return [{"id": "f1", "name": "song.mp3"}]


def make_registry():
    backends = {
        ProviderName.GOOGLE_DRIVE: FakeBackend(ProviderName.GOOGLE_DRIVE),
        ProviderName.CORETET: FakeBackend(ProviderName.CORETET),
        ProviderName.DROPBOX: DropboxBackend(),
        ProviderName.ONEDRIVE: OneDriveBackend(),
    }
    changes = []
    return StorageRegistry(backends, on_active_change=changes.append), backends, changes


def assert_single_active(registry):
    active = [s for s in registry.snapshot() if s["active"]]
    assert len(active) <= 1
    for entry in active:
        assert entry["status"] == "connected"
    if registry.active_provider is not None:
        assert registry.state(registry.active_provider).connected


def test_connect_makes_provider_active():
    registry, _, changes = make_registry()
    state = registry.connect("google_drive")
    assert state.status == ConnectionStatus.CONNECTED
    assert state.quota == Quota(used=10, total=100)
    assert state.last_sync is not None
    assert registry.active_provider == ProviderName.GOOGLE_DRIVE
    assert changes == [ProviderName.GOOGLE_DRIVE]


def test_connect_demotes_previous_active():
    registry, _, _ = make_registry()
    registry.connect(ProviderName.GOOGLE_DRIVE)
    registry.connect(ProviderName.CORETET)
    assert registry.active_provider == ProviderName.CORETET
    assert registry.state(ProviderName.GOOGLE_DRIVE).connected
    assert_single_active(registry)


@pytest.mark.parametrize("outcome,message", [
    (False, "Failed to connect to Google Drive"),
    (ProviderError("Token exchange failed: Bad Request"), "Token exchange failed: Bad Request"),
])
def test_failed_connect_records_error(outcome, message):
    registry, backends, _ = make_registry()
    backends[ProviderName.GOOGLE_DRIVE].outcome = outcome
    registry.connect(ProviderName.CORETET)

    state = registry.connect(ProviderName.GOOGLE_DRIVE)
    assert state.status == ConnectionStatus.ERROR
    assert state.error_message == message
    assert registry.active_provider == ProviderName.CORETET
    assert registry.state(ProviderName.CORETET).connected


def test_failed_reconnect_of_active_clears_slot():
    registry, backends, _ = make_registry()
    registry.connect(ProviderName.GOOGLE_DRIVE)
    backends[ProviderName.GOOGLE_DRIVE].outcome = RuntimeError("boom")
    registry.connect(ProviderName.GOOGLE_DRIVE)
    assert registry.active_provider is None
    assert registry.state(ProviderName.GOOGLE_DRIVE).error_message == "boom"


def test_unimplemented_provider_errors_without_raising():
    registry, _, _ = make_registry()
    state = registry.connect(ProviderName.DROPBOX)
    assert state.status == ConnectionStatus.ERROR
    assert "not yet implemented" in state.error_message
    assert registry.get_quota(ProviderName.DROPBOX) is None
    assert registry.list_files(ProviderName.ONEDRIVE) == []


def test_unimplemented_backends_raise_directly():
    with pytest.raises(NotImplementedError):
        DropboxBackend().connect()
    with pytest.raises(NotImplementedError):
        OneDriveBackend().list_files()
    assert DropboxBackend().is_connected() is False


def test_disconnect_clears_active():
    registry, _, changes = make_registry()
    registry.connect(ProviderName.GOOGLE_DRIVE)
    state = registry.disconnect(ProviderName.GOOGLE_DRIVE)
    assert state.status == ConnectionStatus.DISCONNECTED
    assert state.quota is None
    assert registry.active_provider is None
    assert changes[-1] is None


def test_disconnect_failure_is_logged_not_raised():
    registry, _, _ = make_registry()
    assert registry.disconnect(ProviderName.ONEDRIVE).status == ConnectionStatus.DISCONNECTED


def test_switch_active_requires_connection():
    registry, _, _ = make_registry()
    registry.connect(ProviderName.CORETET)
    assert registry.switch_active(ProviderName.GOOGLE_DRIVE) is False
    assert registry.active_provider == ProviderName.CORETET

    registry.connect(ProviderName.GOOGLE_DRIVE)
    assert registry.switch_active(ProviderName.CORETET) is True
    assert registry.active_provider == ProviderName.CORETET


def test_quota_failure_returns_none():
    registry, backends, _ = make_registry()
    registry.connect(ProviderName.CORETET)
    backends[ProviderName.CORETET].quota_fails = True
    assert registry.get_quota(ProviderName.CORETET) is None


def test_list_files_only_when_connected():
    registry, _, _ = make_registry()
    assert registry.list_files(ProviderName.CORETET) == []
    registry.connect(ProviderName.CORETET)
    assert registry.list_files(ProviderName.CORETET)[0]["name"] == "song.mp3"


def test_refresh_rederives_state():
    registry, backends, _ = make_registry()
    registry.connect(ProviderName.GOOGLE_DRIVE)
    backends[ProviderName.GOOGLE_DRIVE].connected = False
    backends[ProviderName.CORETET].connected = True

    registry.refresh(preferred=ProviderName.CORETET)
    assert not registry.state(ProviderName.GOOGLE_DRIVE).connected
    assert registry.active_provider == ProviderName.CORETET


def test_unknown_provider_rejected():
    registry, _, _ = make_registry()
    with pytest.raises(ValueError):
        registry.connect("icloud")


def test_single_active_over_random_sequences():
    rng = random.Random(1234)
    names = list(ProviderName)
    operations = ["connect", "connect_fail", "disconnect", "switch", "refresh", "drop"]

    for _ in range(200):
        registry, backends, _ = make_registry()
        for _ in range(12):
            op, name = rng.choice(operations), rng.choice(names)
            backend = backends[name]
            if op == "connect":
                if isinstance(backend, FakeBackend):
                    backend.outcome = True
                registry.connect(name)
            elif op == "connect_fail":
                if isinstance(backend, FakeBackend):
                    backend.outcome = ProviderError("refused")
                registry.connect(name)
            elif op == "disconnect":
                registry.disconnect(name)
            elif op == "switch":
                registry.switch_active(name)
            elif op == "refresh":
                registry.refresh()
            elif op == "drop" and isinstance(backend, FakeBackend):
                backend.connected = False
                registry.refresh()
            assert_single_active(registry)


def test_registry_cache_builds_once_and_evicts_oldest():
    built = []

    def build(user_id):
        built.append(user_id)
        return make_registry()[0]

    cache = RegistryCache(build, max_size=2)
    first = cache.get("a")
    assert cache.get("a") is first
    cache.get("b")
    cache.get("a")
    cache.get("c")

    assert built == ["a", "b", "c"]
    assert len(cache) == 2
    assert "a" in cache and "b" not in cache


def test_registry_cache_concurrent_first_requests_share_one_registry():
    built = []

    def build(user_id):
        built.append(user_id)
        return make_registry()[0]

    cache = RegistryCache(build, max_size=8)
    results = []
    threads = [threading.Thread(target=lambda: results.append(cache.get("u"))) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert built == ["u"]
    assert all(r is results[0] for r in results)


def test_registry_cache_rejects_empty_size():
    with pytest.raises(ValueError):
        RegistryCache(lambda user_id: None, max_size=0)
