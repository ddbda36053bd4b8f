"""Built-in object storage exposed as a provider."""

import logging
from typing import Any, Dict, List, Optional

from ..constants import DEFAULT_STORAGE_LIMIT
from ..errors import ProviderError, UpstreamError
from ..models import ProviderName, Quota
from .base import StorageBackend

logger = logging.getLogger(__name__)


class CoreTetStorageBackend(StorageBackend):
    """
    The service's own bucket. Quota comes from the user's profile rather
    than the bucket, since the bucket is shared by every user.
    """

    name = ProviderName.CORETET

    def __init__(self, object_store, database, user_id: str,
                 default_storage_limit: int = DEFAULT_STORAGE_LIMIT):
        self.object_store = object_store
        self.db = database
        self.user_id = user_id
        self.default_storage_limit = default_storage_limit

    def connect(self, credentials: Optional[Dict[str, Any]] = None) -> bool:
        if not self.object_store.bucket_exists():
            raise ProviderError(f"Bucket '{self.object_store.bucket_name}' is not reachable",
                                provider=self.name.value)
        self.db.set_provider_connected(self.user_id, self.name.value, True)
        return True

    def disconnect(self) -> None:
        self.db.set_provider_connected(self.user_id, self.name.value, False)

    def is_connected(self) -> bool:
        return self.db.is_provider_connected(self.user_id, self.name.value)

    def get_quota(self) -> Quota:
        profile = self.db.get_profile(self.user_id)
        if profile is None:
            return Quota(used=0, total=self.default_storage_limit)
        return Quota(used=profile.storage_used, total=profile.storage_limit)

    def list_files(self, path: Optional[str] = None) -> List[Dict[str, Any]]:
        prefix = f"{self.user_id}/"
        if path:
            prefix += path.strip("/") + "/"
        try:
            objects = self.object_store.list_objects(prefix)
        except UpstreamError as e:
            raise ProviderError("Failed to list files", provider=self.name.value,
                                details=e.details) from e
        return [
            {
                "id": obj["key"],
                "name": obj["key"].rsplit("/", 1)[-1],
                "size": obj["size"],
                "modified": obj["modified"],
            }
            for obj in objects
        ]
