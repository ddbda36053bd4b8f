from ..models import ProviderName
from .base import UnimplementedBackend


class OneDriveBackend(UnimplementedBackend):
    """Microsoft OneDrive. Declared in the provider list; not implemented yet."""

    name = ProviderName.ONEDRIVE
