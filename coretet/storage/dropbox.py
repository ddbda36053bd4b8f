from ..models import ProviderName
from .base import UnimplementedBackend


class DropboxBackend(UnimplementedBackend):
    """Dropbox. Declared in the provider list; not implemented yet."""

    name = ProviderName.DROPBOX
