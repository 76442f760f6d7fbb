from .base import KeyBackend, KeyProvider
from .local import BundleFileBackend, LocalBackend, LocalKeyProvider
from .remote import RemoteBackend, RemoteKeyProvider

__all__ = ["BundleFileBackend", "KeyBackend", "KeyProvider", "LocalBackend", "LocalKeyProvider", "RemoteBackend", "RemoteKeyProvider"]
