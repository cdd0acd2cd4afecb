"""User registry storage."""

from sitehost.storage.backends import JSONFileBackend, MemoryBackend, StorageBackend
from sitehost.storage.models import Site, User
from sitehost.storage.repository import UserRepository

__all__ = [
    "JSONFileBackend",
    "MemoryBackend",
    "Site",
    "StorageBackend",
    "User",
    "UserRepository",
]
