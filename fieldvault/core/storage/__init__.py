"""Persistent resource storage backends."""

from fieldvault.core.storage.base import ResourceStorage
from fieldvault.core.storage.memory_store import InMemoryResourceStorage
from fieldvault.core.storage.sqlite_store import SQLiteResourceStorage

__all__ = ["ResourceStorage", "SQLiteResourceStorage", "InMemoryResourceStorage"]
