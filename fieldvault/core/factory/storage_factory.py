"""
Factory for creating resource storage backends.
"""

from fieldvault.config import Config
from fieldvault.core.storage.base import ResourceStorage
from fieldvault.core.storage.memory_store import InMemoryResourceStorage
from fieldvault.core.storage.sqlite_store import SQLiteResourceStorage
from fieldvault.utils.exceptions import ConfigurationError


class StorageFactory:
    """Factory for creating resource storage backends from configuration."""

    @staticmethod
    def create(config: Config) -> ResourceStorage:
        """
        Create resource storage from configuration.

        Args:
            config: Main configuration object

        Returns:
            Resource storage instance

        Raises:
            ConfigurationError: If backend is not supported
        """
        backend = config.storage.backend.lower()
        if backend == "sqlite":
            return SQLiteResourceStorage(db_path=config.storage.db_path)
        elif backend == "memory":
            return InMemoryResourceStorage()
        else:
            raise ConfigurationError(
                f"Unsupported storage backend: {config.storage.backend}",
                context={"backend": config.storage.backend},
            )
