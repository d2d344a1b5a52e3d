"""Factories for building backends from configuration."""

from fieldvault.core.factory.storage_factory import StorageFactory

__all__ = ["StorageFactory"]
