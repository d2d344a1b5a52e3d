"""
Base interface for persistent resource storage.

The virtualized cache loads full resource bodies through this interface when
a stub is expanded, and writes edited bodies back through it.
"""

from abc import ABC, abstractmethod
from typing import Any


class ResourceStorage(ABC):
    """Abstract base class for resource block storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage (create tables/schema)."""
        pass

    # ═══════════════════════════════════════════════════════════
    # RESOURCE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def load_resource(self, resource_id: str) -> dict[str, Any] | None:
        """
        Load a full resource body by ID.

        Args:
            resource_id: Resource identifier

        Returns:
            JSON-LD body, or None if the resource is not stored

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save_resource(self, resource_id: str, body: dict[str, Any]) -> None:
        """
        Store (or replace) a full resource body.

        Args:
            resource_id: Resource identifier
            body: JSON-LD body
        """
        pass

    @abstractmethod
    async def delete_resource(self, resource_id: str) -> None:
        """Delete a stored resource. Missing resources are ignored."""
        pass

    @abstractmethod
    async def count_resources(self) -> int:
        """Number of stored resources."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and release resources."""
        pass
