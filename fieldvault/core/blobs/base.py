"""
Base interface for binary asset handles.

A handle is a short-lived URL through which a renderer can reach an asset's
bytes. Handles must be released when no longer referenced.
"""

from abc import ABC, abstractmethod


class BlobHandleAllocator(ABC):
    """Abstract allocator of blob URLs."""

    @abstractmethod
    def create_handle(self, blob: bytes) -> str:
        """
        Register asset bytes and return a URL for them.

        Args:
            blob: Asset content

        Returns:
            Handle URL
        """
        pass

    @abstractmethod
    def release_handle(self, url: str) -> None:
        """
        Release a handle previously returned by create_handle.

        Raises:
            NotFoundError: If the handle is unknown or already released
        """
        pass
