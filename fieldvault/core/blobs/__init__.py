"""Blob handle allocators for binary assets."""

from fieldvault.core.blobs.base import BlobHandleAllocator
from fieldvault.core.blobs.memory import InMemoryBlobAllocator

__all__ = ["BlobHandleAllocator", "InMemoryBlobAllocator"]
