"""Fixtures for service tests.

Fixtures use function scope so every test gets fresh services, storage and
clocks.
"""

from collections.abc import Iterator

import pytest

from fieldvault.config import CacheConfig, TrashConfig
from fieldvault.core.blobs import InMemoryBlobAllocator
from fieldvault.core.storage import InMemoryResourceStorage
from fieldvault.services.trash_service import TrashService
from fieldvault.services.virtualized_cache import VirtualizedCache


@pytest.fixture
def trash_service(clock) -> TrashService:
    """Trash service on a fixed clock with default retention."""
    return TrashService(TrashConfig(), clock=clock)


@pytest.fixture
def limited_trash_service(clock) -> TrashService:
    """Trash service that enforces a one-item limit."""
    return TrashService(TrashConfig(enforce_size_limits=True, max_item_count=1), clock=clock)


@pytest.fixture
def blob_allocator() -> InMemoryBlobAllocator:
    return InMemoryBlobAllocator()


@pytest.fixture
def resource_storage(document) -> InMemoryResourceStorage:
    """In-memory storage seeded with the sample document's manifests and collections."""
    resources = {document["id"]: document}
    for item in document["items"]:
        resources[item["id"]] = item
        for nested in item.get("items", []):
            if nested.get("type") in ("Manifest", "Collection"):
                resources[nested["id"]] = nested
    return InMemoryResourceStorage(resources)


@pytest.fixture
def cache(resource_storage, blob_allocator) -> Iterator[VirtualizedCache]:
    """Cache over the seeded storage, cleared after the test."""
    virtualized = VirtualizedCache(resource_storage, blob_allocator, CacheConfig(max_size_mb=1, preload_limit=10))
    yield virtualized
    virtualized.clear()
