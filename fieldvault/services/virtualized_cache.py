"""
Virtualized resource cache.

Keeps lightweight stubs for every Collection and Manifest so large archives
can be listed without holding every body in memory. Full bodies live in a
byte-bounded LRU cache and are fetched from ResourceStorage on demand.

Rules:
- an entry with ref_count > 0 is never evicted
- eviction removes least-recently-accessed unretained entries until the new
  entry fits; when everything is retained the budget is exceeded instead
- concurrent load_full() calls for one id share a single storage request
- blob handles are ref-counted per asset and released at zero
"""

import asyncio
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from fieldvault.config import CacheConfig
from fieldvault.core.blobs.base import BlobHandleAllocator
from fieldvault.core.storage.base import ResourceStorage
from fieldvault.models.cache import CacheEntry, CacheStats, ResourceStub
from fieldvault.models.entity import EntityType
from fieldvault.utils.exceptions import CacheError, NotFoundError
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)

STUB_TYPES = (EntityType.COLLECTION.value, EntityType.MANIFEST.value)


def estimate_size(data: dict[str, Any]) -> int:
    """Serialized size of a body in bytes."""
    return len(json.dumps(data, default=str).encode("utf-8"))


class VirtualizedCache:
    """
    LRU cache of full resource bodies plus a stub index.

    Not thread-safe; intended to be used from a single event loop.
    """

    def __init__(
        self,
        storage: ResourceStorage,
        blob_allocator: BlobHandleAllocator,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize virtualized cache.

        Args:
            storage: Backend full bodies are loaded from and saved to
            blob_allocator: Issues and releases blob handle URLs
            config: Byte budget and preload settings
            clock: Monotonic time source for LRU ordering
        """
        self.storage = storage
        self.blob_allocator = blob_allocator
        self.config = config or CacheConfig()
        self.clock = clock

        self.max_size_bytes = int(self.config.max_size_mb * 1024 * 1024)
        self.current_size = 0

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._stubs: dict[str, ResourceStub] = {}
        self._pending_refs: dict[str, int] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._blob_urls: dict[str, tuple[str, int]] = {}
        self._generation = 0

    # ═══════════════════════════════════════════════════════════
    # LRU CORE
    # ═══════════════════════════════════════════════════════════

    def _get(self, resource_id: str) -> dict[str, Any] | None:
        entry = self._entries.get(resource_id)
        if entry is None:
            return None
        entry.last_accessed = self.clock()
        self._entries.move_to_end(resource_id)
        return entry.data

    def _put(self, resource_id: str, data: dict[str, Any]) -> None:
        size = estimate_size(data)
        existing = self._entries.pop(resource_id, None)
        if existing is not None:
            self.current_size -= existing.estimated_size
            ref_count = existing.ref_count
        else:
            ref_count = self._pending_refs.pop(resource_id, 0)

        self._evict_for(size)

        self._entries[resource_id] = CacheEntry(
            data=data,
            estimated_size=size,
            last_accessed=self.clock(),
            ref_count=ref_count,
        )
        self.current_size += size

    def _evict_for(self, incoming_size: int) -> None:
        # OrderedDict keeps least recently used first
        for resource_id in list(self._entries):
            if self.current_size + incoming_size <= self.max_size_bytes:
                return
            entry = self._entries[resource_id]
            if entry.ref_count > 0:
                continue
            del self._entries[resource_id]
            self.current_size -= entry.estimated_size
            stub = self._stubs.get(resource_id)
            if stub is not None:
                stub.loaded = False
            logger.debug(f"Evicted {resource_id} ({entry.estimated_size} bytes)")

        if self.current_size + incoming_size > self.max_size_bytes:
            logger.debug(f"Cache over budget: {self.current_size + incoming_size} > {self.max_size_bytes} bytes")

    def retain(self, resource_id: str) -> None:
        """
        Pin a resource so eviction skips it.

        Pins taken before loading apply once it loads; they are dropped if the
        load fails or storage has no such resource.
        """
        entry = self._entries.get(resource_id)
        if entry is not None:
            entry.ref_count += 1
        else:
            self._pending_refs[resource_id] = self._pending_refs.get(resource_id, 0) + 1

    def release(self, resource_id: str) -> None:
        """Drop one pin; the count never goes below zero."""
        entry = self._entries.get(resource_id)
        if entry is not None:
            entry.ref_count = max(0, entry.ref_count - 1)
        elif resource_id in self._pending_refs:
            remaining = self._pending_refs[resource_id] - 1
            if remaining > 0:
                self._pending_refs[resource_id] = remaining
            else:
                del self._pending_refs[resource_id]

    def get_ref_count(self, resource_id: str) -> int:
        entry = self._entries.get(resource_id)
        if entry is not None:
            return entry.ref_count
        return self._pending_refs.get(resource_id, 0)

    # ═══════════════════════════════════════════════════════════
    # STUBS
    # ═══════════════════════════════════════════════════════════

    def create_stub_tree(self, root: dict[str, Any]) -> ResourceStub | None:
        """
        Build stubs for every Collection and Manifest under root.

        Full bodies are seeded into the cache as they are visited.

        Returns:
            Stub for root, or None if root is neither a Collection nor a Manifest
        """
        return self._create_stub(root)

    def _create_stub(self, item: dict[str, Any]) -> ResourceStub | None:
        item_type = item.get("type")
        children = item.get("items") or []

        if item_type not in STUB_TYPES:
            self._put(item["id"], item)
            return None

        stub = ResourceStub(
            id=item["id"],
            type=item_type,
            label=item.get("label") or {"none": ["Untitled"]},
            summary=item.get("summary"),
            thumbnail=item.get("thumbnail"),
            nav_date=item.get("navDate"),
            last_accessed=self.clock(),
        )
        if item_type == EntityType.COLLECTION.value:
            stub.child_count = len(children)
            stub.manifest_count = sum(1 for c in children if c.get("type") == EntityType.MANIFEST.value)
        else:
            stub.canvas_count = len(children)

        self._stubs[stub.id] = stub

        if item_type == EntityType.COLLECTION.value:
            for child in children:
                if child.get("type") in STUB_TYPES:
                    self._create_stub(child)

        self._put(stub.id, item)
        stub.loaded = True
        return stub

    def get_stub(self, resource_id: str) -> ResourceStub | None:
        stub = self._stubs.get(resource_id)
        if stub is not None:
            stub.last_accessed = self.clock()
        return stub

    def get_stubs_by_type(self, resource_type: EntityType | str) -> list[ResourceStub]:
        type_name = resource_type.value if isinstance(resource_type, EntityType) else resource_type
        return [stub for stub in self._stubs.values() if stub.type == type_name]

    def is_loaded(self, resource_id: str) -> bool:
        stub = self._stubs.get(resource_id)
        if stub is not None:
            return stub.loaded
        return resource_id in self._entries

    # ═══════════════════════════════════════════════════════════
    # LOADING
    # ═══════════════════════════════════════════════════════════

    async def load_full(self, resource_id: str) -> dict[str, Any] | None:
        """
        Get a full resource body, loading it from storage if needed.

        Concurrent calls for the same id await one shared storage request.

        Args:
            resource_id: Resource identifier

        Returns:
            Resource body, or None if it is not stored or the load failed
        """
        cached = self._get(resource_id)
        if cached is not None:
            self._mark_loaded(resource_id)
            return cached

        task = self._in_flight.get(resource_id)
        if task is None:
            task = asyncio.create_task(self._load_from_storage(resource_id, self._generation))
            self._in_flight[resource_id] = task

        return await task

    async def _load_from_storage(self, resource_id: str, generation: int) -> dict[str, Any] | None:
        try:
            data = await self.storage.load_resource(resource_id)
        except Exception as e:
            logger.warning(f"Failed to load resource {resource_id}: {e}")
            data = None
        else:
            if data is None:
                logger.debug(f"Resource {resource_id} not found in storage")
        finally:
            if self._in_flight.get(resource_id) is asyncio.current_task():
                del self._in_flight[resource_id]

        if data is None:
            # Pins on a body that never arrived are dropped with the load
            self._pending_refs.pop(resource_id, None)
            return None

        # A clear() while the request was running invalidates its result
        if generation == self._generation:
            self._put(resource_id, data)
            self._mark_loaded(resource_id)
        return data

    def _mark_loaded(self, resource_id: str) -> None:
        stub = self._stubs.get(resource_id)
        if stub is not None:
            stub.loaded = True
            stub.last_accessed = self.clock()

    async def preload_children(self, parent_id: str) -> int:
        """
        Load up to preload_limit unloaded children of a cached parent.

        Failures are ignored individually.

        Returns:
            Number of children that were loaded
        """
        parent = self._entries.get(parent_id)
        if parent is None:
            return 0

        child_ids = [
            child["id"]
            for child in parent.data.get("items") or []
            if isinstance(child, dict) and child.get("id")
        ]
        to_load = [child_id for child_id in child_ids if not self.is_loaded(child_id)][: self.config.preload_limit]
        if not to_load:
            return 0

        results = await asyncio.gather(*(self.load_full(child_id) for child_id in to_load))
        loaded = sum(1 for result in results if result is not None)
        logger.debug(f"Preloaded {loaded}/{len(to_load)} children of {parent_id}")
        return loaded

    # ═══════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════

    def update_resource(self, resource_id: str, updates: dict[str, Any]) -> None:
        """Merge updates into the cached body and the stub's summary fields."""
        cached = self._entries.get(resource_id)
        if cached is not None:
            self._put(resource_id, {**cached.data, **updates})

        stub = self._stubs.get(resource_id)
        if stub is not None:
            if updates.get("label"):
                stub.label = updates["label"]
            if updates.get("summary"):
                stub.summary = updates["summary"]
            if updates.get("thumbnail"):
                stub.thumbnail = updates["thumbnail"]
            if updates.get("navDate") and stub.type == EntityType.MANIFEST.value:
                stub.nav_date = updates["navDate"]

    async def persist(self, resource_id: str, body: dict[str, Any]) -> None:
        """
        Save a full body to storage and refresh the cached copy.

        Raises:
            StorageError: If the backend rejects the write
        """
        await self.storage.save_resource(resource_id, body)
        self._put(resource_id, body)
        self._mark_loaded(resource_id)

    async def discard(self, resource_id: str) -> None:
        """Forget a resource everywhere, including storage."""
        entry = self._entries.pop(resource_id, None)
        if entry is not None:
            self.current_size -= entry.estimated_size
        self._stubs.pop(resource_id, None)
        self._pending_refs.pop(resource_id, None)
        await self.storage.delete_resource(resource_id)

    # ═══════════════════════════════════════════════════════════
    # BLOB HANDLES
    # ═══════════════════════════════════════════════════════════

    def get_blob_url(self, asset_id: str, blob: bytes) -> str:
        """Get a shared handle URL for an asset, creating it on first use."""
        existing = self._blob_urls.get(asset_id)
        if existing is not None:
            url, count = existing
            self._blob_urls[asset_id] = (url, count + 1)
            return url

        url = self.blob_allocator.create_handle(blob)
        self._blob_urls[asset_id] = (url, 1)
        return url

    def release_blob_url(self, asset_id: str) -> None:
        """
        Drop one reference to an asset handle; the handle is released at zero.

        Raises:
            CacheError: If the allocator no longer knows the handle
        """
        existing = self._blob_urls.get(asset_id)
        if existing is None:
            return
        url, count = existing
        if count <= 1:
            del self._blob_urls[asset_id]
            try:
                self.blob_allocator.release_handle(url)
            except NotFoundError as e:
                raise CacheError(
                    f"Handle for {asset_id} was already released", context={"asset_id": asset_id, "url": url}
                ) from e
        else:
            self._blob_urls[asset_id] = (url, count - 1)

    # ═══════════════════════════════════════════════════════════
    # STATS / RESET
    # ═══════════════════════════════════════════════════════════

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            entries=len(self._entries),
            size_bytes=self.current_size,
            size_mb=round(self.current_size / 1024 / 1024, 2),
            max_mb=self.config.max_size_mb,
            retained=sum(1 for entry in self._entries.values() if entry.ref_count > 0),
            stub_count=len(self._stubs),
            blob_url_count=len(self._blob_urls),
            in_flight=len(self._in_flight),
        )

    def clear(self) -> None:
        """Drop every entry, stub and blob handle."""
        self._entries.clear()
        self._stubs.clear()
        self._pending_refs.clear()
        self.current_size = 0
        self._generation += 1

        for url, _ in self._blob_urls.values():
            self.blob_allocator.release_handle(url)
        self._blob_urls.clear()
        logger.info("Virtualized cache cleared")
