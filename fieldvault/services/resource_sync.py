"""
Resource Sync - write-through from session snapshots to the resource cache.

Collections and Manifests are the units the virtualized cache serves. After a
session change every such body whose export differs from the last flushed
snapshot is refreshed in the cache and saved to storage; bodies that are no
longer live are discarded.
"""

from fieldvault.core.vault import denormalize_entity
from fieldvault.models.entity import EntityType
from fieldvault.models.state import NormalizedState
from fieldvault.services.virtualized_cache import VirtualizedCache
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)

SYNCED_TYPES = (EntityType.COLLECTION, EntityType.MANIFEST)


class ResourceSync:
    """
    Keeps cached and stored resource bodies in step with an archive session.

    Register track() as a session listener and await flush() once the
    mutation is done; flush() is a no-op while the snapshot is unchanged.
    """

    def __init__(self, cache: VirtualizedCache):
        self.cache = cache
        self._flushed: NormalizedState | None = None
        self._pending: NormalizedState | None = None

    def track(self, state: NormalizedState) -> None:
        """Session listener: remember the newest snapshot."""
        self._pending = state

    async def flush(self) -> int:
        """
        Write changed bodies through the cache.

        Returns:
            Number of resources saved or discarded

        Raises:
            StorageError: If the backend rejects a write
        """
        state = self._pending
        if state is None or state is self._flushed:
            return 0

        previous = self._flushed
        live_ids = _synced_ids(state)
        written = 0

        for resource_id in live_ids:
            body = denormalize_entity(state, resource_id)
            if previous is not None and denormalize_entity(previous, resource_id) == body:
                continue
            self.cache.update_resource(resource_id, body)
            await self.cache.persist(resource_id, body)
            written += 1

        if previous is not None:
            for resource_id in _synced_ids(previous):
                if resource_id not in state.type_index:
                    await self.cache.discard(resource_id)
                    written += 1

        self._flushed = state
        if written:
            logger.debug(f"Synced {written} resources to storage")
        return written


def _synced_ids(state: NormalizedState) -> list[str]:
    return [
        resource_id
        for entity_type in SYNCED_TYPES
        for resource_id in state.entities.get(entity_type.value, {})
    ]
