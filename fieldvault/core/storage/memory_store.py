"""
In-memory resource storage.

Used for tests and ephemeral sessions; nothing survives the process.
"""

import copy
from typing import Any

from fieldvault.core.storage.base import ResourceStorage


class InMemoryResourceStorage(ResourceStorage):
    """Dict-backed resource storage."""

    def __init__(self, resources: dict[str, dict[str, Any]] | None = None):
        self._resources: dict[str, dict[str, Any]] = {
            resource_id: copy.deepcopy(body) for resource_id, body in (resources or {}).items()
        }
        self.load_calls: dict[str, int] = {}

    async def initialize(self) -> None:
        pass

    async def load_resource(self, resource_id: str) -> dict[str, Any] | None:
        self.load_calls[resource_id] = self.load_calls.get(resource_id, 0) + 1
        body = self._resources.get(resource_id)
        return copy.deepcopy(body) if body is not None else None

    async def save_resource(self, resource_id: str, body: dict[str, Any]) -> None:
        self._resources[resource_id] = copy.deepcopy(body)

    async def delete_resource(self, resource_id: str) -> None:
        self._resources.pop(resource_id, None)

    async def count_resources(self) -> int:
        return len(self._resources)

    async def close(self) -> None:
        pass
