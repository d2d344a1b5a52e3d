"""
Models for the virtualized resource cache.
"""

from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A fully loaded resource body held in the LRU cache."""

    data: dict[str, Any]
    estimated_size: int = Field(..., ge=0, description="Serialized size in bytes")
    last_accessed: float = Field(..., description="Monotonic access time")
    ref_count: int = Field(default=0, ge=0)


class ResourceStub(BaseModel):
    """
    Lightweight summary of a Collection or Manifest.

    Used to render trees and listings before the full body is loaded.
    """

    id: str
    type: str
    label: dict[str, list[str]] = Field(default_factory=lambda: {"none": ["Untitled"]})
    summary: dict[str, list[str]] | None = None
    thumbnail: list[dict[str, Any]] | None = None
    nav_date: str | None = None
    child_count: int = 0
    manifest_count: int = 0
    canvas_count: int = 0
    loaded: bool = False
    last_accessed: float = 0.0


class CacheStats(BaseModel):
    """Snapshot of cache occupancy."""

    entries: int
    size_bytes: int
    size_mb: float
    max_mb: float
    retained: int
    stub_count: int
    blob_url_count: int
    in_flight: int
