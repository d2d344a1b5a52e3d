"""
FieldVault FastAPI Application

A REST API server over one archive session.
Provides endpoints for loading and exporting IIIF documents, editing the
resource hierarchy, soft delete and restore, undo/redo and cache inspection.

Resource ids are URIs, so they travel as query parameters or in request
bodies rather than as path segments.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from fieldvault.config import Config
from fieldvault.core.blobs import InMemoryBlobAllocator
from fieldvault.core.factory import StorageFactory
from fieldvault.core.storage.base import ResourceStorage
from fieldvault.models.results import ErrorKind, OperationResult
from fieldvault.services import ArchiveSession, TrashService, VirtualizedCache
from fieldvault.services.history import HistoryManager
from fieldvault.services.resource_sync import ResourceSync
from fieldvault.utils.exceptions import ValidationError
from fieldvault.utils.logger import get_logger, setup_logging

# Global instances
session: ArchiveSession | None = None
cache: VirtualizedCache | None = None
storage: ResourceStorage | None = None
resource_sync: ResourceSync | None = None
logger = get_logger(__name__)

CONFLICT_KINDS = {
    ErrorKind.CONFLICT,
    ErrorKind.CYCLE,
    ErrorKind.ALREADY_TRASHED,
    ErrorKind.AMBIGUOUS_PARENT,
    ErrorKind.TRASH_LIMIT,
}


# Pydantic models for API
class AddChildRequest(BaseModel):
    """Request model for adding a child."""

    parent_id: str
    child: dict[str, Any] = Field(..., description="JSON-LD body of the child")
    index: int | None = Field(default=None, ge=0)


class ReorderRequest(BaseModel):
    """Request model for reordering children."""

    parent_id: str
    order: list[str]


class MoveRequest(BaseModel):
    """Request model for moving an entity."""

    entity_id: str
    new_parent_id: str
    index: int | None = Field(default=None, ge=0)
    from_parent_id: str | None = None


class EntityUpdate(BaseModel):
    """One patch in a batch update."""

    id: str
    patch: dict[str, Any]


class BatchUpdateRequest(BaseModel):
    """Request model for batch updates."""

    updates: list[EntityUpdate]


class DimensionsRequest(BaseModel):
    """Request model for canvas dimensions."""

    entity_id: str
    width: Any
    height: Any


class DurationRequest(BaseModel):
    """Request model for canvas duration."""

    entity_id: str
    duration: Any


class TrashRequest(BaseModel):
    """Request model for trashing entities."""

    entity_ids: list[str] = Field(..., min_length=1)


class RestoreRequest(BaseModel):
    """Request model for restoring an entity."""

    entity_id: str
    parent_id: str | None = None
    index: int | None = Field(default=None, ge=0)


class CleanupRequest(BaseModel):
    """Request model for retention cleanup."""

    max_age_days: int | None = Field(default=None, ge=0)


class OperationResponse(BaseModel):
    """Response model for successful mutations."""

    success: bool
    entity_id: str | None = None
    entity_count: int
    trash_count: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    session_id: str | None
    entity_count: int
    storage_backend: str


def _get_session() -> ArchiveSession:
    if session is None:
        raise HTTPException(status_code=503, detail="Session not initialized")
    return session


def _respond(result: OperationResult) -> OperationResponse:
    """Map a vault result onto an HTTP response or error."""
    if not result.success:
        if result.error_kind == ErrorKind.NOT_FOUND:
            status_code = 404
        elif result.error_kind in CONFLICT_KINDS:
            status_code = 409
        else:
            status_code = 422
        raise HTTPException(
            status_code=status_code,
            detail={
                "error": result.error,
                "kind": result.error_kind.value if result.error_kind else None,
                "invalid_ids": result.invalid_ids,
            },
        )

    state = result.state
    return OperationResponse(
        success=True,
        entity_id=result.entity_id,
        entity_count=state.entity_count() if state else 0,
        trash_count=len(state.trashed_entities) if state else 0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global session, cache, storage, resource_sync

    # Load configuration from environment or use defaults
    config = Config.from_env()

    setup_logging(
        level=config.logging.level,
        log_to_file=config.logging.log_to_file,
        log_dir=config.logging.log_dir,
        file_rotation=config.logging.file_rotation,
        file_retention=config.logging.file_retention,
        compression=config.logging.compression,
        serialize=config.logging.serialize,
    )

    logger.info("Starting FieldVault server")
    logger.info(
        f"Configuration: storage={config.storage.backend}, cache={config.cache.max_size_mb} MB, "
        f"trash retention={config.trash.retention_days} days"
    )

    storage = StorageFactory.create(config)
    await storage.initialize()

    cache = VirtualizedCache(storage, InMemoryBlobAllocator(), config.cache)
    session = ArchiveSession(
        trash_service=TrashService(config.trash),
        history=HistoryManager(max_size=config.history.max_size),
        config=config,
    )
    resource_sync = ResourceSync(cache)
    session.subscribe(resource_sync.track)
    app.state.storage_backend = config.storage.backend
    logger.info(f"Archive session {session.id} ready")

    yield

    logger.info("Shutting down FieldVault server")
    cache.clear()
    await storage.close()
    session = None
    cache = None
    storage = None
    resource_sync = None
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title="FieldVault API",
    description="Normalized IIIF archive store with soft delete and undo",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def sync_resources(request: Request, call_next):
    """Write session changes through the resource cache after each mutating request."""
    response = await call_next(request)
    if request.method != "GET" and resource_sync is not None:
        await resource_sync.flush()
    return response


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if session else "initializing",
        session_id=session.id if session else None,
        entity_count=session.state.entity_count() if session else 0,
        storage_backend=getattr(app.state, "storage_backend", "unknown"),
    )


# Document endpoints
@app.post("/document", response_model=OperationResponse)
async def load_document(document: dict[str, Any]):
    """
    Load a IIIF Collection or Manifest as the session document.

    The tree is normalized into the vault, seeded into the resource cache; each Collection
    and Manifest body is written to storage once the request completes. Undo history starts over.
    """
    current = _get_session()

    try:
        state = current.load(document)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": e.message, "context": e.context}) from e

    if cache is not None:
        cache.create_stub_tree(document)

    return OperationResponse(
        success=True,
        entity_id=state.root_id,
        entity_count=state.entity_count(),
        trash_count=0,
    )


@app.get("/document")
async def export_document():
    """Export the current document as a nested IIIF tree."""
    document = _get_session().export()
    if document is None:
        raise HTTPException(status_code=404, detail="No document loaded")
    return document


# Entity endpoints
@app.get("/entity")
async def get_entity(id: str = Query(..., description="Entity id")):
    """Retrieve a live entity body by id."""
    entity = _get_session().get(id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return entity


@app.patch("/entity", response_model=OperationResponse)
async def update_entity(patch: dict[str, Any], id: str = Query(..., description="Entity id")):
    """Shallow-merge a patch into one entity; null values remove keys."""
    return _respond(_get_session().update_entity(id, patch))


@app.delete("/entity", response_model=OperationResponse)
async def remove_entity(id: str = Query(..., description="Entity id")):
    """Permanently delete an entity and its owned subtree."""
    return _respond(_get_session().remove_entity(id))


@app.post("/entities/batch", response_model=OperationResponse)
async def batch_update(request: BatchUpdateRequest):
    """Apply several patches; nothing is applied if any id is unknown."""
    updates = [update.model_dump() for update in request.updates]
    return _respond(_get_session().batch_update(updates))


@app.put("/entity/dimensions", response_model=OperationResponse)
async def update_dimensions(request: DimensionsRequest):
    """Set canvas width and height."""
    return _respond(_get_session().update_dimensions(request.entity_id, request.width, request.height))


@app.put("/entity/duration", response_model=OperationResponse)
async def update_duration(request: DurationRequest):
    """Set canvas duration in seconds."""
    return _respond(_get_session().update_duration(request.entity_id, request.duration))


# Hierarchy endpoints
@app.post("/children", response_model=OperationResponse)
async def add_child(request: AddChildRequest):
    """Insert a child (with its nested items) under a parent."""
    return _respond(_get_session().add_child(request.parent_id, request.child, request.index))


@app.delete("/children", response_model=OperationResponse)
async def remove_child(parent_id: str = Query(...), child_id: str = Query(...)):
    """Remove a child from a parent."""
    return _respond(_get_session().remove_child(parent_id, child_id))


@app.put("/children/order", response_model=OperationResponse)
async def reorder_children(request: ReorderRequest):
    """Replace the order of a parent's children."""
    return _respond(_get_session().reorder_children(request.parent_id, request.order))


@app.post("/move", response_model=OperationResponse)
async def move_entity(request: MoveRequest):
    """Move an entity under a new parent."""
    result = _get_session().move_entity(
        request.entity_id,
        request.new_parent_id,
        index=request.index,
        from_parent_id=request.from_parent_id,
    )
    return _respond(result)


# Trash endpoints
@app.get("/trash")
async def list_trash():
    """List trashed entities, newest first."""
    current = _get_session()
    trash = current.trash
    items = []
    for entity_id, record in trash.get_trashed_sorted(current.state):
        items.append(
            {
                "id": entity_id,
                "type": record.entity_type,
                "trashed_at": record.trashed_at.isoformat() if record.trashed_at else None,
                "trashed": trash.format_relative_time(record.trashed_at) if record.trashed_at else None,
                "days_until_expiration": (
                    trash.get_days_until_expiration(record.trashed_at) if record.trashed_at else None
                ),
                "corrupted": record.is_corrupted,
            }
        )
    return items


@app.get("/trash/stats")
async def trash_stats():
    """Aggregate counts, sizes and ages over the trash."""
    current = _get_session()
    stats = current.trash_stats()
    return {**stats.model_dump(mode="json"), "total_size_display": current.trash.format_bytes(stats.total_size)}


@app.post("/trash")
async def move_to_trash(request: TrashRequest):
    """Soft-delete one or more entities."""
    current = _get_session()
    if len(request.entity_ids) == 1:
        return _respond(current.move_to_trash(request.entity_ids[0]))

    result = current.batch_move_to_trash(request.entity_ids)
    return {
        "success": result.success,
        "processed_count": result.processed_count,
        "failed_count": result.failed_count,
        "errors": result.errors,
    }


@app.post("/trash/restore", response_model=OperationResponse)
async def restore_from_trash(request: RestoreRequest):
    """Restore a trashed entity, optionally under a new parent."""
    return _respond(_get_session().restore_from_trash(request.entity_id, request.parent_id, request.index))


@app.post("/trash/empty")
async def empty_trash():
    """Permanently delete everything in the trash."""
    result = _get_session().empty_trash()
    return {"deleted_count": result.deleted_count, "failed_count": result.failed_count, "errors": result.errors}


@app.post("/trash/cleanup")
async def cleanup_trash(request: CleanupRequest):
    """Purge trash entries older than the retention window."""
    result = _get_session().auto_cleanup(request.max_age_days)
    return {"deleted_count": result.deleted_count, "deleted_ids": result.deleted_ids}


# History endpoints
@app.get("/history")
async def history_status():
    """Undo/redo availability."""
    return _get_session().history_status()


@app.post("/history/undo")
async def undo():
    """Undo the last change."""
    if not _get_session().undo():
        raise HTTPException(status_code=409, detail="Nothing to undo")
    return _get_session().history_status()


@app.post("/history/redo")
async def redo():
    """Redo the last undone change."""
    if not _get_session().redo():
        raise HTTPException(status_code=409, detail="Nothing to redo")
    return _get_session().history_status()


# Resource cache endpoints
@app.get("/resources")
async def load_resource(id: str = Query(..., description="Resource id")):
    """Load a full resource body through the virtualized cache."""
    if cache is None:
        raise HTTPException(status_code=503, detail="Cache not initialized")
    body = await cache.load_full(id)
    if body is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return body


@app.get("/cache/stats")
async def cache_stats():
    """Cache occupancy."""
    if cache is None:
        raise HTTPException(status_code=503, detail="Cache not initialized")
    return cache.get_cache_stats()


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "FieldVault API",
        "version": "1.0.0",
        "description": "Normalized IIIF archive store with soft delete and undo",
        "docs": "/docs",
        "health": "/health",
    }

