"""
Services for FieldVault.

High-level services over vault snapshots:
- TrashService: Soft delete, restore and retention cleanup
- VirtualizedCache: Stub index and byte-bounded LRU of full bodies
- HistoryManager: Undo/redo with grouped undo units
- ArchiveSession: Stateful document facade used by the API
- ResourceSync: Write-through of session changes into the resource cache
"""

from fieldvault.services.archive_session import ArchiveSession
from fieldvault.services.history import HistoryEntry, HistoryManager, HistoryStatus
from fieldvault.services.resource_sync import ResourceSync
from fieldvault.services.trash_service import TrashService
from fieldvault.services.virtualized_cache import VirtualizedCache

__all__ = [
    "ArchiveSession",
    "HistoryManager",
    "HistoryEntry",
    "HistoryStatus",
    "ResourceSync",
    "TrashService",
    "VirtualizedCache",
]
