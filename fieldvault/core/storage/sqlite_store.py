"""
SQLite resource storage using aiosqlite.

Bodies are stored as JSON text keyed by resource id.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from fieldvault.core.storage.base import ResourceStorage
from fieldvault.utils.exceptions import StorageError
from fieldvault.utils.logger import get_logger

logger = get_logger(__name__)


class SQLiteResourceStorage(ResourceStorage):
    """
    SQLite-based block storage for full resource bodies.

    Features:
    - Local single-file storage
    - WAL journal for concurrent readers
    - INSERT OR REPLACE upserts
    """

    def __init__(self, db_path: str = "data/fieldvault.db"):
        """
        Initialize SQLite resource storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            self.connection = await aiosqlite.connect(self.db_path)
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.commit()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS resources (
                id TEXT PRIMARY KEY,
                type TEXT,
                body TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """
        )
        await self.connection.execute("CREATE INDEX IF NOT EXISTS idx_resources_type ON resources(type)")
        await self.connection.commit()
        logger.info(f"SQLite resource storage ready at {self.db_path}")

    # ═══════════════════════════════════════════════════════════
    # RESOURCE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def load_resource(self, resource_id: str) -> dict[str, Any] | None:
        """Load a resource body by ID."""
        await self.connect()

        try:
            cursor = await self.connection.execute("SELECT body FROM resources WHERE id = ?", (resource_id,))
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to load {resource_id}: {e}", context={"resource_id": resource_id}) from e

        if not row:
            return None

        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise StorageError(
                f"Stored body for {resource_id} is not valid JSON", context={"resource_id": resource_id}
            ) from e

    async def save_resource(self, resource_id: str, body: dict[str, Any]) -> None:
        """Store or replace a resource body."""
        await self.connect()

        try:
            await self.connection.execute(
                """
                INSERT OR REPLACE INTO resources (id, type, body, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    resource_id,
                    body.get("type"),
                    json.dumps(body),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            await self.connection.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to save {resource_id}: {e}", context={"resource_id": resource_id}) from e

    async def delete_resource(self, resource_id: str) -> None:
        """Delete a resource body."""
        await self.connect()

        await self.connection.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
        await self.connection.commit()

    async def count_resources(self) -> int:
        await self.connect()

        cursor = await self.connection.execute("SELECT COUNT(*) FROM resources")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def close(self) -> None:
        """Close the connection."""
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
