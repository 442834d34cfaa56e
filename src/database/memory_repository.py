"""Memory record storage.

``MemoryRepository`` is the storage contract the engine reads from;
``SQLiteMemoryRepository`` implements it on aiosqlite. Every failure is
surfaced as ``StorageError``.
"""

import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite
import numpy as np
from ulid import ULID

from src.core.exceptions import StorageError
from src.core.logging import get_logger
from src.memory.models import MemoryRecord

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    url TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL DEFAULT '',
    summary TEXT NOT NULL DEFAULT '',
    embedding BLOB NOT NULL,
    created_at TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    visit_count INTEGER NOT NULL DEFAULT 1,
    last_accessed TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories(created_at);
"""

SORTABLE_COLUMNS = {"created_at", "last_accessed", "visit_count"}
UPDATABLE_FIELDS = {"title", "summary", "embedding", "tags", "visit_count", "last_accessed"}


class MemoryRepository(ABC):
    """Storage contract for memory records.

    ``get_all`` returns records in storage (insertion) order unless a sort
    column is given.
    """

    @abstractmethod
    async def get_all(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_by: Optional[str] = None,
        order: str = "asc",
    ) -> List[MemoryRecord]:
        ...

    @abstractmethod
    async def get_by_id(self, memory_id: str) -> Optional[MemoryRecord]:
        ...

    @abstractmethod
    async def get_by_url(self, url: str) -> Optional[MemoryRecord]:
        ...

    @abstractmethod
    async def create(
        self,
        url: str,
        title: str,
        summary: str,
        embedding: List[float],
        tags: Optional[List[str]] = None,
    ) -> MemoryRecord:
        ...

    @abstractmethod
    async def update(self, memory_id: str, **updates: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, memory_id: str) -> None:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    async def increment_visit_count(self, memory_id: str) -> None:
        """Bump the visit counter and refresh last_accessed."""
        memory = await self.get_by_id(memory_id)
        if memory is not None:
            await self.update(
                memory_id,
                visit_count=memory.visit_count + 1,
                last_accessed=datetime.now(),
            )

    @abstractmethod
    async def clear(self) -> None:
        ...


class SQLiteMemoryRepository(MemoryRepository):
    """SQLite-backed memory repository.

    Embeddings are stored as float32 blobs, tags as JSON arrays.
    """

    def __init__(self, db_path: str = "./data/web_brain.db"):
        """Initialize the repository.

        Args:
            db_path: Path to the SQLite file, or ":memory:" for tests
        """
        self.db_path = db_path
        # In-memory databases vanish with their connection, so keep one open
        self._is_memory = (db_path == ":memory:")
        self._conn: Optional[aiosqlite.Connection] = None
        self._initialized = False
        if not self._is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self) -> None:
        """Create the schema if needed."""
        if self._initialized:
            return

        try:
            if self._is_memory:
                self._conn = await aiosqlite.connect(self.db_path)
                await self._conn.executescript(SCHEMA)
                await self._conn.commit()
            else:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.executescript(SCHEMA)
                    await db.commit()
        except aiosqlite.Error as e:
            raise StorageError("Failed to initialize memory database", e) from e

        self._initialized = True
        logger.info("memory_database_initialized", path=self.db_path)

    async def close(self) -> None:
        """Close the persistent connection (in-memory databases only)."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    @asynccontextmanager
    async def _connection(self):
        if not self._initialized:
            await self.initialize()
        if self._is_memory:
            yield self._conn
        else:
            async with aiosqlite.connect(self.db_path) as db:
                yield db

    @staticmethod
    def _encode_embedding(embedding: List[float]) -> bytes:
        return np.asarray(embedding, dtype=np.float32).tobytes()

    @staticmethod
    def _decode_embedding(blob: bytes) -> List[float]:
        return np.frombuffer(blob, dtype=np.float32).astype(float).tolist()

    def _row_to_record(self, row: aiosqlite.Row) -> MemoryRecord:
        return MemoryRecord(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            summary=row["summary"],
            embedding=self._decode_embedding(row["embedding"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            tags=json.loads(row["tags"]),
            visit_count=row["visit_count"],
            last_accessed=datetime.fromisoformat(row["last_accessed"]),
        )

    async def _fetch(self, sql: str, params: tuple = ()) -> List[MemoryRecord]:
        try:
            async with self._connection() as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError("Failed to retrieve memories", e) from e
        return [self._row_to_record(row) for row in rows]

    async def _execute(self, sql: str, params: tuple, failure: str) -> int:
        try:
            async with self._connection() as db:
                cursor = await db.execute(sql, params)
                await db.commit()
                return cursor.rowcount
        except aiosqlite.Error as e:
            raise StorageError(failure, e) from e

    async def get_all(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_by: Optional[str] = None,
        order: str = "asc",
    ) -> List[MemoryRecord]:
        """Fetch records, in insertion order unless ``sort_by`` is given.

        Args:
            limit: Maximum records
            offset: Records to skip
            sort_by: One of created_at, last_accessed, visit_count
            order: "asc" or "desc"
        """
        if sort_by is not None and sort_by not in SORTABLE_COLUMNS:
            raise ValueError(f"Cannot sort by {sort_by!r}")
        direction = "DESC" if order == "desc" else "ASC"
        column = sort_by or "seq"

        sql = f"SELECT * FROM memories ORDER BY {column} {direction}, seq ASC"
        params: tuple = ()
        if limit is not None or offset:
            sql += " LIMIT ? OFFSET ?"
            params = (limit if limit is not None else -1, offset or 0)
        return await self._fetch(sql, params)

    async def get_by_id(self, memory_id: str) -> Optional[MemoryRecord]:
        records = await self._fetch("SELECT * FROM memories WHERE id = ?", (memory_id,))
        return records[0] if records else None

    async def get_by_url(self, url: str) -> Optional[MemoryRecord]:
        records = await self._fetch("SELECT * FROM memories WHERE url = ?", (url,))
        return records[0] if records else None

    async def create(
        self,
        url: str,
        title: str,
        summary: str,
        embedding: List[float],
        tags: Optional[List[str]] = None,
    ) -> MemoryRecord:
        """Store a new memory with a fresh ULID and visit_count 1."""
        now = datetime.now()
        record = MemoryRecord(
            id=str(ULID()),
            url=url,
            title=title,
            summary=summary,
            embedding=list(embedding),
            created_at=now,
            tags=tags or [],
            visit_count=1,
            last_accessed=now,
        )
        await self._execute(
            """
            INSERT INTO memories
                (id, url, title, summary, embedding, created_at, tags, visit_count, last_accessed)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.url,
                record.title,
                record.summary,
                self._encode_embedding(record.embedding),
                record.created_at.isoformat(),
                json.dumps(record.tags),
                record.visit_count,
                record.last_accessed.isoformat(),
            ),
            "Failed to create memory",
        )
        logger.info("memory_created", memory_id=record.id, url=url)
        return record

    async def update(self, memory_id: str, **updates: Any) -> None:
        """Update mutable fields of a memory.

        Raises:
            ValueError: If an unknown or immutable field is given
        """
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if not updates:
            return

        columns: Dict[str, Any] = {}
        for key, value in updates.items():
            if key == "embedding":
                value = self._encode_embedding(value)
            elif key == "tags":
                value = json.dumps(value)
            elif key == "last_accessed":
                value = value.isoformat()
            columns[key] = value

        assignments = ", ".join(f"{key} = ?" for key in columns)
        await self._execute(
            f"UPDATE memories SET {assignments} WHERE id = ?",
            (*columns.values(), memory_id),
            "Failed to update memory",
        )

    async def delete(self, memory_id: str) -> None:
        await self._execute(
            "DELETE FROM memories WHERE id = ?", (memory_id,), "Failed to delete memory"
        )

    async def count(self) -> int:
        try:
            async with self._connection() as db:
                async with db.execute("SELECT COUNT(*) FROM memories") as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError("Failed to count memories", e) from e
        return row[0]

    async def clear(self) -> None:
        await self._execute("DELETE FROM memories", (), "Failed to clear memories")
        logger.info("memories_cleared")
