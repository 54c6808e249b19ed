"""SQLite persistent cache for resolved names.

Implements the PersistentCache contract on top of aiosqlite. The connection
is opened lazily on first use and re-opened after ``close``, so a closed
cache can still be read from later.

All operations catch ``aiosqlite.Error`` internally and degrade gracefully:
read failures return ``None`` (treated as cache miss by callers), write
failures are logged and ignored (the resolved key is still returned).
Infrastructure errors never cross the SQLiteCache class boundary.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from hyperlookup.config import CacheSettings
from hyperlookup.protocols import PersistentCache

if TYPE_CHECKING:
    from hyperlookup.models.cache import CacheEntry

log = structlog.get_logger()

_CREATE_NAMES_TABLE = """
CREATE TABLE IF NOT EXISTS names (
    name     TEXT NOT NULL,
    protocol TEXT NOT NULL,
    key      TEXT,
    expires  REAL NOT NULL,
    PRIMARY KEY (name, protocol)
)
"""

_CREATE_EXPIRES_INDEX = "CREATE INDEX IF NOT EXISTS idx_names_expires ON names(expires)"


class SQLiteCache(PersistentCache):
    """SQLite-backed name cache implementing the PersistentCache contract."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        wal_check_interval_seconds: float = 60,
        max_wal_size: int = 10 * 1024 * 1024,
    ) -> None:
        self.db_path = str(db_path) if db_path is not None else CacheSettings().db_path
        self.wal_check_interval_seconds = wal_check_interval_seconds
        self.max_wal_size = max_wal_size
        self._db: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()
        self._last_wal_check = time.monotonic()

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> SQLiteCache:
        return cls(
            settings.db_path,
            wal_check_interval_seconds=settings.wal_check_interval_seconds,
            max_wal_size=settings.max_wal_size,
        )

    async def _connection(self) -> aiosqlite.Connection:
        """Open the database and create the schema on first use."""
        async with self._open_lock:
            if self._db is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                db = await aiosqlite.connect(self.db_path)
                try:
                    await db.execute("PRAGMA journal_mode = WAL")
                    await db.execute(_CREATE_NAMES_TABLE)
                    await db.execute(_CREATE_EXPIRES_INDEX)
                    await db.commit()
                except aiosqlite.Error:
                    await db.close()
                    raise
                self._db = db
                log.debug("sqlite_cache_opened", path=self.db_path)
            return self._db

    async def read(self, name: str) -> dict | None:
        """Return ``{"keys": {...}, "expires": <ms>}`` or ``None`` on miss or failure.

        Only unexpired rows are returned; the entry expires with the earliest.
        """
        try:
            db = await self._connection()
            cursor = await db.execute(
                "SELECT protocol, key, expires FROM names WHERE name = ? AND expires > ?",
                (name, time.time() * 1000),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("cache_read_error", key=name, exc_info=True)
            return None

        if not rows:
            return None
        return {
            "keys": {row[0]: row[1] for row in rows},
            "expires": min(row[2] for row in rows),
        }

    async def write(self, entry: CacheEntry) -> None:
        """Upsert one row per protocol of ``entry``. Non-fatal on failure.

        Rows stored for other protocols of the same name are left in place.
        """
        try:
            db = await self._connection()
            await db.executemany(
                "INSERT OR REPLACE INTO names (name, protocol, key, expires) VALUES (?, ?, ?, ?)",
                [
                    (entry.name, protocol, key, entry.expires)
                    for protocol, key in entry.keys.items()
                ],
            )
            await db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=entry.name, exc_info=True)
            return
        await self._checkpoint_if_due()

    async def clear_name(self, name: str) -> None:
        await self._execute(
            "DELETE FROM names WHERE name = ?", (name,), event="cache_clear_name_error"
        )

    async def clear(self) -> None:
        await self._execute("DELETE FROM names", (), event="cache_clear_error")

    async def flush(self) -> None:
        """Delete entries that have already expired. Non-fatal on failure."""
        await self._execute(
            "DELETE FROM names WHERE expires <= ?",
            (time.time() * 1000,),
            event="cache_flush_error",
        )

    async def close(self) -> None:
        async with self._open_lock:
            if self._db is None:
                return
            db, self._db = self._db, None
        try:
            await db.close()
        except aiosqlite.Error:
            log.warning("cache_close_error", exc_info=True)

    async def _execute(self, sql: str, params: tuple, *, event: str) -> None:
        try:
            db = await self._connection()
            cursor = await db.execute(sql, params)
            await db.commit()
            log.debug("cache_rows_deleted", rows=cursor.rowcount)
        except aiosqlite.Error:
            log.warning(event, exc_info=True)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def _checkpoint_if_due(self) -> None:
        """Truncate the WAL once it outgrows ``max_wal_size``, at most once per interval."""
        now = time.monotonic()
        if now - self._last_wal_check < self.wal_check_interval_seconds:
            return
        self._last_wal_check = now

        wal_path = Path(f"{self.db_path}-wal")
        try:
            wal_size = wal_path.stat().st_size
        except OSError:
            return
        if wal_size <= self.max_wal_size:
            return

        try:
            db = await self._connection()
            await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            log.info("cache_wal_checkpoint", wal_size=wal_size)
        except aiosqlite.Error:
            log.warning("cache_wal_checkpoint_error", exc_info=True)
