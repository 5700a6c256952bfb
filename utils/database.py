"""
Database module for the regional pokedex cache using SQLite.

Holds one denormalized row per (region, dex id) pair together with its
embedded forms list, and serves count, clear and paged reads per region.
"""

import asyncio
import json
import logging
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import aiosqlite

from config.settings import DB_CONNECTION_STRING
from utils.api_models import RegionEntry, RegionPage, VarietyInfo

logger = logging.getLogger("regiondex.database")


class Database:
    """
    Async upsert-by-natural-key store for regional pokedex rows.
    Currently supports SQLite via aiosqlite.

    Schema:
    - **regional_dex**: One row per (region, dex_id).
      Columns: region, dex_id (composite PK), name, types (JSON list),
      sprite, forms (JSON list of VarietyInfo), updated_at.

    Concurrency:
        Writes are single-statement upserts serialized per natural key with
        an `asyncio.Lock` keyed by (region, dex_id); there is no table-wide
        lock, so ingestion jobs for distinct keys interleave freely and reads
        never wait on an in-flight ingestion.
    """

    def __init__(self, connection_string: str = DB_CONNECTION_STRING):
        """
        Initialize the database instance.

        Args:
            connection_string: The connection URI (e.g., 'sqlite:///data/regiondex.db'
                or 'sqlite:///:memory:').
        """
        self.connection_string = connection_string
        self._conn: Optional[aiosqlite.Connection] = None
        self._key_locks: Dict[Tuple[str, int], asyncio.Lock] = defaultdict(asyncio.Lock)

        # Parse connection details
        self.db_type, self.db_path = self._parse_connection_string(connection_string)

    def _parse_connection_string(self, conn_str: str) -> Tuple[str, str]:
        """
        Parse connection string to determine database type and path.

        Args:
            conn_str: Connection string in format 'scheme:///path'.

        Returns:
            Tuple containing (scheme, path).
        """
        # Handle simple sqlite paths manually to avoid os-specific parsing issues
        if conn_str.startswith("sqlite:///"):
            return "sqlite", conn_str.replace("sqlite:///", "", 1)

        parsed = urlparse(conn_str)
        return parsed.scheme, parsed.path

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """
        Initialize database connection and create tables.

        Raises:
            ValueError: If the database type is not supported (currently only 'sqlite').
        """
        if self.db_type == "sqlite":
            await self._connect_sqlite()
        else:
            raise ValueError(
                f"Unsupported database type: {self.db_type}. Only 'sqlite' is currently supported."
            )

    async def _connect_sqlite(self) -> None:
        """Internal method to establish connection to SQLite file."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._create_tables()
        logger.info(f"Database connected ({self.db_type}): {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    async def _create_tables(self) -> None:
        """Create database tables and indexes if they don't exist."""
        await self._conn.execute(  # type: ignore
            """
            CREATE TABLE IF NOT EXISTS regional_dex (
                region TEXT NOT NULL,
                dex_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                types TEXT NOT NULL,
                sprite TEXT,
                forms TEXT NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (region, dex_id)
            )
        """
        )
        await self._conn.commit()  # type: ignore
        logger.info("Database tables initialized")

    async def ping(self) -> bool:
        """Run a trivial query to prove the connection is usable."""
        cursor = await self._conn.execute("SELECT 1")  # type: ignore
        row = await cursor.fetchone()
        return row is not None and row[0] == 1

    # ==================== REGIONAL DEX ====================

    async def upsert_entry(
        self,
        region: str,
        dex_id: int,
        name: str,
        types: Sequence[str],
        sprite: Optional[str],
        forms: Sequence[VarietyInfo],
    ) -> None:
        """
        Replace the full row for (region, dex_id), inserting it if missing.

        Replace semantics: every column is overwritten, nothing is merged
        with the previous row.

        Args:
            region: Lowercase region identifier.
            dex_id: National dex number.
            name: Species name.
            types: Base variety type names.
            sprite: Base variety artwork URL.
            forms: Every variety of the species.
        """
        key = (region, dex_id)
        async with self._key_locks[key]:
            await self._conn.execute(  # type: ignore
                """
                INSERT INTO regional_dex (region, dex_id, name, types, sprite, forms, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(region, dex_id) DO UPDATE SET
                    name = excluded.name,
                    types = excluded.types,
                    sprite = excluded.sprite,
                    forms = excluded.forms,
                    updated_at = excluded.updated_at
                """,
                (
                    region,
                    dex_id,
                    name,
                    json.dumps(list(types)),
                    sprite,
                    json.dumps([dict(f) for f in forms]),
                    time.time(),
                ),
            )
            await self._conn.commit()  # type: ignore

        logger.debug(f"Upserted {region}#{dex_id} ({name})")

    async def count_by_region(self, region: str) -> int:
        """Number of cached rows for a region."""
        cursor = await self._conn.execute(  # type: ignore
            "SELECT COUNT(*) AS count FROM regional_dex WHERE region = ?",
            (region,),
        )
        row = await cursor.fetchone()
        return int(row["count"])  # type: ignore

    async def clear_region(self, region: str) -> int:
        """
        Delete every cached row for a region.

        Returns:
            Number of rows removed.
        """
        cursor = await self._conn.execute(  # type: ignore
            "DELETE FROM regional_dex WHERE region = ?", (region,)
        )
        await self._conn.commit()  # type: ignore
        deleted = cursor.rowcount

        # Drop idle per-key locks; a held lock stays with its waiters
        idle = [
            key
            for key, lock in self._key_locks.items()
            if key[0] == region and not lock.locked()
        ]
        for key in idle:
            del self._key_locks[key]

        logger.info(f"Cleared {deleted} cached rows for region {region}")
        return deleted

    async def page(self, region: str, limit: int, offset: int) -> RegionPage:
        """
        Read a page of a region's rows ordered by ascending dex id.

        Count and slice are two independent reads: concurrent upserts may land
        between them (read-committed, no cross-row snapshot).

        Args:
            region: Lowercase region identifier.
            limit: Maximum rows to return.
            offset: Rows to skip.

        Returns:
            RegionPage with ``hasMore = offset + limit < totalCount``.
        """
        total = await self.count_by_region(region)

        cursor = await self._conn.execute(  # type: ignore
            """
            SELECT region, dex_id, name, types, sprite, forms
            FROM regional_dex
            WHERE region = ?
            ORDER BY dex_id ASC, name ASC
            LIMIT ? OFFSET ?
            """,
            (region, limit, offset),
        )
        rows = await cursor.fetchall()

        return {
            "results": [self._row_to_entry(row) for row in rows],
            "totalCount": total,
            "hasMore": offset + limit < total,
        }

    @staticmethod
    def _row_to_entry(row: Any) -> RegionEntry:
        forms: List[VarietyInfo] = json.loads(row["forms"])
        return {
            "region": row["region"],
            "dexId": row["dex_id"],
            "name": row["name"],
            "types": json.loads(row["types"]),
            "sprite": row["sprite"],
            "forms": forms,
        }


# Global database instance
_db_instance: Optional[Database] = None
# Lock for initialization
_db_init_lock = asyncio.Lock()


async def get_database() -> Database:
    """
    Get global database instance (Singleton pattern).

    Initializes and connects if not already connected.
    Uses double-checked locking to prevent race conditions during startup.

    Returns:
        The connected Database instance.
    """
    global _db_instance

    if _db_instance is None:
        async with _db_init_lock:
            # Check again inside lock to ensure another task didn't init while we waited
            if _db_instance is None:
                instance = Database()
                await instance.connect()
                # Only assign to global variable AFTER connection is fully established
                _db_instance = instance

    return _db_instance


async def close_database() -> None:
    """
    Close global database instance and cleanup resources.
    """
    global _db_instance
    if _db_instance is not None:
        await _db_instance.close()
        _db_instance = None
