# manages connection to the local key-value store, provides raw get/put by key
import asyncio
import os.path
from contextlib import asynccontextmanager
from typing import Optional

import aiosqlite

from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = config.DB_PATH
SCHEMA_VERSION = 1

_initialized = False
_init_lock = asyncio.Lock()


async def _init_db(conn: aiosqlite.Connection) -> None:
    await conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS store (
            key   TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS meta (
            key   TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )
    await conn.execute(
        "INSERT OR IGNORE INTO meta(key, value) VALUES ('schema_version', ?);",
        (str(SCHEMA_VERSION),),
    )
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection to the local store.

    Creates the parent directory and the tables on first use.
    """
    global _initialized
    parent = os.path.dirname(DB_PATH)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)
    conn = await aiosqlite.connect(DB_PATH)
    try:
        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    if not await _table_exists(conn, "store"):
                        _logger.info(f"Initializing local store at {DB_PATH}...")
                        await _init_db(conn)
                    _initialized = True
        yield conn
    finally:
        await conn.close()


async def schema_version() -> Optional[int]:
    async with connect() as conn:
        cur = await conn.execute("SELECT value FROM meta WHERE key = 'schema_version';")
        row = await cur.fetchone()
        await cur.close()
    return int(row[0]) if row else None


async def read_key(key: str) -> Optional[str]:
    """Raw stored text for ``key``, or None if never written."""
    async with connect() as conn:
        cur = await conn.execute("SELECT value FROM store WHERE key = ?;", (key,))
        row = await cur.fetchone()
        await cur.close()
    return row[0] if row else None


async def write_key(key: str, value: str) -> None:
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO store(key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value;
            """,
            (key, value),
        )
        await conn.commit()


async def delete_key(key: str) -> None:
    async with connect() as conn:
        await conn.execute("DELETE FROM store WHERE key = ?;", (key,))
        await conn.commit()
