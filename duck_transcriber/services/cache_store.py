"""Key-value store backends for cached transcriptions.

Both backends hold one row per content id with one field per task type plus a
shared ``expires_at`` (unix seconds).
"""

import asyncio
import os
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

from duck_transcriber.config import Settings
from duck_transcriber.exceptions import CacheError, DuplicateKeyError
from duck_transcriber.models import TaskType

ROW_ID_FIELD = "id"
EXPIRES_AT_FIELD = "expires_at"

# Claims, fills and expires a new row atomically
INSERT_ROW_SCRIPT = """
if redis.call('HSETNX', KEYS[1], 'id', ARGV[1]) == 0 then
    return 0
end
redis.call('HSET', KEYS[1], ARGV[2], ARGV[3], 'expires_at', ARGV[4])
redis.call('EXPIREAT', KEYS[1], ARGV[4])
return 1
"""


class CacheStore(ABC):
    """Row-oriented store keyed by content id."""

    @abstractmethod
    async def fetch_row(self, content_id: str) -> Optional[Dict[str, Any]]:
        """Return the live row for content_id, or None if there is none."""
        pass

    @abstractmethod
    async def insert_row(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        """Create a row with one populated column. Raises DuplicateKeyError if it exists."""
        pass

    @abstractmethod
    async def set_column(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        """Set one column on the row and move its expiry."""
        pass

    async def close(self) -> None:
        return None


class RedisCacheStore(CacheStore):
    """Redis hashes at ``{prefix}:{content_id}`` with native key expiry."""

    def __init__(
        self,
        url: str,
        prefix: str,
        timeout_seconds: float = 2.0,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self.url = url
        self.prefix = prefix
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _key(self, content_id: str) -> str:
        return f"{self.prefix}:{content_id}"

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.url,
                decode_responses=True,
                socket_timeout=self.timeout_seconds,
            )
        return self._client

    async def _run(self, coro: Any) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            raise CacheError(f"Redis operation failed: {e}") from e

    async def fetch_row(self, content_id: str) -> Optional[Dict[str, Any]]:
        client = self._get_client()
        row = await self._run(client.hgetall(self._key(content_id)))
        if not row:
            return None
        row = dict(row)
        if EXPIRES_AT_FIELD in row:
            row[EXPIRES_AT_FIELD] = int(row[EXPIRES_AT_FIELD])
        return row

    async def insert_row(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        client = self._get_client()
        key = self._key(content_id)
        claimed = await self._run(
            client.eval(
                INSERT_ROW_SCRIPT,
                1,
                key,
                content_id,
                column,
                text,
                expires_at,
            )
        )
        if not claimed:
            raise DuplicateKeyError(f"Row already exists for {content_id}")

    async def set_column(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        client = self._get_client()
        key = self._key(content_id)
        async with client.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={ROW_ID_FIELD: content_id, column: text, EXPIRES_AT_FIELD: expires_at},
            )
            pipe.expireat(key, expires_at)
            await self._run(pipe.execute())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


@contextmanager
def get_conn(path: str):
    conn = sqlite3.connect(path)
    try:
        conn.row_factory = sqlite3.Row
        yield conn
        conn.commit()
    finally:
        conn.close()


class SqliteCacheStore(CacheStore):
    """SQLite table with one nullable TEXT column per task type.

    Expired rows are invisible to reads and are removed by ``purge_expired``.
    """

    def __init__(self, path: str, table: str, clock=time.time) -> None:
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid cache table name: {table!r}")
        self.path = path
        self.table = table
        self.clock = clock
        self.columns = tuple(task.value for task in TaskType)

    def ensure_db(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        task_columns = ", ".join(f"{column} TEXT" for column in self.columns)
        with get_conn(self.path) as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT PRIMARY KEY,
                    {task_columns},
                    expires_at INTEGER NOT NULL
                )
                """
            )

    def _check_column(self, column: str) -> None:
        if column not in self.columns:
            raise CacheError(f"Unknown cache column: {column}")

    def _fetch_row(self, content_id: str) -> Optional[Dict[str, Any]]:
        with get_conn(self.path) as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table} WHERE id = ? AND expires_at > ?",
                (content_id, int(self.clock())),
            ).fetchone()
        if row is None:
            return None
        return {key: row[key] for key in row.keys() if row[key] is not None}

    def _insert_row(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        self._check_column(column)
        with get_conn(self.path) as conn:
            # An expired row no longer counts as existing
            conn.execute(
                f"DELETE FROM {self.table} WHERE id = ? AND expires_at <= ?",
                (content_id, int(self.clock())),
            )
            try:
                conn.execute(
                    f"INSERT INTO {self.table} (id, {column}, expires_at) VALUES (?, ?, ?)",
                    (content_id, text, expires_at),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateKeyError(f"Row already exists for {content_id}") from e

    def _set_column(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        self._check_column(column)
        with get_conn(self.path) as conn:
            conn.execute(
                f"""
                INSERT INTO {self.table} (id, {column}, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    {column} = excluded.{column},
                    expires_at = excluded.expires_at
                """,
                (content_id, text, expires_at),
            )

    def _purge_expired(self) -> int:
        with get_conn(self.path) as conn:
            cur = conn.execute(
                f"DELETE FROM {self.table} WHERE expires_at <= ?", (int(self.clock()),)
            )
            return cur.rowcount

    async def _run(self, func, *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            raise CacheError(f"SQLite operation failed: {e}") from e

    async def fetch_row(self, content_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._fetch_row, content_id)

    async def insert_row(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        await self._run(self._insert_row, content_id, column, text, expires_at)

    async def set_column(self, content_id: str, column: str, text: str, expires_at: int) -> None:
        await self._run(self._set_column, content_id, column, text, expires_at)

    async def purge_expired(self) -> int:
        removed = await self._run(self._purge_expired)
        if removed:
            logger.info(f"Purged {removed} expired cache rows")
        return removed


def create_cache_store(settings: Settings) -> CacheStore:
    """
    Create the cache store selected by CACHE_BACKEND.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = settings.cache_backend.lower()
    if backend == "redis":
        logger.info(f"Using Redis cache store with prefix '{settings.cache_table}'")
        return RedisCacheStore(url=settings.redis_url, prefix=settings.cache_table)
    if backend == "sqlite":
        logger.info(f"Using SQLite cache store at {settings.cache_db_path}")
        store = SqliteCacheStore(path=settings.cache_db_path, table=settings.cache_table)
        store.ensure_db()
        return store
    raise ValueError(f"Unknown CACHE_BACKEND: {settings.cache_backend}")
