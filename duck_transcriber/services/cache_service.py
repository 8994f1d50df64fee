"""Transcription cache keyed by (content id, task type)."""

import time

from loguru import logger

from duck_transcriber.models import CacheLookupResult, TaskType
from duck_transcriber.services.cache_store import CacheStore

SECONDS_PER_DAY = 24 * 60 * 60


class TranscriptionCache:
    """
    Cache of derived texts for one piece of media.

    A row per content id carries one column per task type and a single expiry,
    so "translate, then summarize" can reuse the translation and every write
    refreshes the lifetime of all derivatives of that media.
    """

    def __init__(self, store: CacheStore, ttl_days: int = 7, clock=time.time) -> None:
        self.store = store
        self.ttl_seconds = ttl_days * SECONDS_PER_DAY
        self.clock = clock

    def _expires_at(self, ttl_seconds: int | None = None) -> int:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return int(self.clock()) + ttl

    async def get(self, content_id: str, task_type: TaskType) -> CacheLookupResult:
        """
        Point lookup that tells "no row" apart from "row without this column".

        Raises:
            CacheError: If the store cannot be read
        """
        row = await self.store.fetch_row(content_id)
        if row is None:
            logger.info(f"No cache row for unique_file_id '{content_id}'")
            return CacheLookupResult.absent()

        text = row.get(task_type.value)
        if text is None:
            logger.info(f"Cache row for '{content_id}' exists but has no {task_type.value}")
            return CacheLookupResult.exists_for_other_task()

        logger.info(f"Cached {task_type.value} found for unique_file_id '{content_id}'")
        return CacheLookupResult.found(text)

    async def put_new(
        self, content_id: str, task_type: TaskType, text: str, ttl: int | None = None
    ) -> None:
        """
        Insert a new row. Not an upsert.

        Raises:
            DuplicateKeyError: If a row for content_id already exists
            CacheError: If the store cannot be written
        """
        logger.info(f"Inserting {task_type.value} for unique_file_id '{content_id}'")
        await self.store.insert_row(content_id, task_type.value, text, self._expires_at(ttl))

    async def update_existing(self, content_id: str, task_type: TaskType, text: str) -> None:
        """Add or overwrite one column and refresh the row expiry."""
        logger.info(f"Updating {task_type.value} for unique_file_id '{content_id}'")
        await self.store.set_column(content_id, task_type.value, text, self._expires_at())

    async def smart_put(self, content_id: str, task_type: TaskType, text: str) -> None:
        """
        Update the row if one exists, insert otherwise.

        Read-then-write, so concurrent deliveries can both see no row; the loser
        gets DuplicateKeyError from put_new.
        """
        lookup = await self.get(content_id, task_type)
        if lookup.row_exists:
            await self.update_existing(content_id, task_type, text)
        else:
            await self.put_new(content_id, task_type, text)
