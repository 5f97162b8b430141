"""Keyed stores on the general cache database.

This module provides three stores that share one SchemaManager connection:
- CacheStore: generic TTL key-value cache for memoized model calls
- EmailSummaryStore: summaries keyed by email thread id, with caller metadata
- WordDefinitionStore: definitions keyed by normalized word

Values are opaque to the stores and persisted as JSON.

Usage:
    from localcache.db.models import CACHE_SCHEMA, SchemaManager
    from localcache.db.store import CacheStore, EmailSummaryStore

    database = SchemaManager("data/cache.db", CACHE_SCHEMA)
    await database.open()

    cache = CacheStore(database)
    await cache.set("summary:abc123", {"text": "..."}, ttl=timedelta(hours=1))
    value = await cache.get("summary:abc123")

    summaries = EmailSummaryStore(database)
    await summaries.set("thread-1", {"bullets": [...]}, metadata={"email_count": 4})
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import aiosqlite

from localcache.core.errors import DatabaseError
from localcache.core.logging import get_logger
from localcache.db.models import SchemaManager

logger = get_logger(__name__)

DEFAULT_CACHE_TTL = timedelta(days=7)


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def normalize_word(word: str) -> str:
    """Lowercase and trim a word for use as a lookup key."""
    return word.strip().lower()


@dataclass
class CacheEntry:
    """Generic cache entry."""

    key: str
    value: Any
    written_at: datetime
    ttl: timedelta

    @property
    def expires_at(self) -> datetime:
        return self.written_at + self.ttl


@dataclass
class EmailSummary:
    """Cached email summary with the metadata stored alongside it."""

    email_id: str
    summary: Any
    written_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WordDefinition:
    """Cached definition for one word."""

    word: str
    definition: Any


class _CacheDatabaseStore:
    """Shared connection handling for stores on the cache database."""

    def __init__(self, database: SchemaManager):
        self._database = database

    @asynccontextmanager
    async def _db(self) -> AsyncIterator[aiosqlite.Connection]:
        yield self._database.connection


class CacheStore(_CacheDatabaseStore):
    """Generic TTL key-value cache.

    Expiry is pull-based: get() deletes an entry it finds expired. Entries
    that are never read again are only reclaimed by sweep().

    Concurrent writers to the same key are not coordinated; the last write wins.

    Attributes:
        default_ttl: TTL applied when set() is called without one
    """

    def __init__(
        self,
        database: SchemaManager,
        default_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(database)
        self.default_ttl = default_ttl
        self._clock = clock

    async def set(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        """Store a value, overwriting any existing entry for the key.

        Args:
            key: Cache key (e.g. a fingerprint of the model input)
            value: JSON-serializable value
            ttl: Time-to-live; defaults to default_ttl

        Raises:
            ValueError: If ttl is not positive
            DatabaseError: If the write fails
        """
        ttl = self.default_ttl if ttl is None else ttl
        ttl_ms = int(ttl.total_seconds() * 1000)
        if ttl_ms <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl}")

        value_json = json.dumps(value)
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO generic_cache (key, value_json, written_at_ms, ttl_ms)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        written_at_ms = excluded.written_at_ms,
                        ttl_ms = excluded.ttl_ms
                    """,
                    (key, value_json, _now_ms(self._clock), ttl_ms),
                )
                await db.commit()
                logger.debug("Cache entry saved", key=key, ttl_ms=ttl_ms)

        except aiosqlite.Error as e:
            logger.error("Failed to save cache entry", key=key, error=str(e))
            raise DatabaseError(f"Failed to save cache entry {key}: {e}") from e

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Get a live cache entry, deleting it if it has expired.

        Returns:
            CacheEntry, or None if absent or expired
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT * FROM generic_cache WHERE key = ?",
                    (key,),
                )
                row = await cursor.fetchone()

                if not row:
                    return None

                if _now_ms(self._clock) >= row["written_at_ms"] + row["ttl_ms"]:
                    await db.execute("DELETE FROM generic_cache WHERE key = ?", (key,))
                    await db.commit()
                    logger.debug("Expired cache entry removed on read", key=key)
                    return None

                return CacheEntry(
                    key=row["key"],
                    value=json.loads(row["value_json"]),
                    written_at=_from_ms(row["written_at_ms"]),
                    ttl=timedelta(milliseconds=row["ttl_ms"]),
                )

        except aiosqlite.Error as e:
            logger.error("Failed to get cache entry", key=key, error=str(e))
            raise DatabaseError(f"Failed to get cache entry {key}: {e}") from e

    async def get(self, key: str) -> Any | None:
        """Get a cached value.

        Returns:
            The stored value, or None if absent or expired
        """
        entry = await self.get_entry(key)
        return entry.value if entry else None

    async def delete(self, key: str) -> None:
        """Delete one entry. Deleting a missing key is not an error."""
        try:
            async with self._db() as db:
                await db.execute("DELETE FROM generic_cache WHERE key = ?", (key,))
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to delete cache entry", key=key, error=str(e))
            raise DatabaseError(f"Failed to delete cache entry {key}: {e}") from e

    async def clear_all(self) -> None:
        """Cache-wide clear: generic entries, email summaries and word definitions."""
        try:
            async with self._db() as db:
                for table in ("generic_cache", "email_summaries", "word_definitions"):
                    await db.execute(f"DELETE FROM {table}")
                await db.commit()
                logger.info("Cache cleared")

        except aiosqlite.Error as e:
            logger.error("Failed to clear cache", error=str(e))
            raise DatabaseError(f"Failed to clear cache: {e}") from e

    async def sweep(self) -> int:
        """Delete every expired entry.

        Returns:
            Number of entries removed
        """
        now_ms = _now_ms(self._clock)
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    DELETE FROM generic_cache
                    WHERE key IN (
                        SELECT key FROM generic_cache
                        WHERE written_at_ms + ttl_ms <= ?
                        ORDER BY written_at_ms
                    )
                    """,
                    (now_ms,),
                )
                await db.commit()
                removed = cursor.rowcount

                if removed:
                    logger.info("Swept expired cache entries", count=removed)
                return removed

        except aiosqlite.Error as e:
            logger.error("Failed to sweep cache", error=str(e))
            raise DatabaseError(f"Failed to sweep cache: {e}") from e

    async def count(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        try:
            async with self._db() as db:
                cursor = await db.execute("SELECT COUNT(*) FROM generic_cache")
                row = await cursor.fetchone()
                return row[0] if row else 0

        except aiosqlite.Error as e:
            logger.error("Failed to count cache entries", error=str(e))
            raise DatabaseError(f"Failed to count cache entries: {e}") from e


class EmailSummaryStore(_CacheDatabaseStore):
    """Email summaries keyed by thread id.

    There is no expiry. Callers decide staleness from the returned metadata,
    e.g. regenerate when the thread now has more messages than email_count.
    """

    def __init__(self, database: SchemaManager, clock: Callable[[], float] = time.time):
        super().__init__(database)
        self._clock = clock

    async def set(
        self,
        email_id: str,
        summary: Any,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Save or replace the summary for an email thread.

        Args:
            email_id: Thread identifier
            summary: JSON-serializable summary
            metadata: Caller fields stored alongside (e.g. {"email_count": 3})

        Raises:
            DatabaseError: If the write fails
        """
        summary_json = json.dumps(summary)
        metadata_json = json.dumps(metadata or {})
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO email_summaries (email_id, summary_json, written_at_ms, metadata_json)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(email_id) DO UPDATE SET
                        summary_json = excluded.summary_json,
                        written_at_ms = excluded.written_at_ms,
                        metadata_json = excluded.metadata_json
                    """,
                    (email_id, summary_json, _now_ms(self._clock), metadata_json),
                )
                await db.commit()
                logger.debug("Email summary saved", email_id=email_id)

        except aiosqlite.Error as e:
            logger.error("Failed to save email summary", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to save email summary {email_id}: {e}") from e

    async def get(self, email_id: str) -> EmailSummary | None:
        """Get the cached summary for an email thread, or None."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT * FROM email_summaries WHERE email_id = ?",
                    (email_id,),
                )
                row = await cursor.fetchone()

                if not row:
                    return None

                return EmailSummary(
                    email_id=row["email_id"],
                    summary=json.loads(row["summary_json"]),
                    written_at=_from_ms(row["written_at_ms"]),
                    metadata=json.loads(row["metadata_json"] or "{}"),
                )

        except aiosqlite.Error as e:
            logger.error("Failed to get email summary", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to get email summary {email_id}: {e}") from e

    async def delete(self, email_id: str) -> None:
        try:
            async with self._db() as db:
                await db.execute("DELETE FROM email_summaries WHERE email_id = ?", (email_id,))
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to delete email summary", email_id=email_id, error=str(e))
            raise DatabaseError(f"Failed to delete email summary {email_id}: {e}") from e

    async def clear(self) -> None:
        try:
            async with self._db() as db:
                await db.execute("DELETE FROM email_summaries")
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to clear email summaries", error=str(e))
            raise DatabaseError(f"Failed to clear email summaries: {e}") from e


class WordDefinitionStore(_CacheDatabaseStore):
    """Definitions keyed by lowercase, trimmed word. No expiry."""

    async def set(self, word: str, definition: Any) -> None:
        """Save or replace the definition for a word.

        Raises:
            DatabaseError: If the write fails
        """
        key = normalize_word(word)
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO word_definitions (word, definition_json) VALUES (?, ?)
                    ON CONFLICT(word) DO UPDATE SET definition_json = excluded.definition_json
                    """,
                    (key, json.dumps(definition)),
                )
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to save word definition", word=key, error=str(e))
            raise DatabaseError(f"Failed to save definition for '{key}': {e}") from e

    async def get(self, word: str) -> Any | None:
        """Get the stored definition for a word, or None."""
        entry = await self.get_entry(word)
        return entry.definition if entry else None

    async def get_entry(self, word: str) -> WordDefinition | None:
        key = normalize_word(word)
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT word, definition_json FROM word_definitions WHERE word = ?",
                    (key,),
                )
                row = await cursor.fetchone()
                if not row:
                    return None
                return WordDefinition(word=row["word"], definition=json.loads(row["definition_json"]))

        except aiosqlite.Error as e:
            logger.error("Failed to get word definition", word=key, error=str(e))
            raise DatabaseError(f"Failed to get definition for '{key}': {e}") from e

    async def delete(self, word: str) -> None:
        key = normalize_word(word)
        try:
            async with self._db() as db:
                await db.execute("DELETE FROM word_definitions WHERE word = ?", (key,))
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to delete word definition", word=key, error=str(e))
            raise DatabaseError(f"Failed to delete definition for '{key}': {e}") from e

    async def clear(self) -> None:
        try:
            async with self._db() as db:
                await db.execute("DELETE FROM word_definitions")
                await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to clear word definitions", error=str(e))
            raise DatabaseError(f"Failed to clear word definitions: {e}") from e
