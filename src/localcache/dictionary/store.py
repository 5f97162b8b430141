"""Table operations on the dictionary database.

One table per Language holds (word, pos, definition) rows keyed by the
lowercased word. The meta table records which languages finished
downloading.

Every write is an upsert keyed by word. Replaying a shard after a crash
therefore rewrites the same rows instead of duplicating them, which is what
makes the non-transactional checkpoint safe. Do not turn these writes into
appends or counters.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

import aiosqlite

from localcache.core.errors import DatabaseError
from localcache.core.logging import get_logger
from localcache.db.languages import Language
from localcache.db.models import SchemaManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class DictionaryEntry:
    """One dictionary definition."""

    word: str
    pos: str | None = None
    definition: str | None = None


@dataclass(frozen=True)
class LanguageMeta:
    """Download status row for a language."""

    language: str
    downloaded: bool
    completed_at: datetime | None = None


class DictionaryStore:
    """CRUD over the per-language tables and the meta table."""

    def __init__(self, database: SchemaManager):
        self._database = database

    @property
    def database(self) -> SchemaManager:
        return self._database

    async def upsert_entries(self, language: Language, entries: Iterable[DictionaryEntry]) -> int:
        """Write a batch of entries in one transaction.

        Returns:
            Number of rows written
        """
        rows = [(entry.word.lower(), entry.pos, entry.definition) for entry in entries]
        if not rows:
            return 0

        try:
            db = self._database.connection
            await db.executemany(
                f"""
                INSERT INTO {language.table_name} (word, pos, definition) VALUES (?, ?, ?)
                ON CONFLICT(word) DO UPDATE SET
                    pos = excluded.pos,
                    definition = excluded.definition
                """,
                rows,
            )
            await db.commit()
            logger.debug("Batch saved dictionary entries", language=language.value, count=len(rows))
            return len(rows)

        except aiosqlite.Error as e:
            logger.error(
                "Failed to batch save dictionary entries",
                language=language.value,
                count=len(rows),
                error=str(e),
            )
            raise DatabaseError(f"Failed to save entries for {language.value}: {e}") from e

    async def get_entry(self, language: Language, word: str) -> DictionaryEntry | None:
        try:
            cursor = await self._database.connection.execute(
                f"SELECT word, pos, definition FROM {language.table_name} WHERE word = ?",
                (word,),
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return DictionaryEntry(word=row["word"], pos=row["pos"], definition=row["definition"])

        except aiosqlite.Error as e:
            logger.error("Failed to read dictionary entry", language=language.value, error=str(e))
            raise DatabaseError(f"Failed to read '{word}' from {language.value}: {e}") from e

    async def count(self, language: Language) -> int:
        try:
            cursor = await self._database.connection.execute(
                f"SELECT COUNT(*) FROM {language.table_name}"
            )
            row = await cursor.fetchone()
            return row[0] if row else 0

        except aiosqlite.Error as e:
            logger.error("Failed to count dictionary entries", language=language.value, error=str(e))
            raise DatabaseError(f"Failed to count entries for {language.value}: {e}") from e

    async def clear_language(self, language: Language) -> None:
        """Remove every entry and the meta row for a language in one transaction."""
        try:
            db = self._database.connection
            await db.execute(f"DELETE FROM {language.table_name}")
            await db.execute("DELETE FROM meta WHERE key = ?", (language.meta_key,))
            await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to clear language", language=language.value, error=str(e))
            raise DatabaseError(f"Failed to clear dictionary for {language.value}: {e}") from e

    async def get_meta(self, language: Language) -> LanguageMeta | None:
        try:
            cursor = await self._database.connection.execute(
                "SELECT * FROM meta WHERE key = ?",
                (language.meta_key,),
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return LanguageMeta(
                language=language.value,
                downloaded=bool(row["downloaded"]),
                completed_at=(
                    datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
                ),
            )

        except aiosqlite.Error as e:
            logger.error("Failed to read language meta", language=language.value, error=str(e))
            raise DatabaseError(f"Failed to read status of {language.value}: {e}") from e

    async def mark_downloaded(self, language: Language) -> None:
        try:
            db = self._database.connection
            await db.execute(
                """
                INSERT INTO meta (key, downloaded, completed_at) VALUES (?, 1, ?)
                ON CONFLICT(key) DO UPDATE SET
                    downloaded = 1,
                    completed_at = excluded.completed_at
                """,
                (language.meta_key, datetime.now().isoformat()),
            )
            await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to mark language downloaded", language=language.value, error=str(e))
            raise DatabaseError(f"Failed to mark {language.value} as downloaded: {e}") from e

    async def downloaded_languages(self) -> list[str]:
        try:
            cursor = await self._database.connection.execute(
                "SELECT key FROM meta WHERE key LIKE 'lang-%' AND downloaded = 1 ORDER BY key"
            )
            return [row["key"].removeprefix("lang-") for row in await cursor.fetchall()]

        except aiosqlite.Error as e:
            logger.error("Failed to list downloaded languages", error=str(e))
            raise DatabaseError(f"Failed to list downloaded languages: {e}") from e
