"""Restart-durable download checkpoints.

Checkpoints live in their own SQLite file, independent of the dictionary
database, so a damaged or rebuilt dictionary never loses resume state and
vice versa. Writes here are not transactional with dictionary writes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import aiosqlite

from localcache.core.errors import DatabaseError
from localcache.core.logging import get_logger
from localcache.db.models import SchemaManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class DownloadCheckpoint:
    """Resume point for an interrupted language download."""

    language: str
    next_shard_index: int
    entries_processed: int
    updated_at: datetime | None = None


class CheckpointStore:
    """Per-language checkpoints plus the set of languages mid-download."""

    def __init__(self, database: SchemaManager):
        self._database = database

    async def get(self, language: str) -> DownloadCheckpoint | None:
        try:
            cursor = await self._database.connection.execute(
                "SELECT * FROM download_checkpoints WHERE language = ?",
                (language,),
            )
            row = await cursor.fetchone()
            return self._row_to_checkpoint(row) if row else None

        except aiosqlite.Error as e:
            logger.error("Failed to read checkpoint", language=language, error=str(e))
            raise DatabaseError(f"Failed to read checkpoint for {language}: {e}") from e

    async def save(self, language: str, next_shard_index: int, entries_processed: int) -> None:
        """Create or advance the checkpoint for a language."""
        try:
            db = self._database.connection
            await db.execute(
                """
                INSERT INTO download_checkpoints (language, next_shard_index, entries_processed, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(language) DO UPDATE SET
                    next_shard_index = excluded.next_shard_index,
                    entries_processed = excluded.entries_processed,
                    updated_at = excluded.updated_at
                """,
                (language, next_shard_index, entries_processed, datetime.now().isoformat()),
            )
            await db.commit()
            logger.debug(
                "Checkpoint saved",
                language=language,
                next_shard_index=next_shard_index,
                entries_processed=entries_processed,
            )

        except aiosqlite.Error as e:
            logger.error("Failed to save checkpoint", language=language, error=str(e))
            raise DatabaseError(f"Failed to save checkpoint for {language}: {e}") from e

    async def delete(self, language: str) -> None:
        try:
            db = self._database.connection
            await db.execute("DELETE FROM download_checkpoints WHERE language = ?", (language,))
            await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to delete checkpoint", language=language, error=str(e))
            raise DatabaseError(f"Failed to delete checkpoint for {language}: {e}") from e

    async def all(self) -> list[DownloadCheckpoint]:
        try:
            cursor = await self._database.connection.execute(
                "SELECT * FROM download_checkpoints ORDER BY language"
            )
            return [self._row_to_checkpoint(row) for row in await cursor.fetchall()]

        except aiosqlite.Error as e:
            logger.error("Failed to list checkpoints", error=str(e))
            raise DatabaseError(f"Failed to list checkpoints: {e}") from e

    async def mark_downloading(self, language: str) -> None:
        try:
            db = self._database.connection
            await db.execute(
                "INSERT OR IGNORE INTO downloading_languages (language, started_at) VALUES (?, ?)",
                (language, datetime.now().isoformat()),
            )
            await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to mark language downloading", language=language, error=str(e))
            raise DatabaseError(f"Failed to mark {language} as downloading: {e}") from e

    async def unmark_downloading(self, language: str) -> None:
        try:
            db = self._database.connection
            await db.execute("DELETE FROM downloading_languages WHERE language = ?", (language,))
            await db.commit()

        except aiosqlite.Error as e:
            logger.error("Failed to unmark language downloading", language=language, error=str(e))
            raise DatabaseError(f"Failed to unmark {language} as downloading: {e}") from e

    async def downloading_languages(self) -> set[str]:
        try:
            cursor = await self._database.connection.execute(
                "SELECT language FROM downloading_languages"
            )
            return {row["language"] for row in await cursor.fetchall()}

        except aiosqlite.Error as e:
            logger.error("Failed to list downloading languages", error=str(e))
            raise DatabaseError(f"Failed to list downloading languages: {e}") from e

    def _row_to_checkpoint(self, row: aiosqlite.Row) -> DownloadCheckpoint:
        return DownloadCheckpoint(
            language=row["language"],
            next_shard_index=row["next_shard_index"],
            entries_processed=row["entries_processed"],
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
        )
