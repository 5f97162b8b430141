"""Resumable, checkpointed download of offline dictionaries.

Each language moves through a small state machine:

    NOT_DOWNLOADED --download_language()--> DOWNLOADING
    DOWNLOADING    --(process dies)-------> DOWNLOADING  (resumes at checkpoint)
    DOWNLOADING    --(26 shards, entries>0)--> DOWNLOADED
    DOWNLOADING    --(26 shards, entries=0)--> NOT_DOWNLOADED (checkpoint kept)
    DOWNLOADED     --delete_language()----> NOT_DOWNLOADED

Download pipeline per language:
1. Skip entirely if already downloaded (no network traffic)
2. Ensure the language table exists (SchemaManager recovery path)
3. Mark the language as downloading; always unmarked in a finally block
4. Resume from the checkpoint, or start at shard 0
5. For each remaining shard a..z, sequentially:
   fetch -> upsert -> report progress -> save checkpoint
   A failed shard is logged and skipped; the checkpoint still advances
6. Mark downloaded only if at least one entry landed

There is no cancellation API. A download stops when the process dies and
resumes from the checkpoint on the next call, or when delete_language()
runs for the same language while it is in flight.

Usage:
    from localcache.dictionary.sync import DictionarySyncEngine

    engine = DictionarySyncEngine(dictionary_store, checkpoint_store, shard_client)
    result = await engine.download_language("es", on_progress=print)
    entry = await engine.lookup("Casa", "es")
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from localcache.core.errors import DatabaseError, ShardFetchError, UnsupportedLanguageError
from localcache.core.logging import correlation_scope, get_logger
from localcache.db.languages import SHARD_COUNT, SHARD_LETTERS, Language, parse_language
from localcache.db.store import normalize_word
from localcache.dictionary.checkpoint import CheckpointStore, DownloadCheckpoint
from localcache.dictionary.client import ShardClient
from localcache.dictionary.store import DictionaryEntry, DictionaryStore

logger = get_logger(__name__)


class LanguageState(StrEnum):
    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"


@dataclass(frozen=True)
class DownloadProgress:
    """Reported after every successfully stored shard."""

    language: str
    letter: str
    percent_complete: float
    entries_processed: int


ProgressCallback = Callable[[DownloadProgress], Awaitable[None] | None]


@dataclass
class DownloadResult:
    """Outcome of one download_language() call."""

    language: str
    entries_processed: int = 0
    resumed_from: int = 0
    shards_attempted: int = 0
    shards_failed: list[str] = field(default_factory=list)
    downloaded: bool = False
    already_downloaded: bool = False
    interrupted: bool = False
    duration_ms: int = 0


@dataclass(frozen=True)
class LanguageStatus:
    """Snapshot of one language for status displays."""

    language: str
    name: str
    state: LanguageState
    entries: int
    checkpoint: DownloadCheckpoint | None = None


class DictionarySyncEngine:
    """Downloads, queries and deletes per-language offline dictionaries.

    Different languages may download concurrently: each owns its own table
    and checkpoint key. Calls for the same language are serialized.

    Attributes:
        _dictionary: DictionaryStore over the dictionary database
        _checkpoints: CheckpointStore for resume state and the downloading set
        _client: ShardClient used to fetch shards
    """

    def __init__(
        self,
        dictionary: DictionaryStore,
        checkpoints: CheckpointStore,
        shard_client: ShardClient,
    ):
        self._dictionary = dictionary
        self._checkpoints = checkpoints
        self._client = shard_client
        self._locks: dict[Language, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Bumped by delete_language so an in-flight download can notice
        self._generations: dict[Language, int] = defaultdict(int)

    @staticmethod
    def _require_language(language: str | Language) -> Language:
        lang = parse_language(language)
        if lang is None:
            raise UnsupportedLanguageError(language)
        return lang

    # =========================================================================
    # Download
    # =========================================================================

    async def download_language(
        self,
        language: str | Language,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadResult:
        """Download (or resume downloading) a language's dictionary.

        Args:
            language: Language code, e.g. "es"
            on_progress: Called after each stored shard; may be sync or async

        Returns:
            DownloadResult describing what happened

        Raises:
            UnsupportedLanguageError: If the language is not supported
            SchemaMismatch: If the language table cannot be created
            DatabaseError: If a storage operation fails
        """
        lang = self._require_language(language)
        async with self._locks[lang]:
            with correlation_scope():
                return await self._download(lang, on_progress)

    async def _download(self, lang: Language, on_progress: ProgressCallback | None) -> DownloadResult:
        code = lang.value

        if await self.is_language_downloaded(lang):
            # A crash between marking complete and clearing the checkpoint leaves one behind
            await self._checkpoints.delete(code)
            logger.info("Language already downloaded, skipping", language=code)
            return DownloadResult(
                language=code,
                entries_processed=await self.entry_count(lang),
                downloaded=True,
                already_downloaded=True,
            )

        await self._dictionary.database.ensure_table(lang.table_name)
        await self._dictionary.database.ensure_table("meta")

        generation = self._generations[lang]
        start_time = time.monotonic()

        await self._checkpoints.mark_downloading(code)
        try:
            checkpoint = await self._checkpoints.get(code)
            start_index, entries = self._resume_point(checkpoint)
            result = DownloadResult(language=code, resumed_from=start_index)

            logger.info(
                "Dictionary download started",
                language=code,
                resumed_from=start_index,
                entries_processed=entries,
                base_url=self._client.base_url,
            )
            await self._checkpoints.save(code, start_index, entries)

            for index in range(start_index, SHARD_COUNT):
                letter = SHARD_LETTERS[index]

                try:
                    shard = await self._client.fetch_shard(lang, letter)
                except ShardFetchError as e:
                    logger.warning(
                        "Shard skipped",
                        language=code,
                        letter=letter,
                        status_code=e.status_code,
                        error=str(e),
                    )
                    result.shards_failed.append(letter)
                    shard = None

                if self._deleted_since(lang, generation):
                    result.interrupted = True
                    break

                if shard is not None:
                    entries += await self._dictionary.upsert_entries(lang, shard)
                    await self._report(
                        on_progress,
                        DownloadProgress(
                            language=code,
                            letter=letter,
                            percent_complete=(index + 1) / SHARD_COUNT * 100,
                            entries_processed=entries,
                        ),
                    )

                result.shards_attempted += 1
                if self._deleted_since(lang, generation):
                    result.interrupted = True
                    break
                # Advance even past a failed shard so a broken one can't loop forever
                await self._checkpoints.save(code, index + 1, entries)

            result.entries_processed = entries
            result.duration_ms = int((time.monotonic() - start_time) * 1000)

            if result.interrupted:
                logger.warning("Dictionary download interrupted by deletion", language=code)
            elif entries > 0:
                await self._dictionary.mark_downloaded(lang)
                await self._checkpoints.delete(code)
                result.downloaded = True
                logger.info(
                    "Dictionary download complete",
                    language=code,
                    entries_processed=entries,
                    shards_failed=result.shards_failed,
                    duration_ms=result.duration_ms,
                )
            else:
                logger.error(
                    "No entries downloaded, language not marked complete",
                    language=code,
                    shards_failed=len(result.shards_failed),
                )

            return result

        finally:
            await self._checkpoints.unmark_downloading(code)

    def _deleted_since(self, lang: Language, generation: int) -> bool:
        return self._generations[lang] != generation

    @staticmethod
    def _resume_point(checkpoint: DownloadCheckpoint | None) -> tuple[int, int]:
        """Shard index and entry count to resume from.

        A checkpoint at or past the last shard belongs to a finished pass
        that stored nothing, so it restarts from scratch.
        """
        if checkpoint is None:
            return 0, 0
        if checkpoint.next_shard_index >= SHARD_COUNT or checkpoint.next_shard_index < 0:
            return 0, 0
        return checkpoint.next_shard_index, max(checkpoint.entries_processed, 0)

    @staticmethod
    async def _report(on_progress: ProgressCallback | None, progress: DownloadProgress) -> None:
        if on_progress is None:
            return
        outcome = on_progress(progress)
        if inspect.isawaitable(outcome):
            await outcome

    # =========================================================================
    # Queries
    # =========================================================================

    async def lookup(self, word: str, language: str | Language) -> DictionaryEntry | None:
        """Look a word up in one language's local dictionary.

        Never raises: an unknown word, an unsupported language, a missing
        table or a storage failure all return None, meaning "try the network".
        """
        lang = parse_language(language)
        normalized = normalize_word(word)
        if lang is None or not normalized:
            return None

        try:
            if not await self._dictionary.database.has_table(lang.table_name):
                logger.debug("Language table not found", language=lang.value)
                return None
            return await self._dictionary.get_entry(lang, normalized)
        except DatabaseError as e:
            logger.warning("Local dictionary lookup failed", language=lang.value, error=str(e))
            return None

    async def lookup_any(
        self, word: str, languages: Iterable[str | Language]
    ) -> tuple[str, DictionaryEntry] | None:
        """First local hit across languages, in order, as (language code, entry)."""
        for language in languages:
            lang = parse_language(language)
            if lang is None:
                continue
            entry = await self.lookup(word, lang)
            if entry is not None:
                return lang.value, entry
        return None

    async def is_language_downloaded(self, language: str | Language) -> bool:
        """Whether a language finished downloading. False if the meta table is missing."""
        lang = parse_language(language)
        if lang is None:
            return False
        if not await self._dictionary.database.has_table("meta"):
            return False
        meta = await self._dictionary.get_meta(lang)
        return meta is not None and meta.downloaded

    async def downloaded_languages(self) -> list[str]:
        if not await self._dictionary.database.has_table("meta"):
            return []
        return await self._dictionary.downloaded_languages()

    async def language_state(self, language: str | Language) -> LanguageState:
        lang = self._require_language(language)
        if await self.is_language_downloaded(lang):
            return LanguageState.DOWNLOADED
        if lang.value in await self._checkpoints.downloading_languages():
            return LanguageState.DOWNLOADING
        checkpoint = await self._checkpoints.get(lang.value)
        if checkpoint is not None and checkpoint.next_shard_index < SHARD_COUNT:
            return LanguageState.DOWNLOADING
        return LanguageState.NOT_DOWNLOADED

    async def entry_count(self, language: str | Language) -> int:
        lang = self._require_language(language)
        if not await self._dictionary.database.has_table(lang.table_name):
            return 0
        return await self._dictionary.count(lang)

    async def statuses(self) -> list[LanguageStatus]:
        """Status of every supported language."""
        downloaded = set(await self.downloaded_languages())
        downloading = await self._checkpoints.downloading_languages()
        checkpoints = {cp.language: cp for cp in await self._checkpoints.all()}

        statuses = []
        for lang in Language:
            checkpoint = checkpoints.get(lang.value)
            if lang.value in downloaded:
                state = LanguageState.DOWNLOADED
            elif lang.value in downloading or (
                checkpoint is not None and checkpoint.next_shard_index < SHARD_COUNT
            ):
                state = LanguageState.DOWNLOADING
            else:
                state = LanguageState.NOT_DOWNLOADED
            statuses.append(
                LanguageStatus(
                    language=lang.value,
                    name=lang.info.name,
                    state=state,
                    entries=await self.entry_count(lang),
                    checkpoint=checkpoint,
                )
            )
        return statuses

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete_language(self, language: str | Language) -> None:
        """Return a language to NOT_DOWNLOADED from any state.

        Clears its table and meta row, its checkpoint, and its downloading
        mark. An in-flight download of the language stops at its next shard.
        """
        lang = self._require_language(language)
        self._generations[lang] += 1

        database = self._dictionary.database
        await database.ensure_table(lang.table_name)
        await database.ensure_table("meta")
        await self._dictionary.clear_language(lang)
        await self._checkpoints.delete(lang.value)
        await self._checkpoints.unmark_downloading(lang.value)

        logger.info("Language deleted", language=lang.value)
