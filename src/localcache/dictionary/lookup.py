"""Word lookup across the definition cache, local dictionaries and the network.

Lookup order:
1. WordDefinitionStore (previously resolved words)
2. Offline dictionaries, in the configured language order
3. DefinitionApiClient, per language; a hit is written back to the cache

Local dictionary hits are not copied into the cache since they are already
available offline.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Literal

from localcache.core.logging import get_logger
from localcache.db.store import WordDefinitionStore, normalize_word
from localcache.dictionary.client import DefinitionApiClient
from localcache.dictionary.store import DictionaryEntry
from localcache.dictionary.sync import DictionarySyncEngine

logger = get_logger(__name__)

LookupSource = Literal["cache", "local", "api"]


@dataclass(frozen=True)
class WordLookupResult:
    word: str
    pos: str | None
    definition: str | None
    language: str
    source: LookupSource

    @classmethod
    def from_entry(
        cls, entry: DictionaryEntry, language: str, source: LookupSource
    ) -> WordLookupResult:
        return cls(
            word=entry.word,
            pos=entry.pos,
            definition=entry.definition,
            language=language,
            source=source,
        )


class WordLookupService:
    """Resolves a word to a definition, preferring offline sources.

    Attributes:
        languages: Default language order when lookup() gets none
    """

    def __init__(
        self,
        word_store: WordDefinitionStore,
        engine: DictionarySyncEngine,
        api_client: DefinitionApiClient | None = None,
        languages: Iterable[str] = ("en",),
    ):
        self._words = word_store
        self._engine = engine
        self._api = api_client
        self.languages = list(languages)

    async def lookup(
        self, word: str, languages: Iterable[str] | None = None
    ) -> WordLookupResult | None:
        """Look a word up, returning None if no source knows it.

        Raises:
            DatabaseError: If the definition cache cannot be read or written
        """
        normalized = normalize_word(word)
        if not normalized:
            return None
        order = list(languages) if languages is not None else self.languages

        cached = await self._words.get(normalized)
        if isinstance(cached, dict) and cached.get("language") in order:
            logger.debug("Word served from cache", word=normalized)
            return WordLookupResult(
                word=normalized,
                pos=cached.get("pos"),
                definition=cached.get("definition"),
                language=cached["language"],
                source="cache",
            )

        hit = await self._engine.lookup_any(normalized, order)
        if hit is not None:
            language, entry = hit
            return WordLookupResult.from_entry(entry, language, "local")

        if self._api is None:
            return None

        for language in order:
            entry = await self._api.lookup(normalized, language)
            if entry is None:
                continue
            result = WordLookupResult.from_entry(entry, language, "api")
            payload = asdict(result)
            del payload["source"]
            await self._words.set(normalized, payload)
            logger.info("Word resolved from definition API", word=normalized, language=language)
            return result

        logger.debug("Word not found in any source", word=normalized, languages=order)
        return None
