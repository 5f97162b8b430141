"""Tests for WordLookupService source ordering and caching."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from localcache.db.models import SchemaManager
from localcache.db.store import WordDefinitionStore
from localcache.dictionary.client import DefinitionApiClient
from localcache.dictionary.lookup import WordLookupService
from localcache.dictionary.store import DictionaryEntry
from localcache.dictionary.sync import DictionarySyncEngine


@pytest.fixture
def words(cache_db: SchemaManager) -> WordDefinitionStore:
    return WordDefinitionStore(cache_db)


@pytest.fixture
def engine() -> MagicMock:
    engine = MagicMock(spec=DictionarySyncEngine)
    engine.lookup_any = AsyncMock(return_value=None)
    return engine


@pytest.fixture
def api() -> MagicMock:
    api = MagicMock(spec=DefinitionApiClient)
    api.lookup = AsyncMock(return_value=None)
    return api


@pytest.fixture
def service(words: WordDefinitionStore, engine: MagicMock, api: MagicMock) -> WordLookupService:
    return WordLookupService(words, engine, api, languages=["es", "en"])


class TestWordLookupService:
    async def test_local_dictionary_hit(
        self, service: WordLookupService, engine: MagicMock, api: MagicMock
    ) -> None:
        """Test that an offline hit is returned without touching the network."""
        engine.lookup_any.return_value = (
            "es",
            DictionaryEntry(word="casa", pos="noun", definition="house"),
        )

        result = await service.lookup("Casa")

        assert result is not None
        assert result.source == "local"
        assert result.language == "es"
        assert result.definition == "house"
        engine.lookup_any.assert_awaited_once_with("casa", ["es", "en"])
        api.lookup.assert_not_awaited()

    async def test_api_fallback_is_cached(
        self, service: WordLookupService, words: WordDefinitionStore, api: MagicMock
    ) -> None:
        """Test that a network hit is stored and served from cache next time."""

        async def api_lookup(word: str, language: str) -> DictionaryEntry | None:
            if language == "en":
                return DictionaryEntry(word=word, pos="noun", definition="A building.")
            return None

        api.lookup.side_effect = api_lookup

        first = await service.lookup("house")
        assert first is not None
        assert first.source == "api"
        assert first.language == "en"
        assert [call.args for call in api.lookup.await_args_list] == [("house", "es"), ("house", "en")]
        assert await words.get("house") == {
            "word": "house",
            "pos": "noun",
            "definition": "A building.",
            "language": "en",
        }

        api.lookup.reset_mock()
        second = await service.lookup("HOUSE")

        assert second is not None
        assert second.source == "cache"
        assert second.definition == "A building."
        api.lookup.assert_not_awaited()

    async def test_cached_word_for_other_language_ignored(
        self, service: WordLookupService, words: WordDefinitionStore, engine: MagicMock
    ) -> None:
        await words.set("gift", {"word": "gift", "pos": "noun", "definition": "poison", "language": "de"})

        result = await service.lookup("gift", languages=["en"])

        assert result is None
        engine.lookup_any.assert_awaited_once_with("gift", ["en"])

    async def test_not_found_anywhere(self, service: WordLookupService, words: WordDefinitionStore) -> None:
        assert await service.lookup("qwzx") is None
        assert await words.get("qwzx") is None

    async def test_blank_word(self, service: WordLookupService, engine: MagicMock) -> None:
        assert await service.lookup("   ") is None
        engine.lookup_any.assert_not_awaited()

    async def test_offline_only_without_api_client(
        self, words: WordDefinitionStore, engine: MagicMock
    ) -> None:
        service = WordLookupService(words, engine, api_client=None, languages=["en"])
        assert await service.lookup("house") is None
