"""Offline dictionary download, storage and lookup."""

from localcache.dictionary.checkpoint import CheckpointStore, DownloadCheckpoint
from localcache.dictionary.client import DefinitionApiClient, ShardClient
from localcache.dictionary.lookup import WordLookupResult, WordLookupService
from localcache.dictionary.store import DictionaryEntry, DictionaryStore, LanguageMeta
from localcache.dictionary.sync import (
    DictionarySyncEngine,
    DownloadProgress,
    DownloadResult,
    LanguageState,
    LanguageStatus,
)

__all__ = [
    "CheckpointStore",
    "DownloadCheckpoint",
    "ShardClient",
    "DefinitionApiClient",
    "DictionaryStore",
    "DictionaryEntry",
    "LanguageMeta",
    "DictionarySyncEngine",
    "DownloadProgress",
    "DownloadResult",
    "LanguageState",
    "LanguageStatus",
    "WordLookupService",
    "WordLookupResult",
]
