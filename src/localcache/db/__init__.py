"""Database layer for localcache.

This module provides the SQLite schema manager and the keyed stores on the
general cache database.

Usage:
    from localcache.db import CACHE_SCHEMA, CacheStore, SchemaManager

    database = SchemaManager("data/cache.db", CACHE_SCHEMA)
    await database.open()

    cache = CacheStore(database)
    await cache.set("classify:abc123", {"folder": "Projects/Example"})
"""

from localcache.db.languages import SHARD_COUNT, SHARD_LETTERS, Language, parse_language
from localcache.db.models import (
    CACHE_SCHEMA,
    CHECKPOINT_SCHEMA,
    DICTIONARY_SCHEMA,
    LANGUAGE_MIGRATIONS,
    DatabaseSchema,
    SchemaManager,
)
from localcache.db.store import (
    DEFAULT_CACHE_TTL,
    CacheEntry,
    CacheStore,
    EmailSummary,
    EmailSummaryStore,
    WordDefinition,
    WordDefinitionStore,
    normalize_word,
)

__all__ = [
    # Languages
    "Language",
    "SHARD_LETTERS",
    "SHARD_COUNT",
    "parse_language",
    # Models
    "DatabaseSchema",
    "SchemaManager",
    "CACHE_SCHEMA",
    "DICTIONARY_SCHEMA",
    "CHECKPOINT_SCHEMA",
    "LANGUAGE_MIGRATIONS",
    # Stores
    "CacheStore",
    "EmailSummaryStore",
    "WordDefinitionStore",
    "DEFAULT_CACHE_TTL",
    "normalize_word",
    # Dataclasses
    "CacheEntry",
    "EmailSummary",
    "WordDefinition",
]
