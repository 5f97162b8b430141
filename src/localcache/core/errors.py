"""Custom exception types for localcache.

Error messages follow one convention:
- What failed (specific operation or component)
- Where it failed (database, table, language, shard)
- Why it failed (the specific condition)
- How to fix it (actionable guidance)
"""


class LocalCacheError(Exception):
    """Base exception for all localcache errors."""

    pass


class ConfigValidationError(LocalCacheError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(LocalCacheError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class DatabaseError(LocalCacheError):
    """Raised when SQLite operations fail."""

    pass


class StorageUnavailable(DatabaseError):
    """Raised when a database file cannot be opened (permissions, disk full, bad path).

    No automatic retry is performed; the caller decides whether to retry.
    """

    pass


class SchemaMismatch(DatabaseError):
    """Raised when the on-disk schema does not match what the code expects.

    Attributes:
        database: Logical database name (e.g. "dictionary")
        table: The missing table, if the mismatch is a missing table
    """

    def __init__(self, message: str, database: str, table: str | None = None):
        super().__init__(message)
        self.database = database
        self.table = table


class ShardFetchError(LocalCacheError):
    """Raised when one dictionary shard cannot be fetched or parsed.

    The sync engine treats this as a skipped shard, never as a failed download.

    Attributes:
        language: Language code of the shard
        letter: Shard letter (a-z)
        status_code: HTTP status code, if the server answered
    """

    def __init__(
        self,
        message: str,
        language: str,
        letter: str,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.language = language
        self.letter = letter
        self.status_code = status_code


class UnsupportedLanguageError(LocalCacheError, ValueError):
    """Raised when a language code is not in the supported set."""

    def __init__(self, language: str):
        super().__init__(
            f"Language '{language}' is not supported. "
            "Run 'python -m localcache status' to list supported language codes."
        )
        self.language = language


class RateLimitExceeded(LocalCacheError):
    """Raised when the request rate limiter would require an excessive wait."""

    pass
