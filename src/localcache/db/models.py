"""SQLite schemas, migrations and the SchemaManager.

Three logical databases live in separate files:
- cache: generic_cache, email_summaries, word_definitions
- dictionary: one dict_<code> table per Language, plus meta
- checkpoints: download_checkpoints, downloading_languages

Each schema is an explicit migration table mapping a version number to the
DDL introduced at that version. Migrations are additive only: they create
tables and indexes and never drop them. The applied version is tracked in
PRAGMA user_version.

Usage:
    from localcache.db.models import CACHE_SCHEMA, SchemaManager

    database = SchemaManager("data/cache.db", CACHE_SCHEMA)
    await database.open()
    ...
    await database.close()
"""

from __future__ import annotations

import asyncio
import stat
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from localcache.core.errors import DatabaseError, SchemaMismatch, StorageUnavailable
from localcache.core.logging import get_logger
from localcache.db.languages import Language

logger = get_logger(__name__)


@dataclass(frozen=True)
class DatabaseSchema:
    """Versioned schema for one logical database.

    Attributes:
        name: Logical database name used in logs and errors
        migrations: Version -> DDL statements introduced at that version
        tables: Tables that must exist once all migrations are applied
    """

    name: str
    migrations: dict[int, tuple[str, ...]]
    tables: frozenset[str]

    @property
    def version(self) -> int:
        return max(self.migrations)

    def statements(self, after_version: int = 0) -> list[str]:
        """DDL for every migration newer than after_version, in order."""
        return [
            statement
            for version in sorted(self.migrations)
            if version > after_version
            for statement in self.migrations[version]
        ]


# =========================================================================
# Cache database
# =========================================================================

CACHE_SCHEMA = DatabaseSchema(
    name="cache",
    migrations={
        1: (
            """
            CREATE TABLE IF NOT EXISTS generic_cache (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                written_at_ms INTEGER NOT NULL,
                ttl_ms INTEGER NOT NULL
            )
            """,
            # Full-table sweep walks entries by write time
            "CREATE INDEX IF NOT EXISTS idx_generic_cache_written_at ON generic_cache(written_at_ms)",
            """
            CREATE TABLE IF NOT EXISTS email_summaries (
                email_id TEXT PRIMARY KEY,
                summary_json TEXT NOT NULL,
                written_at_ms INTEGER NOT NULL,
                metadata_json TEXT NOT NULL DEFAULT '{}'
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS word_definitions (
                word TEXT PRIMARY KEY,
                definition_json TEXT NOT NULL
            )
            """,
        ),
    },
    tables=frozenset({"generic_cache", "email_summaries", "word_definitions"}),
)


# =========================================================================
# Dictionary database
# =========================================================================

# Version in which each language's table first appears. A new language is
# added by appending a new version here, never by editing an old one.
LANGUAGE_MIGRATIONS: dict[int, tuple[Language, ...]] = {
    1: (Language.EN, Language.ES, Language.FR, Language.DE, Language.IT, Language.PT),
    2: (
        Language.NL,
        Language.SV,
        Language.PL,
        Language.RO,
        Language.CS,
        Language.FI,
        Language.DA,
        Language.NO,
    ),
    3: (
        Language.NB,
        Language.NN,
        Language.ID,
        Language.MS,
        Language.TR,
        Language.VI,
        Language.LT,
        Language.SK,
    ),
}

_migrated_languages = [lang for langs in LANGUAGE_MIGRATIONS.values() for lang in langs]
if sorted(_migrated_languages) != sorted(Language) or len(set(_migrated_languages)) != len(
    _migrated_languages
):
    raise RuntimeError(
        "Every Language must be introduced by exactly one dictionary migration; "
        f"missing: {sorted(set(Language) - set(_migrated_languages))}"
    )


def _language_table_ddl(language: Language) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {language.table_name} (
            word TEXT PRIMARY KEY,
            pos TEXT,
            definition TEXT
        )
        """


_DICTIONARY_META_DDL = """
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        downloaded INTEGER NOT NULL DEFAULT 0,
        completed_at DATETIME
    )
    """


def _dictionary_migrations() -> dict[int, tuple[str, ...]]:
    migrations: dict[int, tuple[str, ...]] = {}
    for version, languages in LANGUAGE_MIGRATIONS.items():
        statements = [_language_table_ddl(lang) for lang in languages]
        if version == 1:
            statements.insert(0, _DICTIONARY_META_DDL)
        migrations[version] = tuple(statements)
    return migrations


DICTIONARY_SCHEMA = DatabaseSchema(
    name="dictionary",
    migrations=_dictionary_migrations(),
    tables=frozenset({"meta"} | {lang.table_name for lang in Language}),
)


# =========================================================================
# Checkpoint database
# =========================================================================

CHECKPOINT_SCHEMA = DatabaseSchema(
    name="checkpoints",
    migrations={
        1: (
            """
            CREATE TABLE IF NOT EXISTS download_checkpoints (
                language TEXT PRIMARY KEY,
                next_shard_index INTEGER NOT NULL,
                entries_processed INTEGER NOT NULL DEFAULT 0,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS downloading_languages (
                language TEXT PRIMARY KEY,
                started_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """,
        ),
    },
    tables=frozenset({"download_checkpoints", "downloading_languages"}),
)


class SchemaManager:
    """Owns one SQLite connection and keeps its schema migrated.

    The connection is opened explicitly with open() and released with
    close(). Stores receive the SchemaManager and borrow its connection.

    Attributes:
        db_path: Path to the SQLite database file
        schema: The DatabaseSchema applied on open
    """

    def __init__(self, db_path: str | Path, schema: DatabaseSchema):
        self.db_path = Path(db_path)
        self.schema = schema
        self._conn: aiosqlite.Connection | None = None
        self._recovery_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        """The open connection.

        Raises:
            DatabaseError: If open() has not been called
        """
        if self._conn is None:
            raise DatabaseError(
                f"The {self.name} database at {self.db_path} is not open. "
                "Call open() before using the store."
            )
        return self._conn

    async def open(self) -> None:
        """Open the database and apply pending migrations.

        Raises:
            StorageUnavailable: If the file cannot be opened
            SchemaMismatch: If the file was written by a newer schema version
        """
        if self._conn is not None:
            return

        self._conn = await self._connect()
        try:
            await self._migrate()
        except BaseException:
            await self.close()
            raise

        missing = await self.missing_tables()
        if missing:
            logger.warning(
                "Database opened with missing tables",
                database=self.name,
                missing=sorted(missing),
                db_path=str(self.db_path),
            )

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.close()
        except aiosqlite.Error as e:
            logger.warning("Failed to close database", database=self.name, error=str(e))

    async def _connect(self) -> aiosqlite.Connection:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self.db_path)
            await conn.execute("PRAGMA busy_timeout = 10000")
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous = NORMAL")
            await conn.execute("PRAGMA temp_store = MEMORY")
        except (OSError, aiosqlite.Error) as e:
            logger.error(
                "Database open failed",
                database=self.name,
                db_path=str(self.db_path),
                error=str(e),
            )
            raise StorageUnavailable(
                f"Cannot open the {self.name} database at {self.db_path}: {e}. "
                "Check that the directory is writable and the disk is not full."
            ) from e

        conn.row_factory = aiosqlite.Row

        # Owner read/write only
        try:
            self.db_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        except OSError as e:
            logger.debug("Could not restrict database permissions", error=str(e))

        return conn

    async def user_version(self) -> int:
        cursor = await self.connection.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def _migrate(self) -> None:
        """Apply migrations newer than the on-disk version."""
        try:
            current = await self.user_version()
            target = self.schema.version

            if current > target:
                raise SchemaMismatch(
                    f"The {self.name} database at {self.db_path} has schema version "
                    f"{current}, newer than the supported version {target}. "
                    "Upgrade localcache or point storage.data_dir at a fresh directory.",
                    database=self.name,
                )

            if current == target:
                return

            await self._apply(self.schema.statements(after_version=current))
            # PRAGMA does not accept bound parameters
            await self.connection.execute(f"PRAGMA user_version = {int(target)}")
            await self.connection.commit()

            logger.info(
                "Database migrated",
                database=self.name,
                from_version=current,
                to_version=target,
            )
        except aiosqlite.Error as e:
            logger.error("Database migration failed", database=self.name, error=str(e))
            raise DatabaseError(
                f"Failed to migrate the {self.name} database at {self.db_path}: {e}"
            ) from e

    async def _apply(self, statements: Iterable[str]) -> None:
        for statement in statements:
            await self.connection.execute(statement)
        await self.connection.commit()

    async def tables(self) -> set[str]:
        """Names of all tables currently present."""
        try:
            cursor = await self.connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
            return {row[0] for row in await cursor.fetchall()}
        except aiosqlite.Error as e:
            logger.error("Failed to list tables", database=self.name, error=str(e))
            raise DatabaseError(f"Failed to list tables in {self.name}: {e}") from e

    async def has_table(self, table: str) -> bool:
        return table in await self.tables()

    async def missing_tables(self) -> set[str]:
        return set(self.schema.tables) - await self.tables()

    async def ensure_table(self, table: str) -> None:
        """Make sure a table exists, recovering once if it does not.

        Recovery re-applies every migration's DDL on the live connection, so
        stores holding the connection keep working. The DDL only creates what
        is missing. Only if that fails is the handle closed and reopened.

        Raises:
            SchemaMismatch: If the table is still missing after recovery
        """
        if await self.has_table(table):
            return

        async with self._recovery_lock:
            # Another task may have recovered while we waited
            if await self.has_table(table):
                return

            logger.warning(
                "Table missing, recreating schema",
                database=self.name,
                table=table,
                db_path=str(self.db_path),
            )
            try:
                await self._apply(self.schema.statements())
            except aiosqlite.Error as e:
                logger.warning(
                    "Schema recovery on open connection failed, reconnecting",
                    database=self.name,
                    error=str(e),
                )
                await self._reconnect_and_apply()

            if not await self.has_table(table):
                logger.error("Table still missing after recovery", database=self.name, table=table)
                raise SchemaMismatch(
                    f"Table '{table}' does not exist in the {self.name} database at "
                    f"{self.db_path} and could not be created. Delete the file to rebuild it.",
                    database=self.name,
                    table=table,
                )

            logger.info("Schema recovered", database=self.name, table=table)

    async def _reconnect_and_apply(self) -> None:
        await self.close()
        self._conn = await self._connect()
        try:
            await self._apply(self.schema.statements())
        except aiosqlite.Error as e:
            logger.error("Schema recovery failed", database=self.name, error=str(e))
            raise DatabaseError(f"Failed to recreate the {self.name} schema: {e}") from e

    async def __aenter__(self) -> SchemaManager:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
