"""Tests for SchemaManager migrations and schema recovery."""

import asyncio
from pathlib import Path

import aiosqlite
import pytest

from localcache.core.errors import DatabaseError, SchemaMismatch, StorageUnavailable
from localcache.db.languages import Language
from localcache.db.models import (
    CACHE_SCHEMA,
    CHECKPOINT_SCHEMA,
    DICTIONARY_SCHEMA,
    LANGUAGE_MIGRATIONS,
    SchemaManager,
)


class TestSchemaDefinitions:
    def test_every_language_has_one_migration(self) -> None:
        introduced = [lang for langs in LANGUAGE_MIGRATIONS.values() for lang in langs]
        assert sorted(introduced) == sorted(Language)
        assert len(introduced) == len(set(introduced))

    def test_dictionary_schema_declares_all_language_tables(self) -> None:
        assert "meta" in DICTIONARY_SCHEMA.tables
        for lang in Language:
            assert lang.table_name in DICTIONARY_SCHEMA.tables

    def test_statements_after_version_skip_applied_migrations(self) -> None:
        all_statements = DICTIONARY_SCHEMA.statements()
        later = DICTIONARY_SCHEMA.statements(after_version=1)
        assert len(later) < len(all_statements)
        assert not any("dict_en " in s or "dict_en(" in s for s in later)
        assert any(Language.SK.table_name in s for s in later)


class TestSchemaManagerOpen:
    """Tests for opening and migrating databases."""

    @pytest.mark.asyncio
    async def test_open_creates_file_and_tables(self, data_dir: Path) -> None:
        """Test that open() creates the file and every declared table."""
        db_path = data_dir / "cache.db"
        assert not db_path.exists()

        async with SchemaManager(db_path, CACHE_SCHEMA) as database:
            assert db_path.exists()
            assert await database.missing_tables() == set()
            assert await database.user_version() == CACHE_SCHEMA.version

    @pytest.mark.asyncio
    async def test_open_enables_wal_mode(self, data_dir: Path) -> None:
        async with SchemaManager(data_dir / "cache.db", CACHE_SCHEMA) as database:
            cursor = await database.connection.execute("PRAGMA journal_mode")
            row = await cursor.fetchone()
            assert row[0].lower() == "wal"

    @pytest.mark.asyncio
    async def test_dictionary_migrates_all_versions(self, dictionary_db: SchemaManager) -> None:
        assert await dictionary_db.user_version() == max(LANGUAGE_MIGRATIONS)
        tables = await dictionary_db.tables()
        assert {lang.table_name for lang in Language} <= tables

    @pytest.mark.asyncio
    async def test_partial_migration_applies_only_newer_versions(self, data_dir: Path) -> None:
        """Test that a database at version 1 is upgraded to the latest version."""
        db_path = data_dir / "dictionary.db"
        async with aiosqlite.connect(db_path) as db:
            for statement in DICTIONARY_SCHEMA.migrations[1]:
                await db.execute(statement)
            await db.execute("INSERT INTO dict_es (word, pos, definition) VALUES ('casa', 'noun', 'house')")
            await db.execute("PRAGMA user_version = 1")
            await db.commit()

        async with SchemaManager(db_path, DICTIONARY_SCHEMA) as database:
            assert await database.user_version() == DICTIONARY_SCHEMA.version
            assert await database.has_table(Language.SK.table_name)
            cursor = await database.connection.execute("SELECT COUNT(*) FROM dict_es")
            assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_newer_on_disk_version_fails_fast(self, data_dir: Path) -> None:
        """Test that a database written by a newer version is refused."""
        db_path = data_dir / "checkpoints.db"
        async with aiosqlite.connect(db_path) as db:
            await db.execute(f"PRAGMA user_version = {CHECKPOINT_SCHEMA.version + 5}")
            await db.commit()

        database = SchemaManager(db_path, CHECKPOINT_SCHEMA)
        with pytest.raises(SchemaMismatch) as exc_info:
            await database.open()

        assert exc_info.value.database == "checkpoints"
        assert "newer" in str(exc_info.value)
        assert not database.is_open

    @pytest.mark.asyncio
    async def test_unopenable_path_raises_storage_unavailable(self, tmp_path: Path) -> None:
        """Test that a path under a regular file cannot be opened."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        database = SchemaManager(blocker / "cache.db", CACHE_SCHEMA)
        with pytest.raises(StorageUnavailable):
            await database.open()
        assert not database.is_open

    @pytest.mark.asyncio
    async def test_connection_before_open_raises(self, data_dir: Path) -> None:
        database = SchemaManager(data_dir / "cache.db", CACHE_SCHEMA)
        with pytest.raises(DatabaseError, match="not open"):
            _ = database.connection

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, data_dir: Path) -> None:
        database = SchemaManager(data_dir / "cache.db", CACHE_SCHEMA)
        await database.open()
        await database.close()
        await database.close()
        assert not database.is_open


class TestEnsureTable:
    """Tests for the single recovery path."""

    @pytest.mark.asyncio
    async def test_dropped_table_is_recreated(self, dictionary_db: SchemaManager) -> None:
        """Test that an externally dropped table is healed by ensure_table."""
        await dictionary_db.connection.execute("DROP TABLE dict_fr")
        await dictionary_db.connection.commit()
        assert not await dictionary_db.has_table("dict_fr")

        await dictionary_db.ensure_table("dict_fr")

        assert await dictionary_db.has_table("dict_fr")
        assert dictionary_db.is_open

    @pytest.mark.asyncio
    async def test_recovery_keeps_live_connection(self, dictionary_db: SchemaManager) -> None:
        """Test that recovery does not close the handle other stores are using."""
        connection = dictionary_db.connection
        await connection.execute("DROP TABLE dict_es")
        await connection.commit()

        await dictionary_db.ensure_table("dict_es")

        assert dictionary_db.connection is connection
        cursor = await connection.execute("SELECT COUNT(*) FROM dict_fr")
        assert (await cursor.fetchone())[0] == 0

    @pytest.mark.asyncio
    async def test_concurrent_recovery_of_same_table(self, dictionary_db: SchemaManager) -> None:
        await dictionary_db.connection.execute("DROP TABLE dict_nl")
        await dictionary_db.connection.commit()

        await asyncio.gather(
            dictionary_db.ensure_table("dict_nl"), dictionary_db.ensure_table("dict_nl")
        )

        assert await dictionary_db.has_table("dict_nl")

    @pytest.mark.asyncio
    async def test_existing_table_is_untouched(self, dictionary_db: SchemaManager) -> None:
        await dictionary_db.connection.execute(
            "INSERT INTO dict_de (word, pos, definition) VALUES ('haus', 'noun', 'house')"
        )
        await dictionary_db.connection.commit()

        await dictionary_db.ensure_table("dict_de")

        cursor = await dictionary_db.connection.execute("SELECT COUNT(*) FROM dict_de")
        assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_unknown_table_raises_schema_mismatch(self, dictionary_db: SchemaManager) -> None:
        """Test that a table no migration creates fails after one recovery attempt."""
        with pytest.raises(SchemaMismatch) as exc_info:
            await dictionary_db.ensure_table("dict_xx")

        assert exc_info.value.table == "dict_xx"
        assert exc_info.value.database == "dictionary"
