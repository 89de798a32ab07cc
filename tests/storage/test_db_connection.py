"""Integration tests for database connection, schema, and write transactions."""

import asyncio
import os
import tempfile

import pytest

from canopy.db.connection import Database


class TestDatabaseConnection:
    async def test_connect_creates_tables(self):
        """Database.connect creates events, folders, and nodes tables."""
        db = await Database.connect(":memory:")
        try:
            rows = await db.fetchall(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
            table_names = {row["name"] for row in rows}
            assert {"events", "folders", "nodes"} <= table_names
        finally:
            await db.close()

    async def test_wal_mode_on_file_database(self):
        """File-based database uses WAL journal mode."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "test.db")
            db = await Database.connect(path)
            try:
                row = await db.fetchone("PRAGMA journal_mode")
                assert row is not None
                assert row["journal_mode"] == "wal"
            finally:
                await db.close()

    async def test_schema_idempotent(self):
        """Calling _ensure_schema twice does not error."""
        db = await Database.connect(":memory:")
        try:
            await db._ensure_schema()
            rows = await db.fetchall("SELECT name FROM sqlite_master WHERE type='table'")
            assert len(rows) >= 3
        finally:
            await db.close()


class TestTransactions:
    async def _insert_folder(self, db: Database, folder_id: str) -> None:
        await db.execute(
            "INSERT INTO folders (folder_id, owner_id, name, created_at, updated_at) "
            "VALUES (?, 'local', 'f', 'now', 'now')",
            (folder_id,),
        )

    async def _folder_ids(self, db: Database) -> set[str]:
        rows = await db.fetchall("SELECT folder_id FROM folders")
        return {r["folder_id"] for r in rows}

    async def test_commit_on_success(self, db):
        async with db.transaction():
            await self._insert_folder(db, "a")
            await self._insert_folder(db, "b")
        assert await self._folder_ids(db) == {"a", "b"}

    async def test_rollback_on_error(self, db):
        """An exception inside the block discards every write in it."""
        with pytest.raises(RuntimeError):
            async with db.transaction():
                await self._insert_folder(db, "a")
                raise RuntimeError("boom")
        assert await self._folder_ids(db) == set()

    async def test_nested_transaction_joins_outer(self, db):
        """An inner block does not commit on its own; the outer failure rolls back both."""
        with pytest.raises(RuntimeError):
            async with db.transaction():
                async with db.transaction():
                    await self._insert_folder(db, "inner")
                assert db.in_transaction()
                raise RuntimeError("boom")
        assert await self._folder_ids(db) == set()
        assert not db.in_transaction()

    async def test_other_writers_wait_for_transaction(self, db):
        """A write from another task is not interleaved into an open transaction."""
        order: list[str] = []

        async def other_writer():
            await self._insert_folder(db, "other")
            order.append("other")

        async with db.transaction():
            task = asyncio.create_task(other_writer())
            await asyncio.sleep(0)
            await self._insert_folder(db, "mine")
            order.append("mine")
            assert not task.done()
        await task

        assert order == ["mine", "other"]
        assert await self._folder_ids(db) == {"mine", "other"}
