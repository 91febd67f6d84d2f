"""Tests for PostgresSyncStore against a mocked asyncpg pool."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sync.entities import CreateOnlyEntity
from src.sync.postgres_store import PostgresSyncStore
from src.sync.tests.conftest import PATIENTS, FakeClock, ts

VISIT_COLUMNS = [
    {"column_name": c}
    for c in (
        "id", "patient_id", "note", "created_at", "updated_at",
        "server_created_at", "last_modified", "is_deleted", "deleted_at",
    )
]


def _make_pool(conn: MagicMock) -> MagicMock:
    @asynccontextmanager
    async def acquire():
        yield conn

    @asynccontextmanager
    async def transaction():
        yield None

    conn.transaction = MagicMock(side_effect=lambda **kwargs: transaction())
    pool = MagicMock()
    pool.acquire = MagicMock(side_effect=acquire)
    return pool


@pytest.fixture
def conn() -> MagicMock:
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=VISIT_COLUMNS)
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    conn.fetchval = AsyncMock(return_value=1)
    return conn


@pytest.fixture
def pg_store(conn: MagicMock, clock: FakeClock) -> PostgresSyncStore:
    return PostgresSyncStore(_make_pool(conn), clock=clock)


class TestUpsert:
    @pytest.mark.asyncio
    async def test_upsert_sql_and_args(
        self, pg_store: PostgresSyncStore, conn: MagicMock, clock: FakeClock
    ) -> None:
        clock.set(5_000)
        async with pg_store.transaction() as txn:
            written = await txn.upsert(
                PATIENTS, {"id": "p1", "note": "hi", "updated_at": ts(4_000), "bogus": 1}
            )

        assert written is True
        query, *args = conn.execute.await_args.args
        assert query.startswith(
            "INSERT INTO patients (id, note, updated_at, server_created_at, last_modified, is_deleted)"
        )
        assert "patients.is_deleted = false" in query
        assert "EXCLUDED.updated_at >= patients.updated_at" in query
        assert "bogus" not in query
        assert args == ["p1", "hi", ts(4_000), ts(5_000), ts(5_000), False]

    @pytest.mark.asyncio
    async def test_upsert_without_conflict_column_has_no_lww_guard(
        self, pg_store: PostgresSyncStore, conn: MagicMock
    ) -> None:
        async with pg_store.transaction() as txn:
            await txn.upsert(PATIENTS, {"id": "p1", "note": "hi"})

        query = conn.execute.await_args.args[0]
        assert "EXCLUDED.updated_at" not in query

    @pytest.mark.asyncio
    async def test_skipped_update_reports_unchanged(
        self, pg_store: PostgresSyncStore, conn: MagicMock
    ) -> None:
        conn.execute.return_value = "INSERT 0 0"
        async with pg_store.transaction() as txn:
            assert await txn.upsert(PATIENTS, {"id": "p1", "note": "hi"}) is False

    @pytest.mark.asyncio
    async def test_columns_are_cached(self, pg_store: PostgresSyncStore, conn: MagicMock) -> None:
        async with pg_store.transaction() as txn:
            await txn.upsert(PATIENTS, {"id": "p1"})
            await txn.upsert(PATIENTS, {"id": "p2"})
        assert conn.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_table(self, pg_store: PostgresSyncStore, conn: MagicMock) -> None:
        conn.fetch.return_value = []
        with pytest.raises(LookupError, match="patients"):
            async with pg_store.transaction() as txn:
                await txn.upsert(PATIENTS, {"id": "p1"})


class TestSoftDelete:
    @pytest.mark.asyncio
    async def test_soft_delete(
        self, pg_store: PostgresSyncStore, conn: MagicMock, clock: FakeClock
    ) -> None:
        conn.execute.return_value = "UPDATE 1"
        clock.set(7_000)
        async with pg_store.transaction() as txn:
            assert await txn.soft_delete(PATIENTS, "p1") is True

        query, record_id, at = conn.execute.await_args.args
        assert query.startswith("UPDATE patients SET is_deleted = true")
        assert (record_id, at) == ("p1", ts(7_000))

    @pytest.mark.asyncio
    async def test_already_deleted(self, pg_store: PostgresSyncStore, conn: MagicMock) -> None:
        conn.execute.return_value = "UPDATE 0"
        async with pg_store.transaction() as txn:
            assert await txn.soft_delete(PATIENTS, "p1") is False


class TestFetchDelta:
    @pytest.mark.asyncio
    async def test_standard_entity_runs_three_queries_in_one_snapshot(
        self, pg_store: PostgresSyncStore, conn: MagicMock
    ) -> None:
        conn.fetch = AsyncMock(side_effect=[[{"id": "p1"}], [{"id": "p2"}], [{"id": "p3"}]])

        batch = await pg_store.fetch_delta(PATIENTS, ts(100))

        assert batch.created == [{"id": "p1"}]
        assert batch.updated == [{"id": "p2"}]
        assert batch.deleted == ["p3"]
        conn.transaction.assert_called_once_with(isolation="repeatable_read", readonly=True)
        queries = [c.args for c in conn.fetch.await_args_list]
        assert queries[0][0].startswith("SELECT * FROM patients WHERE server_created_at > $1")
        assert queries[2][0].startswith("SELECT id FROM patients")
        assert all(q[1] == ts(100) for q in queries)

    @pytest.mark.asyncio
    async def test_create_only_skips_deleted_query(
        self, pg_store: PostgresSyncStore, conn: MagicMock
    ) -> None:
        conn.fetch = AsyncMock(side_effect=[[], []])
        entity = CreateOnlyEntity(server_table="app_config", mobile_table="app_config")

        batch = await pg_store.fetch_delta(entity, ts(0))

        assert conn.fetch.await_count == 2
        assert batch.deleted == []

    @pytest.mark.asyncio
    async def test_always_push_has_no_cursor_argument(
        self, pg_store: PostgresSyncStore, conn: MagicMock
    ) -> None:
        conn.fetch = AsyncMock(return_value=[])
        entity = CreateOnlyEntity(server_table="app_config", mobile_table="app_config", always_push=True)

        await pg_store.fetch_delta(entity, ts(0))

        assert conn.fetch.await_args_list[0].args == ("SELECT * FROM app_config WHERE true",)
        assert conn.fetch.await_count == 1


@pytest.mark.asyncio
async def test_ping(pg_store: PostgresSyncStore, conn: MagicMock) -> None:
    assert await pg_store.ping() is True
    conn.fetchval.assert_awaited_once_with("SELECT 1")
