from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Tuple

import pytest
from psycopg.types.json import Jsonb

from cascade.config import Settings
from cascade.infrastructure.audit_store import (
    InMemoryAuditStore,
    PostgresAuditStore,
    RecordKind,
    build_audit_store,
    persist_record,
)
from cascade.infrastructure.db_factory import build_dsn

SCHEMA_AND_INSERT = 2


class _FakeConnection:
    def __init__(self, pool: "_FakePool") -> None:
        self._pool = pool

    async def execute(self, statement: Any, params: Optional[Tuple[Any, ...]] = None) -> None:
        if self._pool.closed:
            raise RuntimeError("pool is already closed")
        self._pool.executed.append((statement, params))


class _FakePool:
    def __init__(self) -> None:
        self.executed: List[Tuple[Any, Optional[Tuple[Any, ...]]]] = []
        self.open_calls = 0
        self.closed = False

    async def open(self) -> None:
        self.open_calls += 1

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[_FakeConnection]:
        yield _FakeConnection(self)

    async def close(self) -> None:
        self.closed = True


class _ExplodingStore:
    async def save(self, record_kind, payload, correlation_id) -> None:
        raise ConnectionError("connection refused")


@pytest.mark.asyncio
async def test_in_memory_store_keeps_entries_by_kind() -> None:
    store = InMemoryAuditStore()
    await store.save(RecordKind.PLATE, {"plate": "ABC1234"}, "vehicle_1")
    await store.save("person", {"nationalId": "52998224725"}, "vehicle_1")

    assert [e.record_kind for e in store.entries] == [RecordKind.PLATE, RecordKind.PERSON]
    assert store.of_kind(RecordKind.PERSON)[0].payload == {"nationalId": "52998224725"}


@pytest.mark.asyncio
async def test_postgres_store_bootstraps_schema_once_and_inserts_jsonb() -> None:
    pool = _FakePool()
    store = PostgresAuditStore(dsn="postgresql://u:p@db:5432/x", table="audit_test", pool=pool)

    await store.save(RecordKind.PLATE, {"plate": "ABC1234"}, "vehicle_1")
    await store.save(RecordKind.PERSON, {"name": "MARIA"}, "vehicle_1")

    assert pool.open_calls == 1
    assert len(pool.executed) == SCHEMA_AND_INSERT + 1
    schema, _ = pool.executed[0]
    assert "audit_test" in repr(schema)
    _, params = pool.executed[1]
    assert params[0] == "plate" and params[1] == "vehicle_1"
    assert isinstance(params[2], Jsonb) and params[2].obj == {"plate": "ABC1234"}

    await store.close()
    assert pool.closed


@pytest.mark.asyncio
async def test_persist_record_reports_failures_without_raising(
    caplog: pytest.LogCaptureFixture,
) -> None:
    ok = await persist_record(InMemoryAuditStore(), RecordKind.VEHICLE, {}, "vehicle_1")
    failed = await persist_record(_ExplodingStore(), RecordKind.VEHICLE, {}, "vehicle_1")

    assert ok is True
    assert failed is False
    assert any("[AUDIT FAILED] could not persist vehicle" in m for m in caplog.messages)


def test_build_audit_store_follows_backend_setting() -> None:
    memory = build_audit_store(Settings(_env_file=None, audit_backend="memory"))
    postgres = build_audit_store(
        Settings(_env_file=None, audit_backend="postgres", db_host="audit-db", audit_table="trail")
    )

    assert isinstance(memory, InMemoryAuditStore)
    assert isinstance(postgres, PostgresAuditStore)


def test_build_dsn_from_settings() -> None:
    settings = Settings(
        _env_file=None, db_user="svc", db_password="pw", db_host="db", db_port=6543, db_name="cascade"
    )

    assert build_dsn(settings) == "postgresql://svc:pw@db:6543/cascade"
