"""
Append-only audit sink for everything the pipeline produces.

The pipeline only ever writes here; it never reads back. A failed write is
logged as a `PersistenceError` and does not undo the in-memory completion of
the job that produced the record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cascade.config import Settings
from cascade.domain.errors import PersistenceError
from cascade.infrastructure.db_factory import build_dsn, create_async_pool
from cascade.utils.clock import utc_now
from cascade.utils.logging import get_logger

log = get_logger(__name__)


class RecordKind(str, Enum):
    VEHICLE = "vehicle"
    PLATE = "plate"
    PERSON = "person"
    COMPOSITE = "composite"


@runtime_checkable
class AuditStore(Protocol):
    """Write-only persistence contract."""

    async def save(
        self, record_kind: RecordKind, payload: Dict[str, Any], correlation_id: str
    ) -> None:
        ...


@dataclass(frozen=True)
class AuditEntry:
    record_kind: RecordKind
    payload: Dict[str, Any]
    correlation_id: str
    saved_at: datetime = field(default_factory=utc_now)


class InMemoryAuditStore:
    """Keeps entries in a list; the default sink and the one tests inspect."""

    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []

    async def save(
        self, record_kind: RecordKind, payload: Dict[str, Any], correlation_id: str
    ) -> None:
        self.entries.append(AuditEntry(RecordKind(record_kind), payload, correlation_id))

    def of_kind(self, record_kind: RecordKind) -> List[AuditEntry]:
        return [entry for entry in self.entries if entry.record_kind is RecordKind(record_kind)]

    async def close(self) -> None:
        return None


class PostgresAuditStore:
    """
    Stores entries as JSONB rows in a single append-only table.

    The pool is opened lazily on first use so the store can be built outside
    a running event loop.
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        table: str = "cascade_audit",
        pool: Optional[AsyncConnectionPool] = None,
    ) -> None:
        self._dsn = dsn or build_dsn()
        self._table_name = table
        self._table = sql.Identifier(table)
        self._pool = pool
        self._ready = False

    async def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            self._pool = create_async_pool(self._dsn)
        if not self._ready:
            await self._pool.open()
            await self._create_schema(self._pool)
            self._ready = True
        return self._pool

    async def ensure_schema(self) -> None:
        """Open the pool and create the audit table when missing."""
        await self._get_pool()

    async def _create_schema(self, pool: AsyncConnectionPool) -> None:
        statement = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                record_kind TEXT NOT NULL,
                correlation_id TEXT NOT NULL,
                payload JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            );
            CREATE INDEX IF NOT EXISTS {index} ON {table} (correlation_id);
            """
        ).format(
            table=self._table,
            index=sql.Identifier(f"{self._table_name}_correlation_idx"),
        )
        async with pool.connection() as conn:
            await conn.execute(statement)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(psycopg.OperationalError),
        reraise=True,
    )
    async def save(
        self, record_kind: RecordKind, payload: Dict[str, Any], correlation_id: str
    ) -> None:
        pool = await self._get_pool()
        statement = sql.SQL(
            "INSERT INTO {table} (record_kind, correlation_id, payload) VALUES (%s, %s, %s)"
        ).format(table=self._table)
        async with pool.connection() as conn:
            await conn.execute(
                statement, (RecordKind(record_kind).value, correlation_id, Jsonb(payload))
            )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._ready = False


def build_audit_store(settings: Settings) -> AuditStore:
    """Pick the audit sink named by `AUDIT_BACKEND`."""
    if settings.audit_backend == "postgres":
        return PostgresAuditStore(dsn=build_dsn(settings), table=settings.audit_table)
    return InMemoryAuditStore()


async def persist_record(
    store: AuditStore,
    record_kind: RecordKind,
    payload: Dict[str, Any],
    correlation_id: str,
) -> bool:
    """
    Save one record, logging instead of raising on failure.

    Returns whether the write went through.
    """
    try:
        await store.save(record_kind, payload, correlation_id)
    except Exception as exc:  # noqa: BLE001 - audit failures never fail the job
        error = PersistenceError(f"could not persist {RecordKind(record_kind).value}: {exc}")
        log.warning(
            f"[AUDIT FAILED] {error}",
            extra={
                "record_kind": RecordKind(record_kind).value,
                "correlation_id": correlation_id,
                "error_type": type(exc).__name__,
            },
        )
        return False
    return True


__all__ = [
    "RecordKind",
    "AuditStore",
    "AuditEntry",
    "InMemoryAuditStore",
    "PostgresAuditStore",
    "build_audit_store",
    "persist_record",
]
