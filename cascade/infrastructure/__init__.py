"""
Infrastructure package for the cascade pipeline.

Centralizes the audit store and its database connectivity (DSN, async
connections, pools). Keep this layer focused on I/O and resource management,
decoupled from the scheduling and tier logic.
"""

from cascade.infrastructure.audit_store import (
    AuditEntry,
    AuditStore,
    InMemoryAuditStore,
    PostgresAuditStore,
    RecordKind,
    build_audit_store,
    persist_record,
)
from cascade.infrastructure.db_factory import build_dsn, create_async_pool, get_async_connection

__all__ = [
    "AuditEntry",
    "AuditStore",
    "InMemoryAuditStore",
    "PostgresAuditStore",
    "RecordKind",
    "build_audit_store",
    "persist_record",
    "build_dsn",
    "create_async_pool",
    "get_async_connection",
]
