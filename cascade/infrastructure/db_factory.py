"""
Database connection factory utilities for the audit store.

Composes the PostgreSQL DSN from settings and builds async connections and
pools. One-off connections retry transient failures using tenacity; pools
are owned by whoever creates them (the Postgres audit store closes its own).
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cascade.config import Settings, get_settings


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
    reraise=True,
)
async def get_async_connection(dsn: Optional[str] = None) -> AsyncConnection:
    """
    Acquire an asynchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off operations (schema bootstrap, health checks).

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return await AsyncConnection.connect(dsn or build_dsn(), autocommit=True)


def create_async_pool(
    dsn: Optional[str] = None, min_size: int = 1, max_size: int = 4
) -> AsyncConnectionPool:
    """
    Build an unopened asynchronous connection pool.

    The caller opens it (`await pool.open()`) inside a running event loop and
    is responsible for closing it.
    """
    return AsyncConnectionPool(
        conninfo=dsn or build_dsn(),
        min_size=min_size,
        max_size=max_size,
        open=False,
    )


__all__ = [
    "build_dsn",
    "get_async_connection",
    "create_async_pool",
]
