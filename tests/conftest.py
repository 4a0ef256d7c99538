"""
Pytest configuration for the cascade pipeline.

Provides fixtures for:
- A controllable clock so pacing and retries can be tested without sleeping
- A scripted extraction agent with per-identifier answers and failures
- Settings and pipeline construction with an in-memory audit store
- The DSN used by the PostgreSQL integration tests
"""

from __future__ import annotations

import os

import pytest

from cascade.config import Settings, get_settings
from cascade.infrastructure.audit_store import InMemoryAuditStore
from cascade.orchestrator import CascadePipeline
from tests.helpers import FakeClock, ScriptedAgent


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def agent() -> ScriptedAgent:
    return ScriptedAgent()


@pytest.fixture
def store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def settings() -> Settings:
    """
    Production pacing: 30s per tier, 60s linear backoff, 3 attempts.

    Built from explicit values so the environment cannot skew the scenarios.
    """
    return Settings(
        _env_file=None,
        vehicle_delay_seconds=30,
        plate_delay_seconds=30,
        person_delay_seconds=30,
        poll_interval_seconds=5,
        max_attempts=3,
        retry_backoff_seconds=60,
        agent_timeout_seconds=120,
        cache_ttl_seconds=None,
        audit_backend="memory",
    )


@pytest.fixture
def pipeline(
    agent: ScriptedAgent, store: InMemoryAuditStore, settings: Settings, clock: FakeClock
) -> CascadePipeline:
    return CascadePipeline(agent, store=store, settings=settings, clock=clock)


@pytest.fixture
def clear_settings_cache():
    """Drop the cached settings before and after a test that edits the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_dsn() -> str:
    """
    Database connection string for the PostgreSQL integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return (
        f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', 'postgres')}"
        f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}"
        f"/{os.getenv('DB_NAME', 'plate_cascade')}"
    )
