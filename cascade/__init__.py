"""
Plate Cascade - rate-limited, three-tier lookup pipeline.

A vehicle search (model, color, years) lists vehicles; every plate found is
looked up for its registered owner; every owner's national id is looked up
for the person's civil record. The three tiers run independently, each paced
by its own minimum dispatch interval, and the finished chains are joined into
composite records:

- Per-tier queues with deduplication, priorities and linear retry backoff
- A shared result cache so no plate or person is fetched twice
- An append-only audit sink (in memory or PostgreSQL)

The actual retrieval is delegated to an `ExtractionAgent` supplied by the
caller.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from cascade.agent import ExtractionAgent, load_agent
from cascade.config import Settings, get_settings
from cascade.domain.errors import (
    CascadeError,
    ExtractionError,
    RecordNotFoundError,
    ValidationError,
)
from cascade.domain.models import (
    CompositeRecord,
    PersonRecord,
    PlateRecord,
    Priority,
    SearchRequest,
    Tier,
    VehicleRecord,
)
from cascade.infrastructure.audit_store import InMemoryAuditStore, PostgresAuditStore
from cascade.orchestrator import CascadePipeline
from cascade.statistics import StatsSnapshot, format_duration
from cascade.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Pipeline
    "CascadePipeline",
    "StatsSnapshot",
    "format_duration",
    # Agent contract
    "ExtractionAgent",
    "load_agent",
    # Records
    "SearchRequest",
    "Priority",
    "Tier",
    "VehicleRecord",
    "PlateRecord",
    "PersonRecord",
    "CompositeRecord",
    # Errors
    "CascadeError",
    "ValidationError",
    "ExtractionError",
    "RecordNotFoundError",
    # Audit
    "InMemoryAuditStore",
    "PostgresAuditStore",
    # Logging
    "configure_logging",
    "get_logger",
]
