"""
Extraction agent contract.

The agent is the external collaborator doing the actual site-specific
retrieval (a browser extension, a scraper, a paid API). The pipeline only
needs these three coroutines; how commands reach the agent is the agent's
own concern.
"""

from __future__ import annotations

import importlib
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from cascade.domain.models import PersonRecord, PlateRecord, VehicleRecord


@runtime_checkable
class ExtractionAgent(Protocol):
    """
    Common interface every extraction agent must implement.

    Each method may raise `ExtractionError` (retried) or
    `RecordNotFoundError` (terminal).
    """

    async def extract_vehicles(
        self,
        model: str,
        color: str,
        year_start: int,
        year_end: Optional[int] = None,
    ) -> List[VehicleRecord]:
        """List vehicles matching the search; may be empty."""
        ...

    async def extract_plate_owner(self, plate: str) -> PlateRecord:
        """Registry record for one plate."""
        ...

    async def extract_person(self, national_id: str) -> PersonRecord:
        """Civil registry record for one national id."""
        ...


def load_agent(path: str, **kwargs: Any) -> ExtractionAgent:
    """
    Resolve `"package.module:attribute"` and build an agent from it.

    The attribute may be a class or a factory callable; it is called with
    `kwargs`. A ready-made instance is returned as is.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Agent path must look like 'package.module:factory', got '{path}'")
    target = getattr(importlib.import_module(module_name), attr)
    if isinstance(target, type) or not isinstance(target, ExtractionAgent):
        agent = target(**kwargs) if callable(target) else target
    else:
        agent = target
    if isinstance(agent, type) or not isinstance(agent, ExtractionAgent):
        raise TypeError(f"'{path}' did not produce an ExtractionAgent")
    return agent


AgentFactory = Callable[..., ExtractionAgent]

__all__ = ["ExtractionAgent", "AgentFactory", "load_agent"]
