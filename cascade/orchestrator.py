"""
Pipeline orchestrator: wires the three tiers, the shared cache, the rate
controller, the relationship builder and the audit sink into one object.

Usage (example from an async entry point):
    from cascade.orchestrator import CascadePipeline

    async with CascadePipeline(agent) as pipeline:
        pipeline.enqueue_vehicle_search({"model": "CIVIC", "color": "BLACK", "year_start": 2018})
        await pipeline.run_until_idle(timeout=600)
        print(pipeline.get_statistics())
        print(pipeline.composites)

Nothing here is global: several pipelines may live in one process, each
with its own queues, cache and pacing.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from cascade.agent import ExtractionAgent
from cascade.config import Settings, get_settings
from cascade.domain.models import CompositeRecord, SearchRequest, Tier, new_id
from cascade.infrastructure.audit_store import AuditStore, build_audit_store
from cascade.relationships import RelationshipBuilder
from cascade.scheduling.cache import ResultCache
from cascade.scheduling.rate import RateController, RetryPolicy
from cascade.statistics import StatsSnapshot, TierEta, collect_statistics, estimate_eta
from cascade.tiers import PersonDispatcher, PlateDispatcher, TierDispatcher, VehicleDispatcher
from cascade.utils.clock import Clock, utc_now
from cascade.utils.logging import get_logger

log = get_logger(__name__)

SearchInput = Union[SearchRequest, Mapping[str, Any]]


class CascadePipeline:
    """
    Three-tier lookup cascade: vehicle search → plate owner → person.

    Parameters
    ----------
    agent : ExtractionAgent
        Performs the actual lookups.
    store : AuditStore | None
        Audit sink. Defaults to the backend named by `AUDIT_BACKEND`; a store
        built here is also closed here.
    settings : Settings | None
        Defaults to the cached environment settings.
    clock : Clock | None
        Time source for pacing, retries and timestamps.
    """

    def __init__(
        self,
        agent: ExtractionAgent,
        store: Optional[AuditStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._clock = clock or utc_now
        self._owns_store = store is None
        self.store: AuditStore = store if store is not None else build_audit_store(self.settings)

        s = self.settings
        self.cache = ResultCache(s.cache_ttl_seconds, self._clock)
        self.rate = RateController(
            {
                Tier.VEHICLE: s.vehicle_delay_seconds,
                Tier.PLATE: s.plate_delay_seconds,
                Tier.PERSON: s.person_delay_seconds,
            },
            self._clock,
        )
        self.retry_policy = RetryPolicy(
            max_attempts=s.max_attempts, backoff=timedelta(seconds=s.retry_backoff_seconds)
        )
        self.builder = RelationshipBuilder(self.cache, self.store, self._clock)

        shared: Dict[str, Any] = {
            "agent": agent,
            "rate": self.rate,
            "cache": self.cache,
            "store": self.store,
            "retry_policy": self.retry_policy,
            "clock": self._clock,
            "poll_interval": s.poll_interval_seconds,
            "agent_timeout": s.agent_timeout_seconds,
        }
        self.person = PersonDispatcher(builder=self.builder, **shared)
        self.plate = PlateDispatcher(downstream=self.person, **shared)
        self.vehicle = VehicleDispatcher(downstream=self.plate, **shared)

        self._tickers: List[asyncio.Task[None]] = []
        self._stopped = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def dispatchers(self) -> Dict[Tier, TierDispatcher]:
        return {Tier.VEHICLE: self.vehicle, Tier.PLATE: self.plate, Tier.PERSON: self.person}

    @property
    def composites(self) -> List[CompositeRecord]:
        return self.builder.composites

    @property
    def running(self) -> bool:
        return bool(self._tickers) and not self._stopped

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue_vehicle_search(self, request: SearchInput) -> str:
        """
        Validate and queue one vehicle search; returns the job id.

        Raises
        ------
        ValidationError
            If the search parameters are malformed. Nothing is queued.
        """
        search = SearchRequest.parse(request)
        return self.vehicle.enqueue(search).id

    def enqueue_vehicle_search_batch(self, requests: Iterable[SearchInput]) -> List[str]:
        """
        Queue several searches under one batch id.

        All requests are validated first: one malformed entry rejects the
        whole batch.
        """
        searches = [SearchRequest.parse(request) for request in requests]
        batch_id = new_id("batch")
        job_ids = [
            self.vehicle.enqueue(search.model_copy(update={"batch_id": batch_id})).id
            for search in searches
        ]
        log.info(
            f"[BATCH] {len(job_ids)} search(es) queued",
            extra={"batch_id": batch_id, "job_ids": job_ids},
        )
        return job_ids

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_statistics(self) -> StatsSnapshot:
        return collect_statistics(
            self.dispatchers, self.rate, self.cache, len(self.builder), self._clock
        )

    def get_eta_estimates(self) -> Dict[str, TierEta]:
        return estimate_eta(self.dispatchers, self.rate)

    def purge_completed_jobs(self) -> int:
        """Drop `done` jobs from every queue; returns how many were removed."""
        removed = {tier.value: d.queue.purge_done() for tier, d in self.dispatchers.items()}
        total = sum(removed.values())
        log.info(f"[PURGE] removed {total} completed job(s)", extra={"removed": removed})
        return total

    def is_idle(self) -> bool:
        """True when no tier has work left to dispatch or a call in flight."""
        return all(
            not d.in_flight and not d.queue.has_open_jobs() for d in self.dispatchers.values()
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def tick(self) -> List[asyncio.Task[None]]:
        """Run one scheduling step on every tier; returns the launched tasks."""
        tasks = [d.tick() for d in self.dispatchers.values()]
        return [task for task in tasks if task is not None]

    def start(self) -> None:
        """Launch one ticker task per tier on the running event loop."""
        if self._stopped:
            raise RuntimeError("A stopped pipeline cannot be restarted")
        if self._tickers:
            return
        loop = asyncio.get_running_loop()
        self._tickers = [
            loop.create_task(d.run(), name=f"{tier.value}-ticker")
            for tier, d in self.dispatchers.items()
        ]
        s = self.settings
        log.info(
            "[PIPELINE START]",
            extra={
                "vehicle_delay": s.vehicle_delay_seconds,
                "plate_delay": s.plate_delay_seconds,
                "person_delay": s.person_delay_seconds,
                "poll_interval": s.poll_interval_seconds,
                "max_attempts": s.max_attempts,
            },
        )

    def stop(self) -> None:
        """
        Halt every ticker. Calls already in flight are left to finish; their
        results are discarded.
        """
        if self._stopped:
            return
        self._stopped = True
        for dispatcher in self.dispatchers.values():
            dispatcher.stop()
        for task in self._tickers:
            task.cancel()
        log.info(
            "[PIPELINE STOP]",
            extra={"in_flight": [t.value for t, d in self.dispatchers.items() if d.in_flight]},
        )

    async def aclose(self) -> None:
        """Stop, wait for the tickers to wind down and close an owned store."""
        self.stop()
        if self._tickers:
            await asyncio.gather(*self._tickers, return_exceptions=True)
        close = getattr(self.store, "close", None)
        if self._owns_store and close is not None:
            await close()

    async def run_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Start the tickers if needed and wait until every tier is idle.

        Returns False when `timeout` seconds elapse first, or when the pipeline
        is stopped with work left over.
        """
        if not self._tickers and not self._stopped:
            self.start()
        check_every = min(0.1, self.settings.poll_interval_seconds)

        async def _wait() -> None:
            while not self.is_idle() and not self._stopped:
                await asyncio.sleep(check_every)

        try:
            await asyncio.wait_for(_wait(), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning(
                f"[PIPELINE TIMEOUT] still busy after {timeout:g}s",
                extra={"eta": self.get_eta_estimates()},
            )
            return False
        if self.is_idle():
            return True
        log.warning(
            "[PIPELINE STOPPED] work left unfinished",
            extra={"eta": self.get_eta_estimates()},
        )
        return False

    async def __aenter__(self) -> "CascadePipeline":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["CascadePipeline", "SearchInput"]
