"""
Tier dispatcher base class.

One dispatcher owns one tier queue. Its ticker wakes up at a fixed polling
interval, picks the next eligible job, checks the tier's rate state and, when
allowed, launches the agent call as a separate task so the tick itself never
waits on the network. At most one such task exists per tier.

Concrete tiers (vehicle, plate, person) implement the agent call and what
happens with its result: persistence, caching and fan-out into the next tier.
"""

from __future__ import annotations

import abc
import asyncio
import math
import time
from typing import Any, Awaitable, ClassVar, Generic, Optional, TypeVar

from cascade.agent import ExtractionAgent
from cascade.domain.errors import ExtractionError
from cascade.domain.models import Job, Tier
from cascade.infrastructure.audit_store import AuditStore
from cascade.scheduling.cache import ResultCache
from cascade.scheduling.queues import TierQueue
from cascade.scheduling.rate import RateController, RetryPolicy
from cascade.utils.clock import Clock, utc_now
from cascade.utils.logging import get_logger

log = get_logger(__name__)

J = TypeVar("J", bound=Job)
R = TypeVar("R")


class TierDispatcher(abc.ABC, Generic[J, R]):
    """
    Sequential, rate-gated executor for the jobs of one tier.

    Subclasses set `tier` and implement `_extract` and `_complete`; they may
    override `_is_cached` / `_complete_from_cache` to short-circuit jobs whose
    result is already known.
    """

    tier: ClassVar[Tier]

    def __init__(
        self,
        *,
        agent: ExtractionAgent,
        rate: RateController,
        cache: ResultCache,
        store: AuditStore,
        retry_policy: RetryPolicy,
        clock: Clock = utc_now,
        poll_interval: float = 5.0,
        agent_timeout: float = 120.0,
    ) -> None:
        self.queue: TierQueue[J] = TierQueue(self.tier)
        self.agent = agent
        self.rate = rate
        self.cache = cache
        self.store = store
        self.retry_policy = retry_policy
        self.poll_interval = poll_interval
        self.agent_timeout = agent_timeout
        self._clock = clock
        self._in_flight: Optional[asyncio.Task[None]] = None
        self._stopped = False

    @property
    def tag(self) -> str:
        return self.tier.value.upper()

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        self._stopped = True

    # ------------------------------------------------------------------
    # Tier-specific behavior
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _extract(self, job: J) -> R:  # pragma: no cover - interface only
        """Call the agent for `job` and map its answer onto domain records."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _complete(self, job: J, result: R, latency_ms: int) -> None:  # pragma: no cover
        """Persist, cache and fan out a successful result."""
        raise NotImplementedError

    def _is_cached(self, job: J) -> bool:
        return False

    async def _complete_from_cache(self, job: J) -> None:
        return None

    # ------------------------------------------------------------------
    # Queue entry
    # ------------------------------------------------------------------

    def _attach(self, holder: J, job: J) -> bool:
        """
        Hand the chain carried by duplicate `job` over to `holder`, which
        continues it once its own lookup completes. Returns whether it did.
        """
        return False

    def _admit(self, job: J) -> bool:
        if not self.queue.add(job):
            holder = self.queue.holder(job.dedup_key) if job.dedup_key else None
            attached = holder is not None and self._attach(holder, job)
            log.info(
                f"[{self.tag} DUPLICATE] {job.label} already queued"
                + (", chain attached" if attached else ""),
                extra={
                    "tier": self.tier.value,
                    "existing_job_id": holder.id if holder else None,
                    "chain_attached": attached,
                },
            )
            return False
        log.info(
            f"[{self.tag} QUEUED] {job.label}",
            extra={"tier": self.tier.value, "job_id": job.id, "priority": job.priority.value},
        )
        return True

    # ------------------------------------------------------------------
    # Tick / dispatch
    # ------------------------------------------------------------------

    def tick(self) -> Optional[asyncio.Task[None]]:
        """
        Run one scheduling step.

        Returns the task launched for the selected job, or None when the tier
        is busy, stopped, idle or still inside its rate window.
        """
        if self._stopped or self._in_flight is not None:
            return None
        loop = asyncio.get_running_loop()
        now = self._clock()

        job = self.queue.next_candidate(now)
        if job is None:
            return None

        if self._is_cached(job):
            log.info(
                f"[{self.tag} CACHE HIT] {job.label} already fetched",
                extra={"tier": self.tier.value, "job_id": job.id},
            )
            self.queue.mark_processing(job)
            return self._launch(loop, self._finish_from_cache(job))

        if not self.rate.is_ready(self.tier, now):
            remaining = self.rate.remaining(self.tier, now).total_seconds()
            log.debug(
                f"[{self.tag} WAIT] {math.ceil(remaining)}s until next dispatch",
                extra={"tier": self.tier.value, "remaining_seconds": remaining},
            )
            return None

        self.queue.mark_processing(job)
        state = self.rate.mark_dispatched(self.tier, now)
        log.info(
            f"[{self.tag} DISPATCH] {job.label} (attempt {job.attempts}/{job.max_attempts})",
            extra={
                "tier": self.tier.value,
                "job_id": job.id,
                "attempt": job.attempts,
                "next_allowed_at": state.next_allowed_at.isoformat() if state.next_allowed_at else None,
            },
        )
        return self._launch(loop, self._dispatch(job))

    def _launch(self, loop: asyncio.AbstractEventLoop, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = loop.create_task(coro, name=f"{self.tier.value}-dispatch")  # type: ignore[arg-type]
        self._in_flight = task
        return task

    async def _call_agent(self, job: J) -> R:
        """Agent call bounded by the timeout; every failure becomes an ExtractionError."""
        try:
            return await asyncio.wait_for(self._extract(job), timeout=self.agent_timeout)
        except ExtractionError:
            raise
        except asyncio.TimeoutError:
            raise ExtractionError(f"agent timed out after {self.agent_timeout:g}s") from None
        except Exception as exc:  # noqa: BLE001 - unexpected agent failures are retried like any other
            log.exception(
                f"[{self.tag} AGENT ERROR] {job.label}",
                extra={"tier": self.tier.value, "job_id": job.id},
            )
            raise ExtractionError(f"{type(exc).__name__}: {exc}") from exc

    async def _dispatch(self, job: J) -> None:
        started = time.perf_counter()
        try:
            try:
                result = await self._call_agent(job)
            except ExtractionError as exc:
                if self._discard_after_stop(job):
                    return
                self._record_failure(job, exc)
                return

            if self._discard_after_stop(job):
                return
            latency_ms = int((time.perf_counter() - started) * 1000)
            try:
                await self._complete(job, result, latency_ms)
            except Exception as exc:  # noqa: BLE001 - keep the tier alive, retry the job
                log.exception(
                    f"[{self.tag} COMPLETION ERROR] {job.label}",
                    extra={"tier": self.tier.value, "job_id": job.id},
                )
                self._record_failure(job, ExtractionError(f"{type(exc).__name__}: {exc}"))
                return

            self.queue.mark_done(job, self._clock())
            log.info(
                f"[{self.tag} DONE] {job.label} in {latency_ms}ms",
                extra={"tier": self.tier.value, "job_id": job.id, "latency_ms": latency_ms},
            )
        finally:
            self._in_flight = None

    async def _finish_from_cache(self, job: J) -> None:
        try:
            try:
                await self._complete_from_cache(job)
            except Exception as exc:  # noqa: BLE001 - same handling as a failed completion
                log.exception(
                    f"[{self.tag} COMPLETION ERROR] {job.label} (from cache)",
                    extra={"tier": self.tier.value, "job_id": job.id},
                )
                self._record_failure(job, ExtractionError(f"{type(exc).__name__}: {exc}"))
                return
            self.queue.mark_done(job, self._clock())
        finally:
            self._in_flight = None

    def _discard_after_stop(self, job: J) -> bool:
        if not self._stopped:
            return False
        log.info(
            f"[{self.tag} DISCARDED] result for {job.label} arrived after stop",
            extra={"tier": self.tier.value, "job_id": job.id},
        )
        return True

    def _record_failure(self, job: J, error: ExtractionError) -> None:
        now = self._clock()
        extra: dict[str, Any] = {
            "tier": self.tier.value,
            "job_id": job.id,
            "attempt": job.attempts,
            "max_attempts": job.max_attempts,
            "error": str(error),
        }
        if self.retry_policy.should_retry(job, error):
            retry_at = now + self.retry_policy.delay_for(job.attempts)
            self.queue.mark_failed(job, str(error), retry_at)
            log.warning(
                f"[{self.tag} RETRY] {job.label} failed (attempt {job.attempts}/{job.max_attempts}), "
                f"next try at {retry_at.isoformat()}",
                extra=extra,
            )
        else:
            self.queue.mark_failed(job, str(error), None)
            log.error(
                f"[{self.tag} FAILED] {job.label} gave up after {job.attempts} attempt(s): {error}",
                extra=extra,
            )

    # ------------------------------------------------------------------
    # Ticker
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Tick every `poll_interval` seconds until stopped or cancelled."""
        log.info(
            f"[{self.tag} TICKER] started",
            extra={"tier": self.tier.value, "poll_interval": self.poll_interval},
        )
        try:
            while not self._stopped:
                try:
                    self.tick()
                except Exception:  # noqa: BLE001 - a faulty tick must not kill the ticker
                    log.exception(f"[{self.tag} TICK FAILED]", extra={"tier": self.tier.value})
                await asyncio.sleep(self.poll_interval)
        finally:
            log.info(f"[{self.tag} TICKER] stopped", extra={"tier": self.tier.value})


__all__ = ["TierDispatcher"]
