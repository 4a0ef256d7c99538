"""
Per-tier pacing and per-job retry scheduling.

The rate controller enforces a fixed minimum interval between two dispatches
of the same tier; tiers never wait on each other. Backoff for failed lookups
is not the controller's business: it lives in `RetryPolicy` and is applied to
the job itself (`next_retry_at`).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional

from cascade.domain.models import Job, Tier
from cascade.utils.clock import Clock, utc_now


@dataclass
class RateState:
    """Dispatch bookkeeping for one tier."""

    min_delay: timedelta
    last_dispatch_at: Optional[datetime] = None
    next_allowed_at: Optional[datetime] = None


class RateController:
    """
    Tracks the last dispatch of every tier and answers "may this tier go now?".

    Parameters
    ----------
    delays : Mapping[Tier, float]
        Minimum seconds between two dispatches, per tier.
    clock : Clock
        Source of the current time when callers do not pass `now`.
    """

    def __init__(self, delays: Mapping[Tier, float], clock: Clock = utc_now) -> None:
        missing = [tier.value for tier in Tier if tier not in delays]
        if missing:
            raise ValueError(f"Missing rate delay for tier(s): {', '.join(missing)}")
        self._clock = clock
        self._lock = threading.Lock()
        self._states: Dict[Tier, RateState] = {
            tier: RateState(min_delay=timedelta(seconds=float(delays[tier]))) for tier in Tier
        }

    def min_delay(self, tier: Tier) -> timedelta:
        return self._states[tier].min_delay

    def state(self, tier: Tier) -> RateState:
        """Copy of the tier's state, safe to hand out to readers."""
        with self._lock:
            return replace(self._states[tier])

    def is_ready(self, tier: Tier, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        with self._lock:
            next_allowed = self._states[tier].next_allowed_at
        return next_allowed is None or now >= next_allowed

    def remaining(self, tier: Tier, now: Optional[datetime] = None) -> timedelta:
        now = now or self._clock()
        with self._lock:
            next_allowed = self._states[tier].next_allowed_at
        if next_allowed is None:
            return timedelta(0)
        return max(timedelta(0), next_allowed - now)

    def mark_dispatched(self, tier: Tier, at: Optional[datetime] = None) -> RateState:
        at = at or self._clock()
        with self._lock:
            state = self._states[tier]
            state.last_dispatch_at = at
            state.next_allowed_at = at + state.min_delay
            return replace(state)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Linear backoff: the n-th failed attempt waits `backoff * n` before the
    job becomes eligible again.
    """

    max_attempts: int = 3
    backoff: timedelta = timedelta(seconds=60)

    def delay_for(self, attempts: int) -> timedelta:
        return self.backoff * max(1, attempts)

    def should_retry(self, job: Job, error: BaseException) -> bool:
        if not getattr(error, "retryable", True):
            return False
        return job.attempts < job.max_attempts


__all__ = ["RateState", "RateController", "RetryPolicy"]
