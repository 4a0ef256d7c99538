"""
Read-only statistics over a running pipeline.

Snapshots are built from copies: reading them never touches queue, cache or
rate state, so they are safe to take at any time, from any thread.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, Mapping, Optional, TypedDict

from pydantic import BaseModel, ConfigDict

from cascade.domain.models import Tier
from cascade.scheduling.cache import ResultCache
from cascade.scheduling.rate import RateController
from cascade.tiers.abstract import TierDispatcher
from cascade.utils.clock import Clock, utc_now


class TierStats(BaseModel):
    tier: Tier
    total: int = 0
    pending: int = 0
    processing: int = 0
    done: int = 0
    error: int = 0
    in_flight: bool = False
    remaining_wait_seconds: float = 0.0
    last_dispatch_at: Optional[datetime] = None
    next_allowed_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class CacheStats(BaseModel):
    vehicles: int = 0
    plates: int = 0
    persons: int = 0
    composites: int = 0

    model_config = ConfigDict(frozen=True)


class StatsSnapshot(BaseModel):
    generated_at: datetime
    tiers: Dict[str, TierStats]
    cache: CacheStats

    model_config = ConfigDict(frozen=True)

    def tier(self, tier: Tier) -> TierStats:
        return self.tiers[Tier(tier).value]


class TierEta(TypedDict):
    pending: int
    eta_seconds: int
    eta_formatted: str


def format_duration(seconds: float) -> str:
    """
    Render a duration as `"1h 2m 3s"`, `"2m 3s"` or `"3s"`.

    Leading zero units are dropped; seconds are always shown.
    """
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def collect_statistics(
    dispatchers: Mapping[Tier, TierDispatcher],
    rate: RateController,
    cache: ResultCache,
    composites: int,
    clock: Clock = utc_now,
) -> StatsSnapshot:
    now = clock()
    tiers: Dict[str, TierStats] = {}
    for tier, dispatcher in dispatchers.items():
        counts = dispatcher.queue.counts()
        state = rate.state(tier)
        tiers[tier.value] = TierStats(
            tier=tier,
            total=counts["total"],
            pending=counts["pending"],
            processing=counts["processing"],
            done=counts["done"],
            error=counts["error"],
            in_flight=dispatcher.in_flight,
            remaining_wait_seconds=rate.remaining(tier, now).total_seconds(),
            last_dispatch_at=state.last_dispatch_at,
            next_allowed_at=state.next_allowed_at,
        )
    sizes = cache.sizes()
    return StatsSnapshot(
        generated_at=now,
        tiers=tiers,
        cache=CacheStats(
            vehicles=sizes["vehicles"],
            plates=sizes["plates"],
            persons=sizes["persons"],
            composites=composites,
        ),
    )


def estimate_eta(
    dispatchers: Mapping[Tier, TierDispatcher], rate: RateController
) -> Dict[str, TierEta]:
    """Backlog of each tier times its minimum dispatch interval."""
    estimates: Dict[str, TierEta] = {}
    for tier, dispatcher in dispatchers.items():
        backlog = dispatcher.queue.backlog()
        seconds = math.ceil(backlog * rate.min_delay(tier).total_seconds())
        estimates[tier.value] = TierEta(
            pending=backlog,
            eta_seconds=seconds,
            eta_formatted=format_duration(seconds),
        )
    return estimates


__all__ = [
    "TierStats",
    "CacheStats",
    "StatsSnapshot",
    "TierEta",
    "format_duration",
    "collect_statistics",
    "estimate_eta",
]
