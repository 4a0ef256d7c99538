"""
Scheduling primitives: per-tier pacing, retry policy, result cache and queues.

These pieces hold state only; the tier dispatchers in `cascade.tiers` drive
them.
"""

from cascade.scheduling.cache import CacheNamespace, ResultCache
from cascade.scheduling.queues import TierQueue
from cascade.scheduling.rate import RateController, RateState, RetryPolicy

__all__ = [
    "CacheNamespace",
    "ResultCache",
    "TierQueue",
    "RateController",
    "RateState",
    "RetryPolicy",
]
