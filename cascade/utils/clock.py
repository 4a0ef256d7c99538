"""
Clock helpers.

Every time-dependent component (rate controller, queues, cache TTL, retry
scheduling) takes a zero-argument callable returning an aware UTC datetime,
so tests can drive time explicitly instead of sleeping.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


__all__ = ["Clock", "utc_now"]
