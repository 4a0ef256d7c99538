"""
Result cache: records already fetched, keyed by their natural identifier.

The `plates` and `persons` namespaces are the dedup source of truth: a key
present there is never looked up again while the entry lives. `vehicles`
keeps every vehicle record collected by a search so chains can be joined
later; it plays no part in dedup.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from cascade.domain.models import PersonRecord, PlateRecord, VehicleRecord
from cascade.utils.clock import Clock, utc_now

V = TypeVar("V")


class CacheNamespace(Generic[V]):
    """
    One keyed store guarded by its own lock.

    With `ttl` unset entries live for the whole process; otherwise an entry
    older than `ttl` behaves as absent and is dropped on the next access.
    """

    def __init__(self, name: str, ttl: Optional[timedelta] = None, clock: Clock = utc_now) -> None:
        self.name = name
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[V, datetime]] = {}

    def _expired(self, stored_at: datetime, now: datetime) -> bool:
        return self._ttl is not None and now - stored_at >= self._ttl

    def _live_entry(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._expired(stored_at, self._clock()):
            del self._entries[key]
            return None
        return value

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            return self._live_entry(key)

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def find(self, predicate: Callable[[V], bool]) -> Optional[V]:
        """First live value matching `predicate`, in insertion order."""
        for value in self.values():
            if predicate(value):
                return value
        return None

    def values(self) -> List[V]:
        now = self._clock()
        with self._lock:
            return [v for v, stored_at in self._entries.values() if not self._expired(stored_at, now)]

    def __len__(self) -> int:
        return len(self.values())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[V]:
        return iter(self.values())


class ResultCache:
    """The three namespaces shared by every tier."""

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Clock = utc_now) -> None:
        ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self.vehicles: CacheNamespace[VehicleRecord] = CacheNamespace("vehicles", None, clock)
        self.plates: CacheNamespace[PlateRecord] = CacheNamespace("plates", ttl, clock)
        self.persons: CacheNamespace[PersonRecord] = CacheNamespace("persons", ttl, clock)

    def find_vehicle_by_plate(
        self, plate: str, origin_job_id: Optional[str] = None
    ) -> Optional[VehicleRecord]:
        """Vehicle carrying `plate`, preferring one collected by search `origin_job_id`."""
        if origin_job_id is not None:
            own = self.vehicles.find(
                lambda vehicle: vehicle.plate == plate and vehicle.origin_job_id == origin_job_id
            )
            if own is not None:
                return own
        return self.vehicles.find(lambda vehicle: vehicle.plate == plate)

    def sizes(self) -> Dict[str, int]:
        return {
            "vehicles": len(self.vehicles),
            "plates": len(self.plates),
            "persons": len(self.persons),
        }


__all__ = ["CacheNamespace", "ResultCache"]
