"""
Tier queues: the pending-item collection of one tier plus its dedup index.

A queue is written only by its owning dispatcher (status transitions) and by
the upstream tier's fan-out (new jobs, through the dispatcher's `offer`). The
lock makes both paths, and readers such as the statistics accessor, safe even
when they run outside the event loop thread.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from cascade.domain.models import Job, JobStatus, Tier

J = TypeVar("J", bound=Job)


class TierQueue(Generic[J]):
    """
    Jobs of one tier keyed by id, with an index of dedup keys held by
    jobs that are not `done`.

    A key stays held while its job is pending, processing or in error
    (retrying or terminal); once the job completes the key is released and
    the result cache takes over dedup for it.
    """

    def __init__(self, tier: Tier) -> None:
        self.tier = tier
        self._lock = threading.RLock()
        self._jobs: Dict[str, J] = {}
        self._held_keys: Dict[str, str] = {}

    def add(self, job: J) -> bool:
        """Insert `job` unless another job already holds its dedup key."""
        with self._lock:
            key = job.dedup_key
            if key is not None:
                if key in self._held_keys:
                    return False
                self._held_keys[key] = job.id
            self._jobs[job.id] = job
            return True

    def get(self, job_id: str) -> Optional[J]:
        with self._lock:
            return self._jobs.get(job_id)

    def holder(self, key: str) -> Optional[J]:
        """The job currently holding dedup key `key`, if any."""
        with self._lock:
            job_id = self._held_keys.get(key)
            return self._jobs.get(job_id) if job_id else None

    def jobs(self) -> List[J]:
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def next_candidate(self, now: datetime) -> Optional[J]:
        """Highest-priority, oldest eligible job; None when nothing can run."""
        with self._lock:
            eligible = [job for job in self._jobs.values() if job.is_eligible(now)]
        if not eligible:
            return None
        return min(eligible, key=lambda job: job.sort_key())

    def mark_processing(self, job: J) -> None:
        with self._lock:
            job.status = JobStatus.PROCESSING
            job.attempts += 1
            job.next_retry_at = None

    def mark_done(self, job: J, at: datetime) -> None:
        with self._lock:
            job.status = JobStatus.DONE
            job.completed_at = at
            key = job.dedup_key
            if key is not None and self._held_keys.get(key) == job.id:
                del self._held_keys[key]

    def mark_failed(self, job: J, error: str, retry_at: Optional[datetime]) -> None:
        """Record a failure; `retry_at=None` makes the failure terminal."""
        with self._lock:
            job.status = JobStatus.ERROR
            job.last_error = error
            job.next_retry_at = retry_at
            job.exhausted = retry_at is None

    def purge_done(self) -> int:
        with self._lock:
            done_ids = [job_id for job_id, job in self._jobs.items() if job.status is JobStatus.DONE]
            for job_id in done_ids:
                del self._jobs[job_id]
            return len(done_ids)

    def counts(self) -> Dict[str, int]:
        with self._lock:
            jobs = list(self._jobs.values())
        counts = {status.value: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status.value] += 1
        counts["total"] = len(jobs)
        return counts

    def backlog(self) -> int:
        """Jobs still waiting for a dispatch: pending ones and failures due a retry."""
        with self._lock:
            return sum(
                1
                for job in self._jobs.values()
                if job.status is JobStatus.PENDING
                or (job.status is JobStatus.ERROR and not job.is_terminal)
            )

    def has_open_jobs(self) -> bool:
        with self._lock:
            return any(not job.is_terminal for job in self._jobs.values())


__all__ = ["TierQueue"]
