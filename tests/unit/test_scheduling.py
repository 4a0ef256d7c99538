"""Rate controller, retry policy, result cache and tier queues in isolation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from cascade.domain.errors import ExtractionError, RecordNotFoundError
from cascade.domain.models import JobStatus, PlateJob, Priority, Tier
from cascade.scheduling import RateController, ResultCache, RetryPolicy, TierQueue
from tests.helpers import START, FakeClock, make_plate

DELAYS = {Tier.VEHICLE: 30, Tier.PLATE: 30, Tier.PERSON: 10}


def _plate_job(plate: str = "ABC1234", **overrides) -> PlateJob:
    return PlateJob(
        plate=plate,
        origin_vehicle_id="veh_1",
        origin_request_id="vehicle_1",
        created_at=START,
        **overrides,
    )


class TestRateController:
    def test_first_dispatch_is_always_allowed(self, clock: FakeClock) -> None:
        rate = RateController(DELAYS, clock)

        assert rate.is_ready(Tier.PLATE)
        assert rate.remaining(Tier.PLATE) == timedelta(0)

    def test_dispatches_are_spaced_by_min_delay(self, clock: FakeClock) -> None:
        rate = RateController(DELAYS, clock)
        state = rate.mark_dispatched(Tier.PLATE)

        assert state.next_allowed_at == START + timedelta(seconds=30)
        clock.advance(29)
        assert not rate.is_ready(Tier.PLATE)
        assert rate.remaining(Tier.PLATE) == timedelta(seconds=1)
        clock.advance(1)
        assert rate.is_ready(Tier.PLATE)

    def test_tiers_are_independent(self, clock: FakeClock) -> None:
        rate = RateController(DELAYS, clock)
        rate.mark_dispatched(Tier.VEHICLE)

        assert rate.is_ready(Tier.PLATE)
        assert rate.is_ready(Tier.PERSON)
        assert rate.min_delay(Tier.PERSON) == timedelta(seconds=10)

    def test_missing_tier_delay_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="person"):
            RateController({Tier.VEHICLE: 1, Tier.PLATE: 1})

    def test_state_is_a_copy(self, clock: FakeClock) -> None:
        rate = RateController(DELAYS, clock)
        snapshot = rate.state(Tier.VEHICLE)
        rate.mark_dispatched(Tier.VEHICLE)

        assert snapshot.last_dispatch_at is None


class TestRetryPolicy:
    def test_linear_backoff(self) -> None:
        policy = RetryPolicy(max_attempts=3, backoff=timedelta(seconds=60))

        assert policy.delay_for(1) == timedelta(seconds=60)
        assert policy.delay_for(2) == timedelta(seconds=120)

    def test_retry_until_limit_for_transient_errors(self) -> None:
        policy = RetryPolicy(max_attempts=3)
        job = _plate_job(attempts=2)

        assert policy.should_retry(job, ExtractionError("site down"))
        job.attempts = 3
        assert not policy.should_retry(job, ExtractionError("site down"))

    def test_permanent_errors_are_never_retried(self) -> None:
        policy = RetryPolicy(max_attempts=3)
        job = _plate_job(attempts=1)

        assert not policy.should_retry(job, RecordNotFoundError("no such plate"))
        assert not policy.should_retry(job, ExtractionError("captcha", retryable=False))


class TestResultCache:
    def test_entries_live_for_the_process_without_ttl(self, clock: FakeClock) -> None:
        cache = ResultCache(clock=clock)
        cache.plates.put("ABC1234", make_plate("ABC1234"))
        clock.advance(365 * 24 * 3600)

        assert "ABC1234" in cache.plates
        assert cache.sizes() == {"vehicles": 0, "plates": 1, "persons": 0}

    def test_ttl_expires_plates_and_persons(self, clock: FakeClock) -> None:
        cache = ResultCache(ttl_seconds=60, clock=clock)
        cache.plates.put("ABC1234", make_plate("ABC1234"))
        clock.advance(59)
        assert cache.plates.has("ABC1234")
        clock.advance(1)
        assert cache.plates.get("ABC1234") is None
        assert len(cache.plates) == 0

    def test_find_vehicle_by_plate(self, clock: FakeClock) -> None:
        from tests.helpers import make_vehicle

        cache = ResultCache(clock=clock)
        vehicle = make_vehicle("XYZ5678")
        cache.vehicles.put(vehicle.id, vehicle)

        assert cache.find_vehicle_by_plate("XYZ5678") is vehicle
        assert cache.find_vehicle_by_plate("ABC1234") is None


class TestTierQueue:
    def test_dedup_holds_key_until_done(self) -> None:
        queue: TierQueue[PlateJob] = TierQueue(Tier.PLATE)
        first = _plate_job()

        assert queue.add(first)
        assert not queue.add(_plate_job())
        assert queue.holder("ABC1234") is first

        queue.mark_processing(first)
        assert not queue.add(_plate_job())

        queue.mark_done(first, START)
        assert queue.holder("ABC1234") is None
        assert queue.add(_plate_job())

    def test_terminal_error_keeps_key_held(self) -> None:
        queue: TierQueue[PlateJob] = TierQueue(Tier.PLATE)
        job = _plate_job()
        queue.add(job)
        queue.mark_processing(job)
        queue.mark_failed(job, "not found", None)

        assert job.exhausted and job.is_terminal
        assert not queue.add(_plate_job())

    def test_next_candidate_prefers_priority_then_age(self) -> None:
        queue: TierQueue[PlateJob] = TierQueue(Tier.PLATE)
        low = _plate_job("AAA1111", priority=Priority.LOW)
        normal = _plate_job("BBB2222")
        high_later = _plate_job("CCC3333", priority=Priority.HIGH)
        high_later.created_at = START + timedelta(seconds=10)
        for job in (low, normal, high_later):
            queue.add(job)

        assert queue.next_candidate(START) is high_later
        queue.mark_processing(high_later)
        assert queue.next_candidate(START) is normal

    def test_retry_eligibility_and_backlog(self) -> None:
        queue: TierQueue[PlateJob] = TierQueue(Tier.PLATE)
        job = _plate_job()
        queue.add(job)
        queue.mark_processing(job)
        queue.mark_failed(job, "timeout", START + timedelta(seconds=60))

        assert job.status is JobStatus.ERROR
        assert queue.backlog() == 1
        assert queue.next_candidate(START + timedelta(seconds=59)) is None
        assert queue.next_candidate(START + timedelta(seconds=60)) is job

    def test_counts_and_purge(self) -> None:
        queue: TierQueue[PlateJob] = TierQueue(Tier.PLATE)
        done, pending = _plate_job("AAA1111"), _plate_job("BBB2222")
        queue.add(done)
        queue.add(pending)
        queue.mark_processing(done)
        queue.mark_done(done, START)

        assert queue.counts() == {
            "pending": 1, "processing": 0, "done": 1, "error": 0, "total": 2,
        }
        assert queue.purge_done() == 1
        assert queue.jobs() == [pending]
