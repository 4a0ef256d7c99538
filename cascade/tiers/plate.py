"""Plate tier: owner lookups for plates listed by vehicle searches."""

from __future__ import annotations

from typing import Any

from cascade.domain.models import (
    PlateJob,
    PlateRecord,
    Priority,
    Tier,
    VehicleRecord,
    WaitingChain,
)
from cascade.domain.validation import resolve_national_id
from cascade.infrastructure.audit_store import RecordKind, persist_record
from cascade.tiers.abstract import TierDispatcher
from cascade.tiers.person import PersonDispatcher
from cascade.utils.logging import get_logger

log = get_logger(__name__)


class PlateDispatcher(TierDispatcher[PlateJob, PlateRecord]):
    tier = Tier.PLATE

    def __init__(self, *, downstream: PersonDispatcher, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.downstream = downstream

    async def offer_from_vehicle(
        self, vehicle: VehicleRecord, *, origin_request_id: str, priority: Priority
    ) -> bool:
        """
        Queue an owner lookup for the vehicle's plate.

        A plate that is already cached is not looked up again; its chain is
        continued from the cached record instead.
        A plate whose lookup is still open under another search rides along
        with that lookup.
        """
        cached = self.cache.plates.get(vehicle.plate)
        if cached is not None:
            log.info(
                f"[PLATE CACHED] {vehicle.plate} already fetched",
                extra={"vehicle_id": vehicle.id, "origin_request_id": origin_request_id},
            )
            await self._fan_out(cached, origin_request_id=origin_request_id, priority=priority)
            return False

        now = self._clock()
        job = PlateJob(
            plate=vehicle.plate,
            origin_vehicle_id=vehicle.id,
            origin_request_id=origin_request_id,
            priority=priority,
            max_attempts=self.retry_policy.max_attempts,
            created_at=now,
            available_at=now + self.rate.min_delay(self.tier),
        )
        return self._admit(job)

    def _attach(self, holder: PlateJob, job: PlateJob) -> bool:
        if holder.is_terminal:
            return False
        requests = {holder.origin_request_id} | {c.origin_request_id for c in holder.waiting_chains}
        if job.origin_request_id in requests:
            return False
        holder.waiting_chains.append(
            WaitingChain(
                origin=job.origin_vehicle_id,
                origin_request_id=job.origin_request_id,
                priority=job.priority,
            )
        )
        return True

    def _is_cached(self, job: PlateJob) -> bool:
        return self.cache.plates.has(job.plate)

    async def _extract(self, job: PlateJob) -> PlateRecord:
        result = await self.agent.extract_plate_owner(job.plate)
        if isinstance(result, PlateRecord):
            return result
        return PlateRecord.model_validate(result)

    async def _complete(self, job: PlateJob, result: PlateRecord, latency_ms: int) -> None:
        record = result.model_copy(
            update={
                "origin_vehicle_id": job.origin_vehicle_id,
                "latency_ms": result.latency_ms if result.latency_ms is not None else latency_ms,
            }
        )
        await persist_record(
            self.store, RecordKind.PLATE, record.model_dump(mode="json"), job.origin_request_id
        )
        self.cache.plates.put(job.plate, record)
        await self._continue_chains(job, record)

    async def _complete_from_cache(self, job: PlateJob) -> None:
        record = self.cache.plates.get(job.plate)
        if record is not None:
            await self._continue_chains(job, record)

    async def _continue_chains(self, job: PlateJob, record: PlateRecord) -> None:
        await self._fan_out(record, origin_request_id=job.origin_request_id, priority=job.priority)
        for chain in list(job.waiting_chains):
            await self._fan_out(
                record, origin_request_id=chain.origin_request_id, priority=chain.priority
            )

    async def _fan_out(
        self, record: PlateRecord, *, origin_request_id: str, priority: Priority
    ) -> None:
        national_id = resolve_national_id(record.owner.national_id)
        if national_id is None:
            log.warning(
                f"[PLATE] no valid national id for the owner of {record.plate}, chain ends here",
                extra={"plate": record.plate, "origin_request_id": origin_request_id},
            )
            return
        await self.downstream.offer_from_plate(
            national_id,
            origin_plate=record.plate,
            origin_request_id=origin_request_id,
            priority=priority,
        )


__all__ = ["PlateDispatcher"]
