"""Vehicle tier: searches by model, color and year range."""

from __future__ import annotations

from typing import Any, List

from cascade.domain.models import SearchRequest, Tier, VehicleJob, VehicleRecord
from cascade.domain.validation import is_valid_plate
from cascade.infrastructure.audit_store import RecordKind, persist_record
from cascade.tiers.abstract import TierDispatcher
from cascade.tiers.plate import PlateDispatcher
from cascade.utils.logging import get_logger

log = get_logger(__name__)


class VehicleDispatcher(TierDispatcher[VehicleJob, List[VehicleRecord]]):
    tier = Tier.VEHICLE

    def __init__(self, *, downstream: PlateDispatcher, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.downstream = downstream

    def enqueue(self, request: SearchRequest) -> VehicleJob:
        """Searches are never deduplicated: every call queues a new job."""
        job = VehicleJob(
            request=request,
            priority=request.priority,
            max_attempts=self.retry_policy.max_attempts,
            created_at=self._clock(),
        )
        self._admit(job)
        return job

    async def _extract(self, job: VehicleJob) -> List[VehicleRecord]:
        request = job.request
        results = await self.agent.extract_vehicles(
            request.model, request.color, request.year_start, request.year_end
        )
        return [
            item if isinstance(item, VehicleRecord) else VehicleRecord.model_validate(item)
            for item in results or []
        ]

    async def _complete(self, job: VehicleJob, result: List[VehicleRecord], latency_ms: int) -> None:
        queued = 0
        for found in result:
            vehicle = found.model_copy(update={"origin_job_id": job.id})
            await persist_record(self.store, RecordKind.VEHICLE, vehicle.model_dump(mode="json"), job.id)
            self.cache.vehicles.put(vehicle.id, vehicle)

            if not is_valid_plate(vehicle.plate):
                log.warning(
                    f"[VEHICLE] skipping malformed plate '{vehicle.plate}'",
                    extra={"job_id": job.id, "vehicle_id": vehicle.id},
                )
                continue
            if await self.downstream.offer_from_vehicle(
                vehicle, origin_request_id=job.id, priority=job.priority
            ):
                queued += 1

        log.info(
            f"[VEHICLE] {job.label}: {len(result)} vehicle(s), {queued} plate lookup(s) queued",
            extra={"job_id": job.id, "found": len(result), "queued": queued},
        )


__all__ = ["VehicleDispatcher"]
