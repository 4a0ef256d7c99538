"""
Relationship builder: joins the vehicle, plate and person legs of one chain.

A chain is the provenance path search → vehicle → plate → person. The join is
a best-effort secondary artifact: when a leg is missing it is logged and
skipped, never retried.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from cascade.domain.errors import DependencyMissingError
from cascade.domain.models import (
    CompositeRecord,
    CompositeSummary,
    PersonRecord,
    PlateRecord,
    VehicleRecord,
)
from cascade.infrastructure.audit_store import AuditStore, RecordKind, persist_record
from cascade.scheduling.cache import ResultCache
from cascade.utils.clock import Clock, utc_now
from cascade.utils.logging import get_logger

log = get_logger(__name__)

ADDRESS_NOT_PROVIDED = "address not provided"

ChainKey = Tuple[str, str, str]


def format_full_address(person: PersonRecord, plate: Optional[PlateRecord] = None) -> str:
    """Person address first, then the registry address of the plate."""
    if person.address is not None:
        return person.address.format()
    if plate is not None and plate.address is not None:
        return plate.address.format()
    return ADDRESS_NOT_PROVIDED


class RelationshipBuilder:
    """
    Builds at most one composite per (request, plate, national id) chain and
    hands it to the audit store.
    """

    def __init__(self, cache: ResultCache, store: AuditStore, clock: Clock = utc_now) -> None:
        self._cache = cache
        self._store = store
        self._clock = clock
        self._composites: Dict[ChainKey, CompositeRecord] = {}

    @property
    def composites(self) -> List[CompositeRecord]:
        return list(self._composites.values())

    def __len__(self) -> int:
        return len(self._composites)

    def _resolve_vehicle(
        self, plate: PlateRecord, origin_request_id: str
    ) -> Optional[VehicleRecord]:
        own = self._cache.find_vehicle_by_plate(plate.plate, origin_job_id=origin_request_id)
        if own is not None and own.origin_job_id == origin_request_id:
            return own
        if plate.origin_vehicle_id:
            vehicle = self._cache.vehicles.get(plate.origin_vehicle_id)
            if vehicle is not None:
                return vehicle
        return self._cache.find_vehicle_by_plate(plate.plate)

    def build(
        self, *, person: PersonRecord, origin_plate: str, origin_request_id: str
    ) -> CompositeRecord:
        """
        Assemble the composite for one chain.

        Raises
        ------
        DependencyMissingError
            If the plate record or the vehicle record of the chain is gone.
        """
        plate = self._cache.plates.get(origin_plate)
        if plate is None:
            raise DependencyMissingError(f"plate record {origin_plate} is not available")
        vehicle = self._resolve_vehicle(plate, origin_request_id)
        if vehicle is None:
            raise DependencyMissingError(f"no vehicle record carries plate {origin_plate}")

        return CompositeRecord(
            origin_request_id=origin_request_id,
            vehicle=vehicle,
            plate=plate,
            person=person,
            summary=CompositeSummary(
                model=vehicle.model,
                plate=vehicle.plate,
                national_id=person.national_id,
                owner_name=person.name,
                full_address=format_full_address(person, plate),
            ),
            created_at=self._clock(),
        )

    async def join(
        self, *, person: PersonRecord, origin_plate: str, origin_request_id: str
    ) -> Optional[CompositeRecord]:
        """Build and persist the chain's composite; None when it cannot be built."""
        key: ChainKey = (origin_request_id, origin_plate, person.national_id)
        existing = self._composites.get(key)
        if existing is not None:
            return existing

        try:
            composite = self.build(
                person=person, origin_plate=origin_plate, origin_request_id=origin_request_id
            )
        except DependencyMissingError as exc:
            log.warning(
                f"[JOIN SKIPPED] {exc}",
                extra={
                    "plate": origin_plate,
                    "national_id": person.national_id,
                    "origin_request_id": origin_request_id,
                },
            )
            return None

        self._composites[key] = composite
        await persist_record(
            self._store,
            RecordKind.COMPOSITE,
            composite.model_dump(mode="json"),
            origin_request_id,
        )
        log.info(
            f"[JOIN] {composite.summary.plate} -> {composite.summary.owner_name}",
            extra={"composite_id": composite.id, "origin_request_id": origin_request_id},
        )
        return composite


__all__ = ["ADDRESS_NOT_PROVIDED", "format_full_address", "RelationshipBuilder"]
