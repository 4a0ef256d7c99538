from __future__ import annotations

import pytest

from cascade.domain.errors import DependencyMissingError
from cascade.infrastructure.audit_store import InMemoryAuditStore, RecordKind
from cascade.relationships import ADDRESS_NOT_PROVIDED, RelationshipBuilder, format_full_address
from cascade.scheduling.cache import ResultCache
from tests.helpers import FakeClock, make_person, make_plate, make_vehicle

REQUEST_ID = "vehicle_0001"


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(clock=clock)


@pytest.fixture
def builder(cache: ResultCache, store: InMemoryAuditStore, clock: FakeClock) -> RelationshipBuilder:
    return RelationshipBuilder(cache, store, clock)


def _seed_chain(cache: ResultCache, plate: str = "ABC1234") -> None:
    vehicle = make_vehicle(plate)
    cache.vehicles.put(vehicle.id, vehicle)
    cache.plates.put(plate, make_plate(plate).model_copy(update={"origin_vehicle_id": vehicle.id}))


class TestFullAddress:
    def test_person_address_wins(self) -> None:
        assert format_full_address(make_person(), make_plate("ABC1234")).startswith("AV BRASIL")

    def test_falls_back_to_plate_address(self) -> None:
        person = make_person().model_copy(update={"address": None})
        assert format_full_address(person, make_plate("ABC1234")) == (
            "RUA DAS FLORES, 100, CENTRO, CAMPINAS/SP - ZIP: 13010-000"
        )

    def test_neither_address(self) -> None:
        person = make_person().model_copy(update={"address": None})
        assert format_full_address(person) == ADDRESS_NOT_PROVIDED


class TestBuild:
    def test_missing_plate_leg(self, builder: RelationshipBuilder) -> None:
        with pytest.raises(DependencyMissingError, match="plate record"):
            builder.build(person=make_person(), origin_plate="ABC1234", origin_request_id=REQUEST_ID)

    def test_missing_vehicle_leg(self, builder: RelationshipBuilder, cache: ResultCache) -> None:
        cache.plates.put("ABC1234", make_plate("ABC1234"))
        with pytest.raises(DependencyMissingError, match="vehicle"):
            builder.build(person=make_person(), origin_plate="ABC1234", origin_request_id=REQUEST_ID)

    def test_vehicle_found_by_plate_when_origin_is_unknown(
        self, builder: RelationshipBuilder, cache: ResultCache
    ) -> None:
        vehicle = make_vehicle("ABC1234")
        cache.vehicles.put(vehicle.id, vehicle)
        cache.plates.put("ABC1234", make_plate("ABC1234"))

        composite = builder.build(
            person=make_person(), origin_plate="ABC1234", origin_request_id=REQUEST_ID
        )

        assert composite.vehicle is vehicle
        assert composite.id.startswith("rel_")
        assert composite.summary.model == "CIVIC"


@pytest.mark.asyncio
async def test_join_persists_once_per_chain(
    builder: RelationshipBuilder, cache: ResultCache, store: InMemoryAuditStore
) -> None:
    _seed_chain(cache)
    person = make_person()

    first = await builder.join(person=person, origin_plate="ABC1234", origin_request_id=REQUEST_ID)
    again = await builder.join(person=person, origin_plate="ABC1234", origin_request_id=REQUEST_ID)

    assert first is again
    assert len(builder) == 1
    (entry,) = store.of_kind(RecordKind.COMPOSITE)
    assert entry.correlation_id == REQUEST_ID
    assert entry.payload["summary"]["owner_name"] == "MARIA SILVA"


@pytest.mark.asyncio
async def test_join_with_missing_leg_is_skipped(
    builder: RelationshipBuilder, store: InMemoryAuditStore
) -> None:
    result = await builder.join(
        person=make_person(), origin_plate="ZZZ9999", origin_request_id=REQUEST_ID
    )

    assert result is None
    assert builder.composites == []
    assert store.entries == []
