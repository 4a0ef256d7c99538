"""Test doubles and record builders shared by unit and integration tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from cascade.domain.errors import RecordNotFoundError
from cascade.domain.models import (
    Address,
    PersonRecord,
    PlateOwner,
    PlateRecord,
    PlateVehicle,
    VehicleRecord,
)
from cascade.orchestrator import CascadePipeline

VALID_NATIONAL_ID = "52998224725"
OTHER_NATIONAL_ID = "11144477735"
THIRD_NATIONAL_ID = "39053344705"

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def make_vehicle(
    plate: str, model: str = "CIVIC", color: str = "BLACK", year: int = 2018
) -> VehicleRecord:
    return VehicleRecord(model=model, color=color, year=year, plate=plate, source="scripted")


def make_plate(
    plate: str, national_id: str = VALID_NATIONAL_ID, name: str = "MARIA SILVA"
) -> PlateRecord:
    return PlateRecord(
        plate=plate,
        owner=PlateOwner(name=name, national_id=national_id),
        vehicle=PlateVehicle(model="CIVIC", make="HONDA", color="BLACK", year="2018"),
        address=Address(
            street="RUA DAS FLORES",
            number="100",
            district="CENTRO",
            city="CAMPINAS",
            state="SP",
            postal_code="13010-000",
        ),
        source="scripted",
    )


def make_person(national_id: str = VALID_NATIONAL_ID, name: str = "MARIA SILVA") -> PersonRecord:
    return PersonRecord(
        national_id=national_id,
        name=name,
        birth_date="1980-05-17",
        address=Address(
            street="AV BRASIL",
            number="2000",
            complement="APTO 12",
            district="JARDIM",
            city="SAO PAULO",
            state="SP",
            postal_code="01430-000",
        ),
        phones=["11999990000"],
        source="scripted",
    )


class ScriptedAgent:
    """
    Extraction agent answering from dictionaries.

    `fail(key, *errors)` queues errors raised (in order) before the real
    answer for that key; `hold(key)` blocks calls for the key until the
    returned event is set. Unknown plates and people raise
    RecordNotFoundError.
    """

    def __init__(self) -> None:
        self.vehicles: Dict[Tuple[str, str], List[VehicleRecord]] = {}
        self.plates: Dict[str, PlateRecord] = {}
        self.persons: Dict[str, PersonRecord] = {}
        self.failures: Dict[str, List[BaseException]] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[Tuple[str, str]] = []

    def fail(self, key: str, *errors: BaseException) -> None:
        self.failures.setdefault(key, []).extend(errors)

    def hold(self, key: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[key] = gate
        return gate

    def calls_for(self, method: str) -> List[str]:
        return [key for name, key in self.calls if name == method]

    async def _answer(self, method: str, key: str) -> None:
        self.calls.append((method, key))
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)

    async def extract_vehicles(
        self, model: str, color: str, year_start: int, year_end: Optional[int] = None
    ) -> List[VehicleRecord]:
        await self._answer("vehicles", f"{model}/{color}")
        return list(self.vehicles.get((model, color), []))

    async def extract_plate_owner(self, plate: str) -> PlateRecord:
        await self._answer("plate", plate)
        if plate not in self.plates:
            raise RecordNotFoundError(f"no registry entry for {plate}")
        return self.plates[plate]

    async def extract_person(self, national_id: str) -> PersonRecord:
        await self._answer("person", national_id)
        if national_id not in self.persons:
            raise RecordNotFoundError(f"no civil record for {national_id}")
        return self.persons[national_id]


async def step(pipeline: CascadePipeline) -> int:
    """Tick every tier once and wait for whatever got launched."""
    tasks = pipeline.tick()
    if tasks:
        await asyncio.gather(*tasks)
    return len(tasks)


async def drain(
    pipeline: CascadePipeline, clock: FakeClock, every: float = 5.0, max_steps: int = 500
) -> int:
    """Step and advance the clock until the pipeline is idle; returns steps taken."""
    for taken in range(max_steps):
        if pipeline.is_idle():
            return taken
        await step(pipeline)
        clock.advance(every)
    raise AssertionError(f"pipeline still busy after {max_steps} steps")
