"""
Domain models for the cascade pipeline.

Records produced by the extraction agent (vehicle, plate, person) and the
composite built from them are frozen Pydantic models: once produced they are
never mutated, only re-stamped through `model_copy`. Jobs are mutable
dataclasses owned by their tier queue, which is the only writer of their
status and retry bookkeeping.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union
from uuid import uuid4

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cascade.domain.errors import ValidationError
from cascade.domain.validation import normalize_national_id, normalize_plate
from cascade.utils.clock import utc_now

MIN_SEARCH_YEAR = 1900

_sequence = itertools.count(1)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


class Tier(str, Enum):
    VEHICLE = "vehicle"
    PLATE = "plate"
    PERSON = "person"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return {"low": 1, "normal": 2, "high": 3}[self.value]


_RECORD_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    alias_generator=to_camel,
    str_strip_whitespace=True,
)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """
    A vehicle search: model and color within a year range.

    Accepts both snake_case and camelCase keys (`year_start` / `yearStart`).
    """

    model: str = Field(..., min_length=1, max_length=128, description="Vehicle model.")
    color: str = Field(..., min_length=1, max_length=64, description="Vehicle color.")
    year_start: int = Field(..., description="First model year, inclusive.")
    year_end: Optional[int] = Field(None, description="Last model year, inclusive.")
    priority: Priority = Field(Priority.NORMAL, description="Dispatch priority.")
    batch_id: Optional[str] = Field(None, description="Groups requests enqueued together.")

    model_config = _RECORD_CONFIG

    @model_validator(mode="after")
    def _check_years(self) -> "SearchRequest":
        max_year = date.today().year + 1
        if not MIN_SEARCH_YEAR <= self.year_start <= max_year:
            raise ValueError(f"year_start must be between {MIN_SEARCH_YEAR} and {max_year}")
        if self.year_end is not None:
            if not MIN_SEARCH_YEAR <= self.year_end <= max_year:
                raise ValueError(f"year_end must be between {MIN_SEARCH_YEAR} and {max_year}")
            if self.year_end < self.year_start:
                raise ValueError("year_end must not be earlier than year_start")
        return self

    @classmethod
    def parse(cls, data: Union["SearchRequest", Mapping[str, Any]]) -> "SearchRequest":
        """Build a request from a mapping, raising the pipeline's ValidationError."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(dict(data))
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(f"invalid search request: {first['msg']}", field=location) from exc
        except TypeError as exc:
            raise ValidationError(f"invalid search request: {exc}") from exc


# ---------------------------------------------------------------------------
# Records produced by the extraction agent
# ---------------------------------------------------------------------------


class Address(BaseModel):
    street: str
    number: str = ""
    complement: Optional[str] = None
    district: str = ""
    city: str
    state: str
    postal_code: str = ""

    model_config = _RECORD_CONFIG

    def format(self) -> str:
        number = f"{self.number} - {self.complement}" if self.complement else self.number
        return (
            f"{self.street}, {number}, {self.district}, "
            f"{self.city}/{self.state} - ZIP: {self.postal_code}"
        )


class VehicleRecord(BaseModel):
    """One vehicle listed by a search; each carries the plate to look up next."""

    id: str = Field(default_factory=lambda: new_id("veh"))
    model: str
    color: str
    year: str
    plate: str
    chassis: Optional[str] = None
    registration_id: Optional[str] = None
    source: str = "unknown"
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    origin_job_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    model_config = _RECORD_CONFIG

    @field_validator("year", mode="before")
    @classmethod
    def _year_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("plate")
    @classmethod
    def _normalize_plate(cls, value: str) -> str:
        return normalize_plate(value)


class PlateOwner(BaseModel):
    name: str
    national_id: str = ""
    id_document: Optional[str] = None

    model_config = _RECORD_CONFIG


class PlateVehicle(BaseModel):
    model: str
    make: Optional[str] = None
    color: Optional[str] = None
    year: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None

    model_config = _RECORD_CONFIG


class PlateRecord(BaseModel):
    """Registry data for one plate: current owner, vehicle and address."""

    plate: str
    owner: PlateOwner
    vehicle: Optional[PlateVehicle] = None
    address: Optional[Address] = None
    source: str = "unknown"
    fetched_at: datetime = Field(default_factory=utc_now)
    latency_ms: Optional[int] = None
    origin_vehicle_id: Optional[str] = None

    model_config = _RECORD_CONFIG

    @field_validator("plate")
    @classmethod
    def _normalize_plate(cls, value: str) -> str:
        return normalize_plate(value)


class PersonRecord(BaseModel):
    """Civil registry data for one national id."""

    national_id: str
    name: str
    birth_date: Optional[str] = None
    mother_name: Optional[str] = None
    address: Optional[Address] = None
    phones: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    source: str = "unknown"
    fetched_at: datetime = Field(default_factory=utc_now)
    latency_ms: Optional[int] = None
    origin_plate: Optional[str] = None

    model_config = _RECORD_CONFIG

    @field_validator("national_id")
    @classmethod
    def _normalize_national_id(cls, value: str) -> str:
        return normalize_national_id(value)


class CompositeSummary(BaseModel):
    model: str
    plate: str
    national_id: str
    owner_name: str
    full_address: str

    model_config = _RECORD_CONFIG


class CompositeRecord(BaseModel):
    """The joined vehicle → plate → person chain of one search."""

    id: str = Field(default_factory=lambda: new_id("rel"))
    origin_request_id: str
    vehicle: VehicleRecord
    plate: PlateRecord
    person: PersonRecord
    summary: CompositeSummary
    created_at: datetime = Field(default_factory=utc_now)

    model_config = _RECORD_CONFIG


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WaitingChain:
    """
    A chain that reached a tier while another job already held its lookup.

    `origin` is the vehicle id on plate jobs and the plate on person jobs.
    """

    origin: str
    origin_request_id: str
    priority: Priority = Priority.NORMAL


@dataclass(kw_only=True)
class Job:
    """
    Queue entry shared by all tiers.

    `available_at` holds back derived jobs until their tier is allowed to
    run them; `exhausted` marks a job that will never be retried (limit
    reached or permanent failure).
    """

    id_prefix: ClassVar[str] = "job"
    tier: ClassVar[Tier]

    id: str = ""
    priority: Priority = Priority.NORMAL
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_attempts: int = 3
    created_at: datetime = field(default_factory=utc_now)
    available_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    exhausted: bool = False
    seq: int = field(default_factory=lambda: next(_sequence))

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id(self.id_prefix)

    @property
    def dedup_key(self) -> Optional[str]:
        return None

    @property
    def label(self) -> str:
        return self.id

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        if self.status is JobStatus.DONE:
            return True
        return self.status is JobStatus.ERROR and (
            self.exhausted or self.attempts >= self.max_attempts
        )

    def is_eligible(self, now: datetime) -> bool:
        if self.status is JobStatus.PENDING:
            return self.available_at is None or now >= self.available_at
        if self.status is JobStatus.ERROR and not self.is_terminal:
            return self.next_retry_at is None or now >= self.next_retry_at
        return False

    def sort_key(self) -> tuple:
        return (-self.priority.weight, self.created_at, self.seq)


@dataclass(kw_only=True)
class VehicleJob(Job):
    id_prefix: ClassVar[str] = "vehicle"
    tier: ClassVar[Tier] = Tier.VEHICLE

    request: SearchRequest

    @property
    def label(self) -> str:
        request = self.request
        years = f"{request.year_start}-{request.year_end}" if request.year_end else str(request.year_start)
        return f"{request.model} {request.color} {years}"


@dataclass(kw_only=True)
class PlateJob(Job):
    id_prefix: ClassVar[str] = "plate"
    tier: ClassVar[Tier] = Tier.PLATE

    plate: str
    origin_vehicle_id: str
    origin_request_id: str
    waiting_chains: List[WaitingChain] = field(default_factory=list)

    @property
    def dedup_key(self) -> Optional[str]:
        return self.plate

    @property
    def label(self) -> str:
        return self.plate


@dataclass(kw_only=True)
class PersonJob(Job):
    id_prefix: ClassVar[str] = "person"
    tier: ClassVar[Tier] = Tier.PERSON

    national_id: str
    origin_plate: str
    origin_request_id: str
    waiting_chains: List[WaitingChain] = field(default_factory=list)

    @property
    def dedup_key(self) -> Optional[str]:
        return self.national_id

    @property
    def label(self) -> str:
        return self.national_id


__all__ = [
    "MIN_SEARCH_YEAR",
    "new_id",
    "Tier",
    "JobStatus",
    "Priority",
    "SearchRequest",
    "Address",
    "VehicleRecord",
    "PlateOwner",
    "PlateVehicle",
    "PlateRecord",
    "PersonRecord",
    "CompositeSummary",
    "CompositeRecord",
    "WaitingChain",
    "Job",
    "VehicleJob",
    "PlateJob",
    "PersonJob",
]
