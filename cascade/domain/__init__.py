"""
Domain package for the cascade pipeline.

Exports the records, jobs, errors and identifier rules shared by the tiers
and the orchestrator. Keep this package focused on data definitions and
validation concerns.
"""

from cascade.domain.errors import (
    CascadeError,
    DependencyMissingError,
    ExtractionError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from cascade.domain.models import (
    Address,
    CompositeRecord,
    CompositeSummary,
    Job,
    JobStatus,
    PersonJob,
    PersonRecord,
    PlateJob,
    PlateOwner,
    PlateRecord,
    PlateVehicle,
    Priority,
    SearchRequest,
    Tier,
    VehicleJob,
    VehicleRecord,
    WaitingChain,
)
from cascade.domain.validation import (
    is_valid_national_id,
    is_valid_plate,
    normalize_national_id,
    normalize_plate,
    resolve_national_id,
)

__all__ = [
    "CascadeError",
    "DependencyMissingError",
    "ExtractionError",
    "PersistenceError",
    "RecordNotFoundError",
    "ValidationError",
    "Address",
    "CompositeRecord",
    "CompositeSummary",
    "Job",
    "JobStatus",
    "PersonJob",
    "PersonRecord",
    "PlateJob",
    "PlateOwner",
    "PlateRecord",
    "PlateVehicle",
    "Priority",
    "SearchRequest",
    "Tier",
    "VehicleJob",
    "VehicleRecord",
    "WaitingChain",
    "is_valid_national_id",
    "is_valid_plate",
    "normalize_national_id",
    "normalize_plate",
    "resolve_national_id",
]
