from cascade.tiers.abstract import TierDispatcher
from cascade.tiers.person import PersonDispatcher
from cascade.tiers.plate import PlateDispatcher
from cascade.tiers.vehicle import VehicleDispatcher

__all__ = ["TierDispatcher", "VehicleDispatcher", "PlateDispatcher", "PersonDispatcher"]
