"""
Utilities package for the cascade pipeline.

Exports shared helpers for logging and time, the cross-cutting concerns every
layer needs. Keep this package lightweight and free of domain-specific logic.
"""

from cascade.utils.clock import Clock, utc_now
from cascade.utils.logging import configure_logging, get_logger

__all__ = [
    "Clock",
    "utc_now",
    "configure_logging",
    "get_logger",
]
