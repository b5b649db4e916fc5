"""
Drivers (providers) domain package.

Public API:
- Domain models: Driver, AvailabilityStatus, ApprovalStatus
- Registry: DriverRegistry
"""
from .models import Driver, AvailabilityStatus, ApprovalStatus
from .registry import DriverRegistry

__all__ = [
    "Driver",
    "AvailabilityStatus",
    "ApprovalStatus",
    "DriverRegistry",
]
