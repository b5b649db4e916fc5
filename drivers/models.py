"""
Purpose: Core data models for the drivers (providers) domain.
What it does:
Defines the structure of a Driver, their availability and approval states,
without relying on any ORM constraints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from routing.coordinates import Coordinate


class AvailabilityStatus(str, Enum):
    """
    Where the driver is in their working day.
    ON_TRIP is only ever set by the lifecycle's assignment handler.
    """
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    ON_TRIP = "ON_TRIP"
    BREAK = "BREAK"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


@dataclass(frozen=True)
class Driver:
    """
    A purely stateless representation of a Driver at a specific point in time.
    The registry swaps instances with dataclasses.replace on every change.
    """
    id: str
    availability: AvailabilityStatus
    approval: ApprovalStatus
    location: Optional[Coordinate] = None
    service_type_ids: FrozenSet[str] = field(default_factory=frozenset)

    last_ping_at: Optional[datetime] = None

    def can_serve(self, service_type_id: str) -> bool:
        return service_type_id in self.service_type_ids

    @property
    def is_approved(self) -> bool:
        return self.approval == ApprovalStatus.APPROVED

    @classmethod
    def new(
        cls,
        driver_id: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        availability: str | AvailabilityStatus = AvailabilityStatus.OFFLINE,
        approval: str | ApprovalStatus = ApprovalStatus.PENDING,
        service_type_ids: Iterable[str] = (),
        last_ping_at: Optional[datetime] = None,
    ) -> Driver:
        if isinstance(availability, str):
            availability = AvailabilityStatus(availability)
        if isinstance(approval, str):
            approval = ApprovalStatus(approval)

        location = None
        if lat is not None and lon is not None:
            location = Coordinate.at(lat, lon)

        return cls(
            id=driver_id,
            availability=availability,
            approval=approval,
            location=location,
            service_type_ids=frozenset(service_type_ids),
            last_ping_at=last_ping_at or datetime.now(timezone.utc),
        )
