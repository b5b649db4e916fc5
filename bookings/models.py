"""
Purpose: Domain models for the Bookings capability.
What it does:
- Defines core data structures:
- ServiceType (reference data: vertical, base price, commission rate)
- ServiceRequest (the one request shape behind every vertical)
- SharedRideGroup (a pooled trip several requests ride in)
- OrderItem / InventoryItem (delivery goods, moving inventory)
- RequestDraft (validated submission input)

Defines enums/constants:
- ServiceVertical = RIDE | TAXI | SHARED_RIDE | DELIVERY | HOUSE_MOVING | EMERGENCY | DAY_BOOKING
- RequestStatus = union of every vertical's status alphabet
- EmergencyPriority = LOW | MEDIUM | HIGH | CRITICAL

Rule: No matching, pricing or transition logic. Models only.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from fares.breakdown import FareBreakdown
from routing.coordinates import Coordinate


class ServiceVertical(str, Enum):
    RIDE = "RIDE"
    TAXI = "TAXI"
    SHARED_RIDE = "SHARED_RIDE"
    DELIVERY = "DELIVERY"
    HOUSE_MOVING = "HOUSE_MOVING"
    EMERGENCY = "EMERGENCY"
    DAY_BOOKING = "DAY_BOOKING"


class RequestStatus(str, Enum):
    # ride / taxi / shared ride / day booking
    REQUESTED = "REQUESTED"
    SEARCHING_DRIVER = "SEARCHING_DRIVER"
    DRIVER_ACCEPTED = "DRIVER_ACCEPTED"
    DRIVER_ARRIVED = "DRIVER_ARRIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    # delivery
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    # house moving / day booking
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    LOADING = "LOADING"
    IN_TRANSIT = "IN_TRANSIT"
    UNLOADING = "UNLOADING"
    # emergency
    ACKNOWLEDGED = "ACKNOWLEDGED"
    DISPATCHED = "DISPATCHED"
    ARRIVED = "ARRIVED"
    RESOLVED = "RESOLVED"


class EmergencyPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServiceType:
    """
    Catalog entry a request is booked against (owned by reference data).
    """
    id: str
    name: str
    vertical: ServiceVertical
    base_price: Optional[float] = None
    commission_rate: float = 0.18
    per_km_rate: Optional[float] = None


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    unit_price: float
    quantity: int = 1


@dataclass(frozen=True)
class InventoryItem:
    name: str
    category: str
    quantity: int = 1
    special_handling: bool = False


@dataclass
class RequestDraft:
    """
    Everything a requester submits, after address resolution.
    Fields that don't apply to the vertical stay at their defaults.
    """
    requester_id: str
    service_type_id: str
    pickup: Optional[Coordinate] = None
    dropoff: Optional[Coordinate] = None
    passenger_count: int = 1
    scheduled_time: Optional[datetime] = None

    # delivery
    items: List[OrderItem] = field(default_factory=list)
    # house moving
    inventory: List[InventoryItem] = field(default_factory=list)
    helpers_count: int = 0
    # emergency
    priority: EmergencyPriority = EmergencyPriority.MEDIUM
    # taxi
    is_metered: bool = True
    # shared ride
    max_wait_minutes: int = 15
    max_detour_percent: float = 20.0
    # day booking
    requested_driver_id: Optional[str] = None
    day_rate: Optional[float] = None
    district_rate: Optional[float] = None

    notes: str = ""


@dataclass(frozen=True)
class ServiceRequest:
    """
    The generalized request. Frozen: every change goes through the lifecycle
    state machine, which swaps in a new instance.
    """
    id: str
    requester_id: str
    service_type: ServiceType
    status: RequestStatus

    pickup: Optional[Coordinate] = None
    dropoff: Optional[Coordinate] = None

    driver_id: Optional[str] = None
    requested_driver_id: Optional[str] = None  # day booking: the driver the requester picked
    scheduled_time: Optional[datetime] = None
    passenger_count: int = 1

    estimated_price: float = 0.0
    final_price: Optional[float] = None
    cancellation_fee: float = 0.0
    fare: Optional[FareBreakdown] = None

    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    shared_group_id: Optional[str] = None

    items: Tuple[OrderItem, ...] = ()
    inventory: Tuple[InventoryItem, ...] = ()
    helpers_count: int = 0
    priority: Optional[EmergencyPriority] = None
    is_metered: bool = False
    origin_zone_id: Optional[str] = None
    destination_zone_id: Optional[str] = None
    notes: str = ""

    @property
    def vertical(self) -> ServiceVertical:
        return self.service_type.vertical

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())


@dataclass
class SharedRideGroup:
    """
    A pooled trip. current_capacity is the sum of member passenger counts
    and never exceeds max_capacity; capacity changes happen under the group lock.
    """
    id: str
    origin: Coordinate
    destination: Coordinate
    distance_m: float
    max_capacity: int
    current_capacity: int
    status: RequestStatus = RequestStatus.SEARCHING_DRIVER
    created_at: datetime = field(default_factory=_utcnow)
    member_request_ids: List[str] = field(default_factory=list)
    driver_id: Optional[str] = None

    @property
    def seats_left(self) -> int:
        return self.max_capacity - self.current_capacity

    @staticmethod
    def new(origin: Coordinate, destination: Coordinate, distance_m: float,
            max_capacity: int, passenger_count: int, created_at: Optional[datetime] = None) -> SharedRideGroup:
        return SharedRideGroup(
            id=str(uuid.uuid4()),
            origin=origin,
            destination=destination,
            distance_m=distance_m,
            max_capacity=max_capacity,
            current_capacity=passenger_count,
            created_at=created_at or _utcnow(),
        )
