"""
Purpose: Provider registry (the queryable view of every driver).
What it does:
- Owns the current Driver instances in registration order (that order is the
  dispatch tie-break, so it must stay stable)
- Manual availability toggles (ONLINE / OFFLINE / BREAK) and approval changes
- Location pings
- The ON_TRIP flip, its handover between pooled members and its release,
  reserved for the lifecycle's driver state handlers (dispatch/state_machines/driver_state.py)

Rule: nothing else writes driver availability.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dispatch.events import DRIVER_LOCATION_UPDATE, DRIVER_STATUS_UPDATED, EventPublisher
from dispatch.exceptions import InvalidStateTransition, NotFoundError, UnauthorizedActor, ValidationError
from dispatch.locks import LockManager, driver_key
from routing.coordinates import Coordinate

from .models import ApprovalStatus, AvailabilityStatus, Driver

logger = logging.getLogger(__name__)

MANUAL_STATUSES = (AvailabilityStatus.ONLINE, AvailabilityStatus.OFFLINE, AvailabilityStatus.BREAK)


class DriverRegistry:
    """
    In-memory driver registry.
    """
    def __init__(self, locks: Optional[LockManager] = None, events: Optional[EventPublisher] = None):
        self.locks = locks or LockManager()
        self.events = events or EventPublisher()
        self._guard = threading.Lock()
        self._drivers: Dict[str, Driver] = {}  # insertion ordered
        self._active_assignment: Dict[str, str] = {}  # driver id -> request id

    # --- Public API ---

    def register(self, driver: Driver) -> Driver:
        with self.locks.lock(driver_key(driver.id)):
            with self._guard:
                if driver.id in self._drivers:
                    raise ValidationError(f"Driver {driver.id} is already registered")
                if driver.availability == AvailabilityStatus.ON_TRIP:
                    # a driver can only be on a trip through an assignment
                    driver = replace(driver, availability=AvailabilityStatus.ONLINE)
                self._drivers[driver.id] = driver
        return driver

    def get(self, driver_id: str) -> Driver:
        driver = self._drivers.get(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found")
        return driver

    def all(self) -> List[Driver]:
        with self._guard:
            return list(self._drivers.values())

    def query(self, service_type_id: str, online_only: bool = True) -> List[Driver]:
        """
        Drivers eligible for the service type, in registration order.
        """
        result = []
        for driver in self.all():
            if not driver.can_serve(service_type_id):
                continue
            if online_only and driver.availability != AvailabilityStatus.ONLINE:
                continue
            result.append(driver)
        return result

    def active_assignment(self, driver_id: str) -> Optional[str]:
        return self._active_assignment.get(driver_id)

    def update_location(self, driver_id: str, location: Coordinate) -> Driver:
        with self.locks.lock(driver_key(driver_id)):
            driver = replace(self.get(driver_id), location=location, last_ping_at=datetime.now(timezone.utc))
            self._store(driver)

        self.events.emit(DRIVER_LOCATION_UPDATE, {
            "driverId": driver_id,
            "latitude": location.latitude,
            "longitude": location.longitude,
        })
        return driver

    def set_availability(self, driver_id: str, status: AvailabilityStatus) -> Driver:
        """
        Manual toggle from the driver app.
        - ON_TRIP can't be chosen by hand
        - a driver on a trip must finish or cancel it first
        - only approved drivers may leave OFFLINE
        """
        status = AvailabilityStatus(status)
        if status not in MANUAL_STATUSES:
            raise ValidationError(f"Status {status.value} can't be set manually")

        with self.locks.lock(driver_key(driver_id)):
            driver = self.get(driver_id)
            if driver.availability == AvailabilityStatus.ON_TRIP:
                raise InvalidStateTransition(
                    f"Driver {driver_id} is on a trip",
                    current=driver.availability.value,
                    target=status.value,
                )
            if not driver.is_approved and status != AvailabilityStatus.OFFLINE:
                raise UnauthorizedActor(
                    "Only approved drivers can change status to non-OFFLINE",
                    actor_id=driver_id,
                )
            driver = replace(driver, availability=status)
            self._store(driver)

        self.events.emit(DRIVER_STATUS_UPDATED, {"driverId": driver_id, "status": status.value})
        return driver

    def set_approval(self, driver_id: str, approval: ApprovalStatus) -> Driver:
        """
        Back-office approval change. Losing approval takes an idle driver offline;
        a driver mid-trip keeps the trip and goes offline when it is released.
        """
        approval = ApprovalStatus(approval)
        with self.locks.lock(driver_key(driver_id)):
            driver = self.get(driver_id)
            availability = driver.availability
            if approval != ApprovalStatus.APPROVED and availability in (AvailabilityStatus.ONLINE, AvailabilityStatus.BREAK):
                availability = AvailabilityStatus.OFFLINE
            driver = replace(driver, approval=approval, availability=availability)
            self._store(driver)
        logger.info("Driver %s approval set to %s", driver_id, approval.value)
        return driver

    # --- Assignment (lifecycle only) ---

    def assign_trip(self, driver_id: str, request_id: str) -> Driver:
        """
        ONLINE -> ON_TRIP. Fails if the driver is not free.
        Caller holds (or gets here) the driver lock; RLock makes nesting safe.
        """
        with self.locks.lock(driver_key(driver_id)):
            driver = self.get(driver_id)
            current = self._active_assignment.get(driver_id)
            if current is not None:
                raise InvalidStateTransition(
                    f"Driver {driver_id} is already assigned to request {current}",
                    request_id=request_id,
                    current=driver.availability.value,
                    target=AvailabilityStatus.ON_TRIP.value,
                )
            if driver.availability != AvailabilityStatus.ONLINE:
                raise InvalidStateTransition(
                    f"Driver {driver_id} is {driver.availability.value}, not ONLINE",
                    request_id=request_id,
                    current=driver.availability.value,
                    target=AvailabilityStatus.ON_TRIP.value,
                )
            driver = replace(driver, availability=AvailabilityStatus.ON_TRIP)
            self._active_assignment[driver_id] = request_id
            self._store(driver)
        return driver

    def handover_trip(self, driver_id: str, from_request_id: str, to_request_id: str) -> Driver:
        """
        Moves the active assignment to another request; the driver stays ON_TRIP.
        Used when a pooled ride loses the member the driver was assigned through.
        """
        with self.locks.lock(driver_key(driver_id)):
            driver = self.get(driver_id)
            current = self._active_assignment.get(driver_id)
            if current != from_request_id:
                raise InvalidStateTransition(
                    f"Driver {driver_id} is not assigned to request {from_request_id}",
                    request_id=to_request_id,
                    current=driver.availability.value,
                    target=AvailabilityStatus.ON_TRIP.value,
                )
            self._active_assignment[driver_id] = to_request_id
        logger.info("Driver %s handed over from request %s to %s", driver_id, from_request_id, to_request_id)
        return driver

    def release_trip(self, driver_id: str, request_id: str) -> Driver:
        """
        ON_TRIP -> ONLINE (or OFFLINE when approval was lost mid-trip).
        Releasing a request that isn't the driver's active one is a no-op.
        """
        with self.locks.lock(driver_key(driver_id)):
            driver = self.get(driver_id)
            if self._active_assignment.get(driver_id) != request_id:
                return driver

            del self._active_assignment[driver_id]
            availability = AvailabilityStatus.ONLINE if driver.is_approved else AvailabilityStatus.OFFLINE
            driver = replace(driver, availability=availability)
            self._store(driver)
        return driver

    # --- Internal helpers ---

    def _store(self, driver: Driver) -> None:
        with self._guard:
            self._drivers[driver.id] = driver
