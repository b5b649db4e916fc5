"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Takes a validated submission through the whole flow:

  validate -> (shared ride) join or open a group -> price -> create in the
  initial status -> find the closest eligible driver -> accept transition

When nobody can take the request it is queued unassigned (not an error);
retry_unassigned() is the heartbeat that offers queued requests again.
Every later status change goes through update_status(), which routes
shared-ride cancellations through the grouper so seats are given back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from bookings.models import (
    RequestDraft,
    RequestStatus,
    ServiceRequest,
    ServiceType,
    ServiceVertical,
    SharedRideGroup,
)
from bookings.pooling import PoolingPolicy, SharedRideEstimate, SharedRideGrouper, default_pooling_policy
from bookings.store import GroupStore, RequestStore
from drivers.models import Driver
from drivers.registry import DriverRegistry
from fares.breakdown import FareBreakdown
from fares.calculator import (
    price_day_booking,
    price_delivery,
    price_emergency,
    price_house_moving,
    price_ride,
    price_shared_ride,
    price_taxi,
)
from fares.commission import CommissionLedger
from fares.policy import PricingPolicy, default_pricing_policy
from routing.coordinates import Coordinate
from routing.distance import haversine_km
from routing.geofence import TaxiZone, locate_zone

from .events import EventPublisher
from .exceptions import InvalidStateTransition, NotFoundError, ValidationError
from .locks import LockManager
from .policy import DispatchPolicy, default_dispatch_policy
from .scoring import rank_candidates
from .state_machines.graphs import Actor, graph_for, progress_percentage
from .state_machines.request_state import LifecycleStateMachine
from .validation import validate_draft

logger = logging.getLogger(__name__)

# verticals matched automatically; moves and day bookings are accepted by hand
AUTO_DISPATCH_VERTICALS = (
    ServiceVertical.RIDE,
    ServiceVertical.TAXI,
    ServiceVertical.SHARED_RIDE,
    ServiceVertical.DELIVERY,
    ServiceVertical.EMERGENCY,
)

# statuses a request can be matched from
DISPATCHABLE_STATUSES = (
    RequestStatus.REQUESTED,
    RequestStatus.SEARCHING_DRIVER,
    RequestStatus.READY_FOR_PICKUP,
)

RIDE_FAMILY = (ServiceVertical.RIDE, ServiceVertical.TAXI, ServiceVertical.SHARED_RIDE)


@dataclass(frozen=True)
class DispatchOutcome:
    request: ServiceRequest
    driver: Optional[Driver] = None
    group: Optional[SharedRideGroup] = None
    is_new_group: bool = False

    @property
    def assigned(self) -> bool:
        return self.driver is not None


class Dispatcher:
    """
    Wires the registry, stores, grouper, lifecycle and calculators together.
    """
    def __init__(
        self,
        registry: Optional[DriverRegistry] = None,
        requests: Optional[RequestStore] = None,
        groups: Optional[GroupStore] = None,
        service_types: Iterable[ServiceType] = (),
        zones: Iterable[TaxiZone] = (),
        locks: Optional[LockManager] = None,
        events: Optional[EventPublisher] = None,
        ledger: Optional[CommissionLedger] = None,
        policy: Optional[DispatchPolicy] = None,
        pricing: Optional[PricingPolicy] = None,
        pooling: Optional[PoolingPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.locks = locks or LockManager()
        self.events = events or EventPublisher()
        self.registry = registry or DriverRegistry(locks=self.locks, events=self.events)
        self.requests = requests or RequestStore()
        self.groups = groups or GroupStore()
        self.ledger = ledger or CommissionLedger()
        self.policy = policy or default_dispatch_policy()
        self.pricing = pricing or default_pricing_policy()
        self.pooling = pooling or default_pooling_policy()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.service_types: Dict[str, ServiceType] = {st.id: st for st in service_types}
        self.zones: List[TaxiZone] = list(zones)

        self.lifecycle = LifecycleStateMachine(
            requests=self.requests,
            drivers=self.registry,
            groups=self.groups,
            locks=self.locks,
            events=self.events,
            ledger=self.ledger,
            pricing=self.pricing,
            clock=self.clock,
        )
        self.grouper = SharedRideGrouper(
            groups=self.groups,
            requests=self.requests,
            locks=self.locks,
            events=self.events,
            policy=self.pooling,
            pricing=self.pricing,
            clock=self.clock,
            lifecycle=self.lifecycle,
        )

    # --- Reference data ---

    def add_service_type(self, service_type: ServiceType) -> None:
        self.service_types[service_type.id] = service_type

    def service_type(self, service_type_id: str) -> ServiceType:
        service_type = self.service_types.get(service_type_id)
        if service_type is None:
            raise NotFoundError(f"Service type {service_type_id} not found")
        return service_type

    def zone_for(self, point: Optional[Coordinate]) -> Optional[TaxiZone]:
        if point is None:
            return None
        return locate_zone(point, self.zones)

    # --- Submission ---

    def submit(self, draft: RequestDraft) -> DispatchOutcome:
        """
        Validate, price, create and (for auto-dispatched verticals) match a request.
        """
        service_type = self.service_type(draft.service_type_id)
        now = self.clock()
        validate_draft(draft, service_type, now, self.pooling)

        vertical = service_type.vertical
        request_id = ServiceRequest.new_id()
        group, is_new_group = None, False
        origin_zone = destination_zone = None

        if vertical == ServiceVertical.SHARED_RIDE:
            group, is_new_group = self.grouper.join_or_create(
                draft.pickup,
                draft.dropoff,
                draft.passenger_count,
                draft.max_wait_minutes,
                draft.max_detour_percent,
                scheduled_time=draft.scheduled_time,
                member_id=request_id,
            )
            fare = price_shared_ride(
                haversine_km(draft.pickup, draft.dropoff),
                self.grouper.discount_for(group),
                service_type,
                self.pricing,
            )
        else:
            if vertical == ServiceVertical.TAXI:
                origin_zone = self.zone_for(draft.pickup)
                destination_zone = self.zone_for(draft.dropoff)
            fare = self.price(draft, service_type, origin_zone, destination_zone)

        request = ServiceRequest(
            id=request_id,
            requester_id=draft.requester_id,
            service_type=service_type,
            status=graph_for(vertical).initial,
            pickup=draft.pickup,
            dropoff=draft.dropoff,
            requested_driver_id=draft.requested_driver_id,
            scheduled_time=draft.scheduled_time,
            passenger_count=draft.passenger_count,
            estimated_price=fare.total,
            fare=fare,
            created_at=now,
            shared_group_id=group.id if group is not None else None,
            items=tuple(draft.items),
            inventory=tuple(draft.inventory),
            helpers_count=draft.helpers_count,
            priority=draft.priority if vertical == ServiceVertical.EMERGENCY else None,
            is_metered=draft.is_metered if vertical == ServiceVertical.TAXI else False,
            origin_zone_id=origin_zone.id if origin_zone else None,
            destination_zone_id=destination_zone.id if destination_zone else None,
            notes=draft.notes,
        )
        self.lifecycle.create(request)

        # joiners ride under the group's driver
        if group is not None and not is_new_group:
            return DispatchOutcome(request, group=group)

        if vertical in AUTO_DISPATCH_VERTICALS and request.status in DISPATCHABLE_STATUSES:
            outcome = self.dispatch(request.id)
            return DispatchOutcome(outcome.request, outcome.driver, group, is_new_group)

        return DispatchOutcome(request, group=group, is_new_group=is_new_group)

    def price(
        self,
        draft: RequestDraft,
        service_type: ServiceType,
        origin_zone: Optional[TaxiZone] = None,
        destination_zone: Optional[TaxiZone] = None,
    ) -> FareBreakdown:
        """
        Fare for a non-pooled submission.
        """
        vertical = service_type.vertical
        distance_km = 0.0
        if draft.pickup is not None and draft.dropoff is not None:
            distance_km = haversine_km(draft.pickup, draft.dropoff)

        if vertical == ServiceVertical.TAXI:
            return price_taxi(service_type, origin_zone, destination_zone, draft.is_metered, self.pricing)
        if vertical == ServiceVertical.DELIVERY:
            return price_delivery(draft.items, distance_km, service_type, self.pricing)
        if vertical == ServiceVertical.HOUSE_MOVING:
            return price_house_moving(draft.inventory, distance_km, draft.helpers_count, service_type, self.pricing)
        if vertical == ServiceVertical.DAY_BOOKING:
            return price_day_booking(draft.day_rate, draft.district_rate, service_type, self.pricing)
        if vertical == ServiceVertical.EMERGENCY:
            return price_emergency(draft.priority, service_type, self.pricing)
        if vertical == ServiceVertical.SHARED_RIDE:
            return price_shared_ride(distance_km, 0.0, service_type, self.pricing)
        return price_ride(service_type, self.pricing)

    # --- Matching ---

    def dispatch(self, request_id: str) -> DispatchOutcome:
        """
        Offer the request to the closest eligible driver. If that driver was
        taken in the meantime, fall through to the next one (up to
        max_assignment_attempts). Nobody left: queue the request unassigned.
        """
        request = self.requests.get(request_id)
        if request.vertical not in AUTO_DISPATCH_VERTICALS:
            raise ValidationError(f"{request.vertical.value} requests are accepted by drivers, not dispatched")
        if request.status not in DISPATCHABLE_STATUSES:
            raise InvalidStateTransition(
                f"Request {request_id} is {request.status.value}",
                request_id=request_id,
                current=request.status.value,
            )

        accepted = graph_for(request.vertical).accepted
        service_type_id = request.service_type.id
        ranked = rank_candidates(
            request.pickup,
            service_type_id,
            self.registry.query(service_type_id),
            self.policy.max_pickup_distance_m,
        )

        for candidate in ranked[:self.policy.max_assignment_attempts]:
            driver_id = candidate.driver.id
            try:
                updated = self.lifecycle.apply_transition(request_id, accepted, Actor.driver(driver_id))
            except InvalidStateTransition as e:
                if self.requests.get(request_id).status not in DISPATCHABLE_STATUSES:
                    # the request moved on (cancelled, accepted elsewhere)
                    raise
                logger.info("Driver %s no longer available for %s: %s", driver_id, request_id, e)
                continue

            logger.info(
                "Assigned driver %s to request %s (%.0fm to pickup)",
                driver_id, request_id, candidate.pickup_distance_m,
            )
            return DispatchOutcome(updated, self.registry.get(driver_id), self._group_of(updated))

        return self._queue_unassigned(request_id)

    def retry_unassigned(self) -> List[DispatchOutcome]:
        """
        Heartbeat: offer every queued request again, oldest first.
        Returns the ones that got a driver this cycle.
        """
        assigned = []
        for request in self.requests.unassigned():
            if request.status not in DISPATCHABLE_STATUSES:
                self.requests.remove_from_queue(request.id)
                continue
            outcome = self.dispatch(request.id)
            if outcome.assigned:
                assigned.append(outcome)
        return assigned

    def accept(self, request_id: str, driver_id: str) -> ServiceRequest:
        """
        A driver taking a request by hand (moves, day bookings, queued rides).
        """
        request = self.requests.get(request_id)
        accepted = graph_for(request.vertical).accepted
        return self.update_status(request_id, accepted, Actor.driver(driver_id))

    # --- Lifecycle ---

    def update_status(
        self,
        request_id: str,
        target: RequestStatus,
        actor: Actor,
        final_price: Optional[float] = None,
    ) -> ServiceRequest:
        target = RequestStatus(target)
        request = self.requests.get(request_id)

        if target == RequestStatus.CANCELLED and request.shared_group_id is not None:
            self.leave_shared_ride(request_id, actor)
            return self.requests.get(request_id)

        updated = self.lifecycle.apply_transition(request_id, target, actor, final_price=final_price)

        if updated.vertical == ServiceVertical.DELIVERY and target == RequestStatus.READY_FOR_PICKUP:
            return self.dispatch(request_id).request
        return updated

    def leave_shared_ride(self, request_id: str, actor: Actor) -> Optional[SharedRideGroup]:
        """
        Leave a pooled ride. When the group is left without a driver and
        without a member waiting in the unassigned queue, the next remaining
        member is dispatched for it (or queued when nobody is free).
        """
        group = self.grouper.leave(request_id, actor)
        if group is None or group.driver_id is not None:
            return group
        if any(self.requests.is_queued(m) for m in group.member_request_ids):
            return group

        for member_id in group.member_request_ids:
            member = self.requests.find(member_id)
            if member is not None and member.status in DISPATCHABLE_STATUSES:
                self.dispatch(member_id)
                break
        return self.groups.find(group.id) or group

    def estimate_shared_ride(
        self,
        pickup: Coordinate,
        dropoff: Coordinate,
        passenger_count: int = 1,
        max_wait_minutes: int = 15,
        max_detour_percent: float = 20.0,
        scheduled_time: Optional[datetime] = None,
        service_type_id: Optional[str] = None,
    ) -> SharedRideEstimate:
        service_type = self.service_type(service_type_id) if service_type_id else None
        return self.grouper.estimate(
            pickup,
            dropoff,
            passenger_count,
            max_wait_minutes,
            max_detour_percent,
            scheduled_time=scheduled_time,
            service_type=service_type,
        )

    def progress(self, request_id: str) -> int:
        return progress_percentage(self.requests.get(request_id))

    # --- Internal helpers ---

    def _queue_unassigned(self, request_id: str) -> DispatchOutcome:
        request = self.requests.get(request_id)
        if (
            self.policy.mark_searching_when_unassigned
            and request.vertical in RIDE_FAMILY
            and request.status == RequestStatus.REQUESTED
        ):
            request = self.lifecycle.apply_transition(request_id, RequestStatus.SEARCHING_DRIVER, Actor.system())

        self.requests.enqueue_unassigned(request_id, now=self.clock())
        logger.warning("No driver available for request %s, queued unassigned", request_id)
        return DispatchOutcome(request, group=self._group_of(request))

    def _group_of(self, request: ServiceRequest) -> Optional[SharedRideGroup]:
        if request.shared_group_id is None:
            return None
        return self.groups.find(request.shared_group_id)
