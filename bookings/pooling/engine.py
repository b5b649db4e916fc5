"""
Purpose: The shared-ride grouping "orchestrator" (single entry point).
What it does:

- join_or_create(): finds the open group a new pooled request fits best
  (capacity, 30-minute window, detour cap, minimum detour) and joins it,
  or opens a new group
- estimate(): the same search without side effects, plus prices
- leave(): takes a request out of its group, cancelling it through the lifecycle

Rule: Engine is the only file other modules should call directly for pooling.
Capacity changes happen under the group lock and are re-checked there,
so concurrent joins can never overrun max_capacity.
"""

# bookings/pooling/engine.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from dispatch.events import GROUP_UPDATE, EventPublisher
from dispatch.exceptions import (
    CapacityExceeded,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from dispatch.locks import LockManager, group_key, request_key
from fares.breakdown import money
from fares.calculator import price_shared_ride, shared_discount_percent
from fares.policy import PricingPolicy, default_pricing_policy
from routing.coordinates import Coordinate
from routing.distance import haversine_meters

from ..models import RequestStatus, ServiceType, SharedRideGroup
from ..store import GroupStore, RequestStore
from .feasibility import JOINABLE_STATUSES, rank_feasible_groups, window_start
from .policy import PoolingPolicy, default_pooling_policy

if TYPE_CHECKING:
    from dispatch.state_machines.graphs import Actor
    from dispatch.state_machines.request_state import LifecycleStateMachine

logger = logging.getLogger(__name__)

# a request may leave its group only before pickup
LEAVABLE_STATUSES = (
    RequestStatus.REQUESTED,
    RequestStatus.SEARCHING_DRIVER,
    RequestStatus.DRIVER_ACCEPTED,
)


@dataclass(frozen=True)
class PotentialMatch:
    group_id: str
    current_passengers: int
    detour_km: float
    estimated_discount: float
    latest_pickup_at: datetime


@dataclass(frozen=True)
class SharedRideEstimate:
    """
    Non-binding preview of a pooled ride. Matches are best fit first.
    """
    direct_distance_km: float
    direct_price: float
    shared_price: float
    pickup_window_minutes: int
    potential_matches: List[PotentialMatch] = field(default_factory=list)


class SharedRideGrouper:
    def __init__(
        self,
        groups: GroupStore,
        requests: Optional[RequestStore] = None,
        locks: Optional[LockManager] = None,
        events: Optional[EventPublisher] = None,
        policy: Optional[PoolingPolicy] = None,
        pricing: Optional[PricingPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lifecycle: Optional[LifecycleStateMachine] = None,
    ):
        self.groups = groups
        self.requests = requests
        self.locks = locks or LockManager()
        self.events = events or EventPublisher()
        self.policy = policy or default_pooling_policy()
        self.pricing = pricing or default_pricing_policy()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.lifecycle = lifecycle

    # --- Public API ---

    def validate(self, passenger_count: int, max_wait_minutes: int, max_detour_percent: float) -> None:
        p = self.policy
        if not p.min_passengers <= passenger_count <= p.max_passengers:
            raise ValidationError(f"passenger_count must be between {p.min_passengers} and {p.max_passengers}")
        if not p.min_wait_minutes <= max_wait_minutes <= p.max_wait_minutes:
            raise ValidationError(f"max_wait_minutes must be between {p.min_wait_minutes} and {p.max_wait_minutes}")
        if not p.min_detour_percent <= max_detour_percent <= p.max_detour_percent:
            raise ValidationError(
                f"max_detour_percent must be between {p.min_detour_percent:g} and {p.max_detour_percent:g}"
            )

    def join_or_create(
        self,
        pickup: Coordinate,
        dropoff: Coordinate,
        passenger_count: int,
        max_wait_minutes: int,
        max_detour_percent: float,
        scheduled_time: Optional[datetime] = None,
        member_id: Optional[str] = None,
    ) -> Tuple[SharedRideGroup, bool]:
        """
        Returns (group, is_new). Joining is best fit: the feasible group with
        the smallest detour wins; a join lost to a concurrent request falls
        through to the next candidate before a new group is opened.
        """
        self.validate(passenger_count, max_wait_minutes, max_detour_percent)

        candidates = rank_feasible_groups(
            self.groups.all(),
            pickup,
            dropoff,
            passenger_count,
            max_detour_percent,
            window_start(self.policy, self.clock(), scheduled_time),
        )

        for candidate in candidates:
            try:
                group = self.join(candidate.group.id, passenger_count, member_id=member_id)
            except (CapacityExceeded, InvalidStateTransition, NotFoundError) as e:
                logger.debug("Group %s no longer joinable: %s", candidate.group.id, e)
                continue

            logger.info(
                "Joined shared ride group %s (detour %.0fm, %d/%d seats)",
                group.id, candidate.detour_m, group.current_capacity, group.max_capacity,
            )
            return group, False

        group = SharedRideGroup.new(
            origin=pickup,
            destination=dropoff,
            distance_m=haversine_meters(pickup, dropoff),
            max_capacity=self.policy.max_capacity,
            passenger_count=passenger_count,
            created_at=self.clock(),
        )
        if member_id is not None:
            group.member_request_ids.append(member_id)
        self.groups.save(group)
        logger.info("Opened shared ride group %s for %d passenger(s)", group.id, passenger_count)
        return group, True

    def join(self, group_id: str, passenger_count: int, member_id: Optional[str] = None) -> SharedRideGroup:
        """
        Take seats in a specific group. Re-checks everything under the group lock.
        """
        with self.locks.lock(group_key(group_id)):
            group = self.groups.get(group_id)
            if group.status not in JOINABLE_STATUSES:
                raise InvalidStateTransition(
                    f"Shared ride group {group_id} is {group.status.value}",
                    current=group.status.value,
                )
            if group.current_capacity + passenger_count > group.max_capacity:
                raise CapacityExceeded(
                    f"Shared ride group {group_id} has {group.seats_left} seat(s) left, {passenger_count} requested"
                )
            group.current_capacity += passenger_count
            if member_id is not None:
                group.member_request_ids.append(member_id)
            self.groups.save(group)
            return group

    def discount_for(self, group: SharedRideGroup) -> float:
        return shared_discount_percent(group.current_capacity, self.pricing)

    def estimate(
        self,
        pickup: Coordinate,
        dropoff: Coordinate,
        passenger_count: int = 1,
        max_wait_minutes: int = 15,
        max_detour_percent: float = 20.0,
        scheduled_time: Optional[datetime] = None,
        service_type: Optional[ServiceType] = None,
    ) -> SharedRideEstimate:
        """
        Preview only: nothing is joined, created or emitted.
        """
        self.validate(passenger_count, max_wait_minutes, max_detour_percent)

        now = self.clock()
        direct_km = haversine_meters(pickup, dropoff) / 1000
        direct_price = price_shared_ride(direct_km, 0.0, service_type, self.pricing).total

        candidates = rank_feasible_groups(
            self.groups.all(),
            pickup,
            dropoff,
            passenger_count,
            max_detour_percent,
            window_start(self.policy, now, scheduled_time),
        )
        latest_pickup_at = (scheduled_time or now) + timedelta(minutes=max_wait_minutes)
        matches = [
            PotentialMatch(
                group_id=c.group.id,
                current_passengers=c.group.current_capacity,
                detour_km=round(c.detour_m / 1000, 3),
                estimated_discount=shared_discount_percent(c.group.current_capacity + passenger_count, self.pricing),
                latest_pickup_at=latest_pickup_at,
            )
            for c in candidates
        ]

        # no match yet: priced as a freshly opened group
        discount = matches[0].estimated_discount if matches else shared_discount_percent(passenger_count, self.pricing)
        shared_price = price_shared_ride(direct_km, discount, service_type, self.pricing).total

        return SharedRideEstimate(
            direct_distance_km=round(direct_km, 3),
            direct_price=direct_price,
            shared_price=money(shared_price),
            pickup_window_minutes=max_wait_minutes,
            potential_matches=matches,
        )

    def leave(self, request_id: str, actor: Actor) -> Optional[SharedRideGroup]:
        """
        Cancel a pooled request and give its seats back.
        Returns the updated group, or None when the group emptied and was deleted.
        """
        if self.requests is None or self.lifecycle is None:
            raise RuntimeError("SharedRideGrouper.leave needs a request store and a lifecycle")

        with self.locks.lock(request_key(request_id)):
            request = self.requests.get(request_id)
            if request.shared_group_id is None:
                raise ValidationError(f"Request {request_id} is not a shared ride")
            if request.status not in LEAVABLE_STATUSES:
                raise InvalidStateTransition(
                    "Cannot leave an active ride",
                    request_id=request_id,
                    current=request.status.value,
                    target=RequestStatus.CANCELLED.value,
                )

            group_id = request.shared_group_id
            with self.locks.lock(group_key(group_id)):
                group = self.groups.get(group_id)
                if group.status not in LEAVABLE_STATUSES:
                    raise InvalidStateTransition(
                        "Cannot leave an active ride",
                        request_id=request_id,
                        current=group.status.value,
                        target=RequestStatus.CANCELLED.value,
                    )

                self.lifecycle.apply_transition(request_id, RequestStatus.CANCELLED, actor)

                group.current_capacity -= request.passenger_count
                if request_id in group.member_request_ids:
                    group.member_request_ids.remove(request_id)
                if (group.driver_id is not None
                        and self.lifecycle.drivers.active_assignment(group.driver_id) not in group.member_request_ids):
                    # the driver left with the leaver and nobody took over
                    group.driver_id = None
                    group.status = RequestStatus.SEARCHING_DRIVER

                if group.current_capacity <= 0:
                    self.groups.delete(group_id)
                    logger.info("Shared ride group %s emptied and was deleted", group_id)
                    remaining = None
                else:
                    self.groups.save(group)
                    remaining = group

        if remaining is None:
            self.locks.discard(group_key(group_id))
            return None

        self.events.emit(GROUP_UPDATE, {
            "groupId": remaining.id,
            "currentCapacity": remaining.current_capacity,
            "memberRequestIds": list(remaining.member_request_ids),
        })
        return remaining
