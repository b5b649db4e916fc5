"""
Purpose: The request lifecycle (the only writer of ServiceRequest status).
What it does:
- create(): stores a new request in its vertical's initial status
- apply_transition(): graph check, then actor check, then side effects:
   - ASSIGN   : driver set, driver -> ON_TRIP, service:driver_assigned
   - START    : started_at
   - COMPLETE : completed_at, final price locked, driver -> ONLINE, commission
   - CANCEL   : cancelled_at, tiered cancellation fee, driver -> ONLINE
  plus shared-ride group mirroring and a service:<status> event.

Shared rides: the driver is assigned through one member of the group (the
driver's active assignment). That member's transitions move the group and
every other member rides along through the same statuses, each with its own
final price and commission. If that member cancels, the driver is handed
over to the next remaining member instead of being released.

Atomic: every check runs before anything is written. The driver flip is the
only step that can still fail after validation and it runs before the request
is replaced in the store.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from bookings.models import RequestStatus, ServiceRequest, ServiceVertical, SharedRideGroup
from bookings.store import GroupStore, RequestStore
from dispatch.events import DRIVER_ASSIGNED, GROUP_DRIVER_ASSIGNED, GROUP_UPDATE, EventPublisher, status_topic
from dispatch.exceptions import InvalidStateTransition, UnauthorizedActor, ValidationError
from dispatch.locks import LockManager, group_key, request_key
from drivers.registry import DriverRegistry
from fares.calculator import cancellation_fee
from fares.commission import CommissionLedger
from fares.policy import PricingPolicy, default_pricing_policy

from .driver_state import handle_driver_acceptance, handle_driver_handover, handle_driver_release
from .graphs import TERMINAL_STATUSES, Actor, ActorRole, Effect, StatusGraph, Transition, graph_for

logger = logging.getLogger(__name__)

# group status follows its driver-carrying member through these
MIRRORED_STATUSES = (
    RequestStatus.DRIVER_ACCEPTED,
    RequestStatus.DRIVER_ARRIVED,
    RequestStatus.IN_PROGRESS,
    RequestStatus.COMPLETED,
)


class LifecycleStateMachine:
    def __init__(
        self,
        requests: RequestStore,
        drivers: DriverRegistry,
        groups: Optional[GroupStore] = None,
        locks: Optional[LockManager] = None,
        events: Optional[EventPublisher] = None,
        ledger: Optional[CommissionLedger] = None,
        pricing: Optional[PricingPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.requests = requests
        self.drivers = drivers
        self.groups = groups or GroupStore()
        self.locks = locks or LockManager()
        self.events = events or EventPublisher()
        self.ledger = ledger or CommissionLedger()
        self.pricing = pricing or default_pricing_policy()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # --- Public API ---

    def create(self, request: ServiceRequest) -> ServiceRequest:
        graph = graph_for(request.vertical)
        if request.status != graph.initial:
            raise InvalidStateTransition(
                f"A {request.vertical.value} request starts in {graph.initial.value}",
                request_id=request.id,
                current=request.status.value,
                target=graph.initial.value,
            )
        self.requests.add(request)
        logger.info("Created %s request %s", request.vertical.value, request.id)
        self._emit_status(request)
        return request

    def apply_transition(
        self,
        request_id: str,
        target: RequestStatus,
        actor: Actor,
        final_price: Optional[float] = None,
    ) -> ServiceRequest:
        target = RequestStatus(target)
        riders: List[str] = []

        with self.locks.lock(request_key(request_id)):
            request = self.requests.get(request_id)
            graph = graph_for(request.vertical)

            transition = self._check_graph(graph, request, target)
            self._check_actor(transition, request, actor)
            self._check_final_price(request, transition, final_price)

            now = self.clock()
            updated, fee = self._build(request, transition, actor, now, final_price)

            group_id = request.shared_group_id
            if group_id is not None:
                with self.locks.lock(group_key(group_id)):
                    group = self._commit(request, updated, transition)
                    if group is not None:
                        riders = [m for m in group.member_request_ids if m != request_id]
            else:
                group = self._commit(request, updated, transition)

            self._record_commission(updated, transition, fee)

        if target in TERMINAL_STATUSES:
            # terminal is absorbing, nothing waits on this key again
            self.locks.discard(request_key(request_id))

        logger.info(
            "Request %s %s -> %s by %s",
            request_id, request.status.value, target.value, actor.role.value,
        )
        self._emit_transition(updated, transition, group)

        for member_id in riders:
            self._ride_along(member_id, target, updated.driver_id)
        return updated

    # --- Checks (no mutation) ---

    def _check_graph(self, graph: StatusGraph, request: ServiceRequest, target: RequestStatus) -> Transition:
        if graph.is_terminal(request.status):
            raise InvalidStateTransition(
                f"Request {request.id} is already {request.status.value}",
                request_id=request.id,
                current=request.status.value,
                target=target.value,
            )
        transition = graph.find(request.status, target)
        if transition is None:
            raise InvalidStateTransition(
                f"Cannot move a {request.vertical.value} request from {request.status.value} to {target.value}",
                request_id=request.id,
                current=request.status.value,
                target=target.value,
            )
        return transition

    def _check_actor(self, transition: Transition, request: ServiceRequest, actor: Actor) -> None:
        def reject(reason: str):
            return UnauthorizedActor(reason, actor_id=actor.id, request_id=request.id)

        if actor.role != transition.actor:
            raise reject(
                f"{transition.target.value} requires a {transition.actor.value.lower()}, "
                f"got a {actor.role.value.lower()}"
            )

        if transition.actor == ActorRole.REQUESTER:
            if actor.id != request.requester_id:
                raise reject("Only the requester can cancel this request")

        elif transition.actor == ActorRole.DRIVER:
            if actor.id is None:
                raise reject("A driver id is required")
            if transition.effect == Effect.ASSIGN:
                if request.requested_driver_id is not None and actor.id != request.requested_driver_id:
                    raise reject("This booking was made with another driver")
            elif actor.id != request.driver_id:
                raise reject("Only the assigned driver can update this request")

    def _check_final_price(self, request: ServiceRequest, transition: Transition, final_price: Optional[float]) -> None:
        if final_price is None:
            return
        if transition.effect != Effect.COMPLETE:
            raise ValidationError("A final price can only be given on completion")
        if request.vertical != ServiceVertical.TAXI or not request.is_metered:
            raise ValidationError("Only metered taxi trips take a final price override")
        if final_price < 0:
            raise ValidationError("Final price must be >= 0")

    # --- Effects ---

    def _build(
        self,
        request: ServiceRequest,
        transition: Transition,
        actor: Actor,
        now: datetime,
        final_price: Optional[float],
    ) -> Tuple[ServiceRequest, float]:
        """
        The next request version. Nothing is written here.
        """
        effect = transition.effect
        changes = {"status": transition.target}
        fee = 0.0

        if effect == Effect.ASSIGN:
            changes["driver_id"] = actor.id
        elif effect == Effect.START:
            changes["started_at"] = now
        elif effect == Effect.COMPLETE:
            changes["completed_at"] = now
            changes["final_price"] = final_price if final_price is not None else request.estimated_price
        elif effect == Effect.CANCEL:
            changes["cancelled_at"] = now
            if request.vertical.value in self.pricing.fee_on_cancel_verticals:
                fee = cancellation_fee(request.estimated_price, request.scheduled_time, now, self.pricing)
            if fee > 0:
                changes["cancellation_fee"] = fee
                changes["final_price"] = fee

        return replace(request, **changes), fee

    def _commit(self, request: ServiceRequest, updated: ServiceRequest, transition: Transition) -> Optional[SharedRideGroup]:
        """
        Driver flip, store write, group mirror. Runs under the request (and group) lock.
        Returns the group when this request is the one carrying its driver.
        """
        group = self.groups.find(request.shared_group_id) if request.shared_group_id else None

        if transition.effect == Effect.ASSIGN:
            if group is not None and group.driver_id is not None:
                raise InvalidStateTransition(
                    f"Shared ride group {group.id} already has driver {group.driver_id}",
                    request_id=request.id,
                    current=request.status.value,
                    target=transition.target.value,
                )
            # may raise: the request is untouched if it does
            handle_driver_acceptance(self.drivers, updated.driver_id, request.id, request.service_type.id)
            carrier = group is not None
        else:
            carrier = (
                group is not None
                and request.driver_id is not None
                and self.drivers.active_assignment(request.driver_id) == request.id
            )

        self.requests.save(updated)
        if transition.effect in (Effect.COMPLETE, Effect.ASSIGN, Effect.CANCEL):
            self.requests.remove_from_queue(request.id)

        if transition.effect in (Effect.COMPLETE, Effect.CANCEL) and request.driver_id is not None:
            successor = self._successor(group, request) if carrier and transition.effect == Effect.CANCEL else None
            if successor is not None:
                handle_driver_handover(self.drivers, request.driver_id, request.id, successor)
            else:
                handle_driver_release(self.drivers, request.driver_id, request.id)

        if not carrier:
            return None
        return self._mirror_group(group, updated, transition)

    def _successor(self, group: SharedRideGroup, request: ServiceRequest) -> Optional[str]:
        for member_id in group.member_request_ids:
            if member_id == request.id:
                continue
            member = self.requests.find(member_id)
            if member is not None and member.status not in TERMINAL_STATUSES:
                return member_id
        return None

    def _mirror_group(self, group: SharedRideGroup, updated: ServiceRequest, transition: Transition) -> Optional[SharedRideGroup]:
        if transition.target not in MIRRORED_STATUSES:
            return None
        if transition.effect == Effect.ASSIGN:
            group.driver_id = updated.driver_id
        group.status = transition.target
        self.groups.save(group)
        return group

    def _ride_along(self, member_id: str, target: RequestStatus, driver_id: Optional[str]) -> None:
        """
        Moves a pooled member to the status its group just reached.
        No driver flip: the driver is already assigned through the group.
        """
        if driver_id is None:
            return

        with self.locks.lock(request_key(member_id)):
            member = self.requests.find(member_id)
            if member is None or member.status in TERMINAL_STATUSES or member.status == target:
                return
            transition = graph_for(member.vertical).find(member.status, target)
            if transition is None:
                logger.warning(
                    "Shared ride member %s can't follow its group from %s to %s",
                    member_id, member.status.value, target.value,
                )
                return

            updated, _ = self._build(member, transition, Actor.driver(driver_id), self.clock(), None)
            self.requests.save(updated)
            if transition.effect in (Effect.ASSIGN, Effect.COMPLETE):
                self.requests.remove_from_queue(member_id)
            self._record_commission(updated, transition, 0.0)

        if target in TERMINAL_STATUSES:
            self.locks.discard(request_key(member_id))

        logger.info("Shared ride member %s %s -> %s with its group", member_id, member.status.value, target.value)
        self._emit_transition(updated, transition, None)

    def _record_commission(self, updated: ServiceRequest, transition: Transition, fee: float) -> None:
        rate = updated.service_type.commission_rate
        if transition.effect == Effect.COMPLETE:
            self.ledger.record(updated.id, updated.final_price or 0.0, rate)
        elif transition.effect == Effect.CANCEL and fee > 0:
            self.ledger.record(updated.id, fee, rate)

    # --- Events (after every lock is released) ---

    def _emit_status(self, request: ServiceRequest) -> None:
        self.events.emit(status_topic(request.status.value), {
            "serviceId": request.id,
            "status": request.status.value,
            "requesterId": request.requester_id,
            "driverId": request.driver_id,
        })

    def _emit_transition(self, updated: ServiceRequest, transition: Transition, group: Optional[SharedRideGroup]) -> None:
        if transition.effect == Effect.ASSIGN:
            self.events.emit(DRIVER_ASSIGNED, {"serviceId": updated.id, "driverId": updated.driver_id})

        self._emit_status(updated)

        if group is not None:
            if transition.effect == Effect.ASSIGN:
                self.events.emit(GROUP_DRIVER_ASSIGNED, {"groupId": group.id, "driverId": group.driver_id})
            else:
                self.events.emit(GROUP_UPDATE, {
                    "groupId": group.id,
                    "status": group.status.value,
                    "currentCapacity": group.current_capacity,
                })
