"""
Purpose: Status graphs, one explicit table per service vertical.
What it does:
Each graph is a table of (source, target, required actor, effect) rows, looked
up by the lifecycle instead of branching on the vertical:

RIDE / TAXI / SHARED_RIDE: REQUESTED -> (SEARCHING_DRIVER) -> DRIVER_ACCEPTED -> DRIVER_ARRIVED -> IN_PROGRESS -> COMPLETED
DELIVERY:     PREPARING -> READY_FOR_PICKUP -> DRIVER_ACCEPTED -> DRIVER_ARRIVED -> OUT_FOR_DELIVERY -> DELIVERED
HOUSE_MOVING: SCHEDULED -> CONFIRMED -> LOADING -> IN_TRANSIT -> UNLOADING -> COMPLETED
EMERGENCY:    REQUESTED -> ACKNOWLEDGED -> DISPATCHED -> ARRIVED -> RESOLVED
DAY_BOOKING:  SCHEDULED -> DRIVER_ACCEPTED -> DRIVER_ARRIVED -> IN_PROGRESS -> COMPLETED

CANCELLED is reachable from a per-vertical set of states, always by the requester.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from bookings.models import RequestStatus, ServiceRequest, ServiceVertical

S = RequestStatus

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.DELIVERED, S.RESOLVED})


class ActorRole(str, Enum):
    REQUESTER = "REQUESTER"
    DRIVER = "DRIVER"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    id: Optional[str] = None

    @staticmethod
    def requester(user_id: str) -> Actor:
        return Actor(ActorRole.REQUESTER, user_id)

    @staticmethod
    def driver(driver_id: str) -> Actor:
        return Actor(ActorRole.DRIVER, driver_id)

    @staticmethod
    def system() -> Actor:
        return Actor(ActorRole.SYSTEM)


class Effect(str, Enum):
    NONE = "NONE"
    ASSIGN = "ASSIGN"      # set driver, driver -> ON_TRIP
    START = "START"        # started_at
    COMPLETE = "COMPLETE"  # completed_at, final price, driver -> ONLINE, commission
    CANCEL = "CANCEL"      # cancelled_at, cancellation fee, driver -> ONLINE


@dataclass(frozen=True)
class Transition:
    source: RequestStatus
    target: RequestStatus
    actor: ActorRole
    effect: Effect = Effect.NONE


@dataclass(frozen=True)
class StatusGraph:
    vertical: ServiceVertical
    initial: RequestStatus
    accepted: RequestStatus
    happy_path: Tuple[RequestStatus, ...]
    transitions: Dict[Tuple[RequestStatus, RequestStatus], Transition]
    # progress override per status; falls back to position on the happy path
    progress: Dict[RequestStatus, int] = field(default_factory=dict)

    def find(self, source: RequestStatus, target: RequestStatus) -> Optional[Transition]:
        return self.transitions.get((source, target))

    def targets(self, source: RequestStatus) -> List[RequestStatus]:
        return [t.target for (s, _), t in self.transitions.items() if s == source]

    def is_terminal(self, status: RequestStatus) -> bool:
        return status in TERMINAL_STATUSES

    def cancellable_from(self) -> FrozenSet[RequestStatus]:
        return frozenset(s for (s, target) in self.transitions if target == S.CANCELLED)

    def statuses(self) -> FrozenSet[RequestStatus]:
        return frozenset(self.happy_path) | {S.CANCELLED}


def _graph(
    vertical: ServiceVertical,
    steps: Sequence[Tuple[RequestStatus, RequestStatus, ActorRole, Effect]],
    happy_path: Sequence[RequestStatus],
    accepted: RequestStatus,
    cancellable: Iterable[RequestStatus],
    progress: Optional[Dict[RequestStatus, int]] = None,
) -> StatusGraph:
    transitions = {}
    for source, target, actor, effect in steps:
        transitions[(source, target)] = Transition(source, target, actor, effect)
    for source in cancellable:
        transitions[(source, S.CANCELLED)] = Transition(source, S.CANCELLED, ActorRole.REQUESTER, Effect.CANCEL)

    return StatusGraph(
        vertical=vertical,
        initial=happy_path[0],
        accepted=accepted,
        happy_path=tuple(happy_path),
        transitions=transitions,
        progress=dict(progress or {}),
    )


SYSTEM, DRIVER = ActorRole.SYSTEM, ActorRole.DRIVER

_RIDE_STEPS = [
    (S.REQUESTED, S.SEARCHING_DRIVER, SYSTEM, Effect.NONE),
    (S.REQUESTED, S.DRIVER_ACCEPTED, DRIVER, Effect.ASSIGN),
    (S.SEARCHING_DRIVER, S.DRIVER_ACCEPTED, DRIVER, Effect.ASSIGN),
    (S.DRIVER_ACCEPTED, S.DRIVER_ARRIVED, DRIVER, Effect.NONE),
    (S.DRIVER_ARRIVED, S.IN_PROGRESS, DRIVER, Effect.START),
    (S.IN_PROGRESS, S.COMPLETED, DRIVER, Effect.COMPLETE),
]
_RIDE_PATH = (S.REQUESTED, S.SEARCHING_DRIVER, S.DRIVER_ACCEPTED, S.DRIVER_ARRIVED, S.IN_PROGRESS, S.COMPLETED)
_RIDE_CANCELLABLE = _RIDE_PATH[:-1]


def _ride_graph(vertical: ServiceVertical) -> StatusGraph:
    return _graph(vertical, _RIDE_STEPS, _RIDE_PATH, S.DRIVER_ACCEPTED, _RIDE_CANCELLABLE)


_DELIVERY_PATH = (
    S.PREPARING, S.READY_FOR_PICKUP, S.DRIVER_ACCEPTED,
    S.DRIVER_ARRIVED, S.OUT_FOR_DELIVERY, S.DELIVERED,
)

DELIVERY_GRAPH = _graph(
    ServiceVertical.DELIVERY,
    [
        (S.PREPARING, S.READY_FOR_PICKUP, SYSTEM, Effect.NONE),
        (S.READY_FOR_PICKUP, S.DRIVER_ACCEPTED, DRIVER, Effect.ASSIGN),
        (S.DRIVER_ACCEPTED, S.DRIVER_ARRIVED, DRIVER, Effect.START),
        (S.DRIVER_ARRIVED, S.OUT_FOR_DELIVERY, DRIVER, Effect.NONE),
        (S.OUT_FOR_DELIVERY, S.DELIVERED, DRIVER, Effect.COMPLETE),
    ],
    _DELIVERY_PATH,
    accepted=S.DRIVER_ACCEPTED,
    cancellable=_DELIVERY_PATH[:-1],
)

HOUSE_MOVING_GRAPH = _graph(
    ServiceVertical.HOUSE_MOVING,
    [
        (S.SCHEDULED, S.CONFIRMED, DRIVER, Effect.ASSIGN),
        (S.CONFIRMED, S.LOADING, DRIVER, Effect.START),
        (S.LOADING, S.IN_TRANSIT, DRIVER, Effect.NONE),
        (S.IN_TRANSIT, S.UNLOADING, DRIVER, Effect.NONE),
        (S.UNLOADING, S.COMPLETED, DRIVER, Effect.COMPLETE),
    ],
    (S.SCHEDULED, S.CONFIRMED, S.LOADING, S.IN_TRANSIT, S.UNLOADING, S.COMPLETED),
    accepted=S.CONFIRMED,
    # once loading begins the move can't be cancelled
    cancellable=(S.SCHEDULED, S.CONFIRMED),
    progress={
        S.SCHEDULED: 0,
        S.CONFIRMED: 10,
        S.LOADING: 30,
        S.IN_TRANSIT: 60,
        S.UNLOADING: 90,
        S.COMPLETED: 100,
    },
)

EMERGENCY_GRAPH = _graph(
    ServiceVertical.EMERGENCY,
    [
        (S.REQUESTED, S.ACKNOWLEDGED, DRIVER, Effect.ASSIGN),
        (S.ACKNOWLEDGED, S.DISPATCHED, DRIVER, Effect.START),
        (S.DISPATCHED, S.ARRIVED, DRIVER, Effect.NONE),
        (S.ARRIVED, S.RESOLVED, DRIVER, Effect.COMPLETE),
    ],
    (S.REQUESTED, S.ACKNOWLEDGED, S.DISPATCHED, S.ARRIVED, S.RESOLVED),
    accepted=S.ACKNOWLEDGED,
    cancellable=(S.REQUESTED, S.ACKNOWLEDGED, S.DISPATCHED),
)

DAY_BOOKING_GRAPH = _graph(
    ServiceVertical.DAY_BOOKING,
    [
        (S.SCHEDULED, S.DRIVER_ACCEPTED, DRIVER, Effect.ASSIGN),
        (S.DRIVER_ACCEPTED, S.DRIVER_ARRIVED, DRIVER, Effect.NONE),
        (S.DRIVER_ARRIVED, S.IN_PROGRESS, DRIVER, Effect.START),
        (S.IN_PROGRESS, S.COMPLETED, DRIVER, Effect.COMPLETE),
    ],
    (S.SCHEDULED, S.DRIVER_ACCEPTED, S.DRIVER_ARRIVED, S.IN_PROGRESS, S.COMPLETED),
    accepted=S.DRIVER_ACCEPTED,
    cancellable=(S.SCHEDULED, S.DRIVER_ACCEPTED, S.DRIVER_ARRIVED),
)

GRAPHS: Dict[ServiceVertical, StatusGraph] = {
    ServiceVertical.RIDE: _ride_graph(ServiceVertical.RIDE),
    ServiceVertical.TAXI: _ride_graph(ServiceVertical.TAXI),
    ServiceVertical.SHARED_RIDE: _ride_graph(ServiceVertical.SHARED_RIDE),
    ServiceVertical.DELIVERY: DELIVERY_GRAPH,
    ServiceVertical.HOUSE_MOVING: HOUSE_MOVING_GRAPH,
    ServiceVertical.EMERGENCY: EMERGENCY_GRAPH,
    ServiceVertical.DAY_BOOKING: DAY_BOOKING_GRAPH,
}


def graph_for(vertical: ServiceVertical) -> StatusGraph:
    return GRAPHS[ServiceVertical(vertical)]


def initial_status(vertical: ServiceVertical) -> RequestStatus:
    return graph_for(vertical).initial


def progress_percentage(request: ServiceRequest) -> int:
    """
    How far along its happy path a request is, 0..100.
    Cancelled requests report 0.
    """
    graph = graph_for(request.vertical)
    if request.status in graph.progress:
        return graph.progress[request.status]
    if request.status not in graph.happy_path:
        return 0
    position = graph.happy_path.index(request.status)
    return round(100 * position / (len(graph.happy_path) - 1))
