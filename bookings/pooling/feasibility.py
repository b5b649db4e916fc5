# bookings/pooling/feasibility.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from routing.coordinates import Coordinate
from routing.distance import haversine_meters

from ..models import RequestStatus, SharedRideGroup
from .policy import PoolingPolicy

JOINABLE_STATUSES = (RequestStatus.REQUESTED, RequestStatus.SEARCHING_DRIVER)


@dataclass(frozen=True)
class DetourResult:
    """
    Output of detour evaluation for one candidate group.
    """
    group: SharedRideGroup
    detour_m: float
    max_detour_m: float

    @property
    def is_feasible(self) -> bool:
        return self.detour_m <= self.max_detour_m


def max_detour_meters(direct_distance_m: float, max_detour_percent: float) -> float:
    return direct_distance_m * (1 + max_detour_percent / 100)


def evaluate_detour(
    group: SharedRideGroup,
    pickup: Coordinate,
    dropoff: Coordinate,
    max_detour_m: float,
) -> DetourResult:
    """
    detour = distance(group origin, pickup) + distance(group destination, dropoff)
    """
    detour = haversine_meters(group.origin, pickup) + haversine_meters(group.destination, dropoff)
    return DetourResult(group=group, detour_m=detour, max_detour_m=max_detour_m)


def is_candidate(
    group: SharedRideGroup,
    passenger_count: int,
    window_start: datetime,
) -> bool:
    """
    Open (REQUESTED / SEARCHING_DRIVER), young enough and with room for the party.
    """
    if group.status not in JOINABLE_STATUSES:
        return False
    if group.created_at < window_start:
        return False
    return group.current_capacity + passenger_count <= group.max_capacity


def window_start(policy: PoolingPolicy, now: datetime, scheduled_time: Optional[datetime] = None) -> datetime:
    return (scheduled_time or now) - timedelta(minutes=policy.group_window_minutes)


def rank_feasible_groups(
    groups: Iterable[SharedRideGroup],
    pickup: Coordinate,
    dropoff: Coordinate,
    passenger_count: int,
    max_detour_percent: float,
    start: datetime,
) -> List[DetourResult]:
    """
    Feasible candidates, best fit (minimum detour) first.
    Stable: equal detours keep store order.
    """
    direct = haversine_meters(pickup, dropoff)
    cap = max_detour_meters(direct, max_detour_percent)

    results = []
    for group in groups:
        if not is_candidate(group, passenger_count, start):
            continue
        result = evaluate_detour(group, pickup, dropoff, cap)
        if result.is_feasible:
            results.append(result)

    results.sort(key=lambda r: r.detour_m)
    return results
