"""
Purpose: Ranking/selection model (the "who is best" layer).
What it does:
Takes rule-qualified candidates and orders them by great-circle distance to the pickup.

Tie-breaking is deterministic: equal distances keep registry order, so the first
driver encountered wins. A spatial index may replace the scan as long as this
ordering is preserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from drivers.models import Driver
from routing.coordinates import Coordinate
from routing.distance import haversine_meters

from .candidate_filter import build_base_candidates


@dataclass(frozen=True)
class RankedCandidate:
    driver: Driver
    pickup_distance_m: float


def rank_candidates(
    pickup: Coordinate,
    service_type_id: str,
    drivers: Iterable[Driver],
    max_pickup_distance_m: Optional[float] = None,
) -> List[RankedCandidate]:
    """
    Eligible drivers, closest first. sort() is stable, which keeps the tie-break.
    """
    ranked = []
    for driver in build_base_candidates(drivers, service_type_id):
        distance = haversine_meters(driver.location, pickup)
        if max_pickup_distance_m is not None and distance > max_pickup_distance_m:
            continue
        ranked.append(RankedCandidate(driver=driver, pickup_distance_m=distance))

    ranked.sort(key=lambda candidate: candidate.pickup_distance_m)
    return ranked


def find_best_driver(
    pickup: Coordinate,
    service_type_id: str,
    drivers: Iterable[Driver],
    max_pickup_distance_m: Optional[float] = None,
) -> Optional[Driver]:
    """
    Single closest eligible driver, or None when nobody qualifies.
    None is a normal outcome: the caller queues the request unassigned.
    Pure query, no side effects.
    """
    best: Optional[Driver] = None
    best_distance = float("inf")

    for driver in build_base_candidates(drivers, service_type_id):
        distance = haversine_meters(driver.location, pickup)
        if max_pickup_distance_m is not None and distance > max_pickup_distance_m:
            continue
        # strict < so the first driver encountered wins a tie
        if distance < best_distance:
            best_distance = distance
            best = driver

    return best
