"""
Purpose: Central configuration for driver dispatch.
What it does:

Stores the tunable knobs of the matching step:

MAX_PICKUP_DISTANCE_M = None (unlimited, full scan)
MAX_ASSIGNMENT_ATTEMPTS = 5

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for dispatch thresholds.
    """

    # --- Reach ---
    # Drivers farther than this from the pickup are ignored. None = no limit.
    max_pickup_distance_m: Optional[float] = None

    # --- Races ---
    # How many ranked candidates to try when the closest one gets taken
    # by a concurrent assignment before we give up and queue the request.
    max_assignment_attempts: int = 5

    # --- Queue ---
    # Move the request to SEARCHING_DRIVER when nobody is found
    # (ride-family verticals only).
    mark_searching_when_unassigned: bool = True

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.max_pickup_distance_m is not None and self.max_pickup_distance_m <= 0:
            raise ValueError("max_pickup_distance_m must be > 0 or None")

        if self.max_assignment_attempts < 1:
            raise ValueError("max_assignment_attempts must be >= 1")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p
