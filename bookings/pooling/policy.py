"""
Purpose: Central configuration for shared-ride pooling (single source of truth).
What it does:

Stores all tunable thresholds/caps:

MAX_CAPACITY = 4 (platform-wide seats per group)

GROUP_WINDOW_MINUTES = 30

PASSENGERS 1..4, MAX_WAIT 5..30 min, MAX_DETOUR 0..50 %

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PoolingPolicy:
    """
    Central configuration for shared-ride grouping.

    Notes:
    - the detour cap comes from the request (max_detour_percent); the bounds here
      only limit what a requester may ask for.
    - a group is joinable while it is younger than group_window_minutes,
      measured back from the request's window (scheduled time or now).
    """

    # --- Capacity ---
    max_capacity: int = 4

    # --- Time window ---
    group_window_minutes: int = 30

    # --- Request input bounds ---
    min_passengers: int = 1
    max_passengers: int = 4
    min_wait_minutes: int = 5
    max_wait_minutes: int = 30
    min_detour_percent: float = 0.0
    max_detour_percent: float = 50.0

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup if you want.
        """
        if self.max_capacity < 1:
            raise ValueError("max_capacity must be >= 1")

        if self.group_window_minutes <= 0:
            raise ValueError("group_window_minutes must be > 0")

        if not 1 <= self.min_passengers <= self.max_passengers <= self.max_capacity:
            raise ValueError("passenger bounds must satisfy 1 <= min <= max <= max_capacity")

        if self.min_wait_minutes < 0 or self.max_wait_minutes < self.min_wait_minutes:
            raise ValueError("wait bounds must satisfy 0 <= min <= max")

        if self.min_detour_percent < 0 or self.max_detour_percent < self.min_detour_percent:
            raise ValueError("detour bounds must satisfy 0 <= min <= max")


def default_pooling_policy() -> PoolingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = PoolingPolicy()
    p.validate()
    return p
