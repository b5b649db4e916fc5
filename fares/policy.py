"""
Purpose: Central configuration for pricing (single source of truth).
What it does:

Stores all tariff constants:

DEFAULT_COMMISSION_RATE = 0.18
DELIVERY: base 2.0 + 0.5/km, tax 5% on goods
MOVING: base 50 + 2/km + 10/m3 + 25/helper + 15/special item, tax 5%
SHARED: 5 + 1/km, 10% off per seated passenger, capped at 40%
CANCELLATION: <24h 50%, <48h 25%, <72h 10%

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Tuple


@dataclass(frozen=True)
class PricingPolicy:
    """
    Central configuration for every vertical's tariff.
    """

    # --- Commission ---
    default_commission_rate: float = 0.18

    # --- Ride / taxi ---
    # Used when a service type has no base price configured.
    fallback_base_price: float = 10.0
    # Share of the destination zone's base price added when a zone taxi crosses zones.
    cross_zone_surcharge_rate: float = 0.5

    # --- Delivery ---
    delivery_base_fee: float = 2.0
    delivery_per_km_fee: float = 0.5
    delivery_tax_rate: float = 0.05

    # --- House moving ---
    moving_base_fee: float = 50.0
    moving_per_km_fee: float = 2.0
    moving_per_cubic_meter_fee: float = 10.0
    moving_per_helper_fee: float = 25.0
    moving_per_special_item_fee: float = 15.0
    moving_tax_rate: float = 0.05
    # m3 per unit, by inventory category
    volume_by_category: Dict[str, float] = field(default_factory=lambda: {
        "furniture": 0.5,
        "box": 0.1,
        "appliance": 0.3,
        "electronics": 0.2,
    })
    default_item_volume: float = 0.2
    moving_average_speed_kmh: float = 40.0

    # --- Shared ride ---
    shared_base_fare: float = 5.0
    shared_per_km_rate: float = 1.0
    shared_discount_per_passenger: float = 10.0  # percent
    shared_max_discount: float = 40.0  # percent

    # --- Emergency ---
    # Emergencies are billed later; the priority surcharge is an opt-in tariff.
    emergency_base_price: float = 0.0
    emergency_priority_surcharge: Dict[str, float] = field(default_factory=lambda: {
        "LOW": 0.0,
        "MEDIUM": 0.0,
        "HIGH": 0.0,
        "CRITICAL": 0.0,
    })

    # --- Cancellation ---
    # (hours until scheduled time, share of estimated price), checked in order.
    cancellation_tiers: Tuple[Tuple[float, float], ...] = ((24.0, 0.5), (48.0, 0.25), (72.0, 0.1))
    # Verticals that charge the tiered fee on cancellation.
    fee_on_cancel_verticals: FrozenSet[str] = frozenset({"DAY_BOOKING"})

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup if you want.
        """
        if not 0.0 <= self.default_commission_rate <= 1.0:
            raise ValueError("default_commission_rate must be within [0, 1]")

        if not 0.0 <= self.shared_max_discount <= 100.0:
            raise ValueError("shared_max_discount must be within [0, 100]")

        if self.moving_average_speed_kmh <= 0:
            raise ValueError("moving_average_speed_kmh must be > 0")

        previous = 0.0
        for hours, share in self.cancellation_tiers:
            if hours <= previous:
                raise ValueError("cancellation_tiers must have increasing hour limits")
            if not 0.0 <= share <= 1.0:
                raise ValueError("cancellation tier shares must be within [0, 1]")
            previous = hours

        for name in ("delivery_tax_rate", "moving_tax_rate", "cross_zone_surcharge_rate"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


def default_pricing_policy() -> PricingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = PricingPolicy()
    p.validate()
    return p
