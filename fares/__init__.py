"""
Fares package.

Public API:
- FareBreakdown, Commission, money
- PricingPolicy, default_pricing_policy
- per-vertical calculators (fares.calculator)
- CommissionLedger, split_commission
"""
from .breakdown import FareBreakdown, Commission, money
from .policy import PricingPolicy, default_pricing_policy
from .calculator import (
    price_ride,
    price_taxi,
    price_delivery,
    price_house_moving,
    price_shared_ride,
    price_day_booking,
    price_emergency,
    estimated_volume,
    estimate_moving_minutes,
    shared_discount_percent,
    cancellation_fee,
)
from .commission import CommissionLedger, split_commission

__all__ = [
    "FareBreakdown",
    "Commission",
    "money",
    "PricingPolicy",
    "default_pricing_policy",
    "price_ride",
    "price_taxi",
    "price_delivery",
    "price_house_moving",
    "price_shared_ride",
    "price_day_booking",
    "price_emergency",
    "estimated_volume",
    "estimate_moving_minutes",
    "shared_discount_percent",
    "cancellation_fee",
    "CommissionLedger",
    "split_commission",
]
