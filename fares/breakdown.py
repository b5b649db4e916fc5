"""
Purpose: Price breakdown value objects.
What it does:
- FareBreakdown: what a request costs and how the money splits
- Commission: the platform/provider split recorded for a completed
  (or cancelled-with-fee) request

Derived values only; they are stored alongside the request they price.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict


def money(value: float) -> float:
    """Round to cents."""
    return round(float(value), 2)


@dataclass(frozen=True)
class FareBreakdown:
    base: float = 0.0
    distance: float = 0.0
    time: float = 0.0
    surcharges: Dict[str, float] = field(default_factory=dict)
    items: float = 0.0  # goods subtotal (deliveries)
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    platform_fee: float = 0.0
    provider_earnings: float = 0.0

    def with_split(self, commission_rate: float) -> FareBreakdown:
        platform_fee = money(self.total * commission_rate)
        return replace(
            self,
            platform_fee=platform_fee,
            provider_earnings=money(self.total - platform_fee),
        )


@dataclass(frozen=True)
class Commission:
    request_id: str
    amount: float
    platform_fee: float
    provider_earnings: float
    secondary_fee: float = 0.0
