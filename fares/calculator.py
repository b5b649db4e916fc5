"""
Purpose: Fare & commission calculator (pure functions, one per vertical).
What it does:
Turns request attributes (distance, items, inventory, zones, discount tier)
into a FareBreakdown whose platform/provider split uses the service type's
commission rate.

Rule: No I/O, no state. Every function here is safe to call from anywhere.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from .breakdown import FareBreakdown, money
from .policy import PricingPolicy, default_pricing_policy

if TYPE_CHECKING:
    from bookings.models import InventoryItem, OrderItem, ServiceType
    from routing.geofence import TaxiZone


def commission_rate_for(service_type: Optional[ServiceType], policy: Optional[PricingPolicy] = None) -> float:
    policy = policy or default_pricing_policy()
    if service_type is None or service_type.commission_rate is None:
        return policy.default_commission_rate
    return service_type.commission_rate


def _base_price(service_type: ServiceType, policy: PricingPolicy) -> float:
    if service_type.base_price is None:
        return policy.fallback_base_price
    return service_type.base_price


# -------------------------
# Ride / taxi
# -------------------------

def price_ride(service_type: ServiceType, policy: Optional[PricingPolicy] = None) -> FareBreakdown:
    """
    Point-to-point ride: the service type's base price.
    """
    policy = policy or default_pricing_policy()
    base = money(_base_price(service_type, policy))
    fare = FareBreakdown(base=base, subtotal=base, total=base)
    return fare.with_split(commission_rate_for(service_type, policy))


def price_taxi(
    service_type: ServiceType,
    pickup_zone: Optional[TaxiZone] = None,
    dropoff_zone: Optional[TaxiZone] = None,
    is_metered: bool = True,
    policy: Optional[PricingPolicy] = None,
) -> FareBreakdown:
    """
    Metered taxi: base price now, the meter decides the final price.
    Zone taxi: pickup zone base price, plus half the destination zone's base
    price when the trip crosses zones. Unknown zones fall back to the base price.
    """
    policy = policy or default_pricing_policy()
    rate = commission_rate_for(service_type, policy)

    if is_metered or pickup_zone is None or dropoff_zone is None:
        return price_ride(service_type, policy)

    base = money(pickup_zone.base_price)
    surcharges = {}
    if pickup_zone.id != dropoff_zone.id:
        surcharges["cross_zone"] = money(dropoff_zone.base_price * policy.cross_zone_surcharge_rate)

    total = money(base + sum(surcharges.values()))
    fare = FareBreakdown(base=base, surcharges=surcharges, subtotal=total, total=total)
    return fare.with_split(rate)


# -------------------------
# Delivery
# -------------------------

def items_subtotal(items: Iterable[OrderItem]) -> float:
    return money(sum(item.unit_price * item.quantity for item in items))


def delivery_fee(distance_km: float, policy: Optional[PricingPolicy] = None) -> float:
    policy = policy or default_pricing_policy()
    return money(policy.delivery_base_fee + distance_km * policy.delivery_per_km_fee)


def price_delivery(
    items: Iterable[OrderItem],
    distance_km: float,
    service_type: Optional[ServiceType] = None,
    policy: Optional[PricingPolicy] = None,
) -> FareBreakdown:
    """
    goods subtotal + delivery fee (base + per km) + tax on the goods.
    """
    policy = policy or default_pricing_policy()
    goods = items_subtotal(items)
    base = money(policy.delivery_base_fee)
    distance = money(distance_km * policy.delivery_per_km_fee)
    tax = money(goods * policy.delivery_tax_rate)
    subtotal = money(goods + base + distance)

    fare = FareBreakdown(
        base=base,
        distance=distance,
        items=goods,
        subtotal=subtotal,
        tax=tax,
        total=money(subtotal + tax),
    )
    return fare.with_split(commission_rate_for(service_type, policy))


# -------------------------
# House moving
# -------------------------

def estimated_volume(inventory: Iterable[InventoryItem], policy: Optional[PricingPolicy] = None) -> float:
    """
    Cubic meters: per-category unit volume times quantity.
    Unknown categories count as the default volume.
    """
    policy = policy or default_pricing_policy()
    total = 0.0
    for item in inventory:
        unit_volume = policy.volume_by_category.get(item.category.lower(), policy.default_item_volume)
        total += unit_volume * item.quantity
    return round(total, 3)


def price_house_moving(
    inventory: Iterable[InventoryItem],
    distance_km: float,
    helpers_count: int = 0,
    service_type: Optional[ServiceType] = None,
    policy: Optional[PricingPolicy] = None,
) -> FareBreakdown:
    """
    base + distance + volume + helpers + special handling, then tax.
    Special handling is charged per inventory line flagged for it.
    """
    policy = policy or default_pricing_policy()
    inventory = list(inventory)

    volume = estimated_volume(inventory, policy)
    special_items = sum(1 for item in inventory if item.special_handling)

    base = money(policy.moving_base_fee)
    distance = money(distance_km * policy.moving_per_km_fee)
    surcharges = {
        "volume": money(volume * policy.moving_per_cubic_meter_fee),
        "helpers": money(helpers_count * policy.moving_per_helper_fee),
        "special_handling": money(special_items * policy.moving_per_special_item_fee),
    }
    subtotal = money(base + distance + sum(surcharges.values()))
    tax = money(subtotal * policy.moving_tax_rate)

    fare = FareBreakdown(
        base=base,
        distance=distance,
        surcharges=surcharges,
        subtotal=subtotal,
        tax=tax,
        total=money(subtotal + tax),
    )
    return fare.with_split(commission_rate_for(service_type, policy))


def estimate_moving_minutes(volume_m3: float, distance_km: float, policy: Optional[PricingPolicy] = None) -> int:
    """
    Whole hours per phase: loading 1 h per 2 m3 started, travel 1 h per
    average-speed distance started, unloading 1 h per 3 m3 started.
    """
    policy = policy or default_pricing_policy()
    loading = math.ceil(volume_m3 / 2) * 60
    travel = math.ceil(distance_km / policy.moving_average_speed_kmh) * 60
    unloading = math.ceil(volume_m3 / 3) * 60
    return loading + travel + unloading


# -------------------------
# Shared ride
# -------------------------

def shared_discount_percent(capacity_after_join: int, policy: Optional[PricingPolicy] = None) -> float:
    """
    10% per seated passenger (group total, including the newcomer), capped at 40%.
    """
    policy = policy or default_pricing_policy()
    return min(policy.shared_max_discount, policy.shared_discount_per_passenger * capacity_after_join)


def price_shared_ride(
    direct_distance_km: float,
    discount_percent: float,
    service_type: Optional[ServiceType] = None,
    policy: Optional[PricingPolicy] = None,
) -> FareBreakdown:
    """
    (base fare + km * per-km rate) * (1 - discount / 100)
    """
    policy = policy or default_pricing_policy()
    per_km_rate = policy.shared_per_km_rate
    if service_type is not None and service_type.per_km_rate is not None:
        per_km_rate = service_type.per_km_rate

    base = money(policy.shared_base_fare)
    distance = money(direct_distance_km * per_km_rate)
    undiscounted = policy.shared_base_fare + direct_distance_km * per_km_rate
    total = money(undiscounted * (1 - discount_percent / 100))

    fare = FareBreakdown(
        base=base,
        distance=distance,
        surcharges={"shared_discount": money(total - undiscounted)},
        subtotal=money(undiscounted),
        total=total,
    )
    return fare.with_split(commission_rate_for(service_type, policy))


# -------------------------
# Day booking / emergency
# -------------------------

def price_day_booking(
    day_rate: float,
    district_rate: Optional[float] = None,
    service_type: Optional[ServiceType] = None,
    policy: Optional[PricingPolicy] = None,
) -> FareBreakdown:
    """
    The driver's custom price for the district wins over their default day rate.
    """
    price = money(district_rate if district_rate else day_rate)
    fare = FareBreakdown(base=price, subtotal=price, total=price)
    return fare.with_split(commission_rate_for(service_type, policy))


def price_emergency(
    priority,
    service_type: Optional[ServiceType] = None,
    policy: Optional[PricingPolicy] = None,
) -> FareBreakdown:
    policy = policy or default_pricing_policy()
    key = getattr(priority, "value", priority)
    base = money(policy.emergency_base_price)
    surcharge = money(policy.emergency_priority_surcharge.get(key, 0.0))
    surcharges = {"priority": surcharge} if surcharge else {}
    total = money(base + surcharge)
    fare = FareBreakdown(base=base, surcharges=surcharges, subtotal=total, total=total)
    return fare.with_split(commission_rate_for(service_type, policy))


# -------------------------
# Cancellation
# -------------------------

def cancellation_fee(
    estimated_price: float,
    scheduled_time: Optional[datetime],
    cancelled_at: datetime,
    policy: Optional[PricingPolicy] = None,
) -> float:
    """
    Tiered by notice: <24h 50%, <48h 25%, <72h 10%, otherwise free.
    No scheduled time means no notice period, so no fee.
    """
    policy = policy or default_pricing_policy()
    if scheduled_time is None:
        return 0.0

    hours_until_scheduled = (scheduled_time - cancelled_at).total_seconds() / 3600
    for hours, share in policy.cancellation_tiers:
        if hours_until_scheduled < hours:
            return money((estimated_price or 0.0) * share)
    return 0.0
