import pytest
from datetime import timedelta

from bookings.models import EmergencyPriority, InventoryItem, OrderItem
from dispatch.exceptions import ValidationError
from fares.calculator import (
    cancellation_fee,
    delivery_fee,
    estimate_moving_minutes,
    estimated_volume,
    price_day_booking,
    price_delivery,
    price_emergency,
    price_house_moving,
    price_ride,
    price_shared_ride,
    price_taxi,
    shared_discount_percent,
)
from fares.commission import CommissionLedger, split_commission
from fares.policy import PricingPolicy
from routing.geofence import TaxiZone

from conftest import NOW


def test_estimated_volume_furniture_and_boxes():
    inventory = [
        InventoryItem("sofa", "furniture", quantity=2),
        InventoryItem("boxes", "box", quantity=3),
    ]

    assert estimated_volume(inventory) == 1.3


def test_estimated_volume_unknown_category_uses_default():
    assert estimated_volume([InventoryItem("plant", "plants", quantity=2)]) == 0.4
    assert estimated_volume([InventoryItem("fridge", "Appliance", quantity=1)]) == 0.3


def test_house_moving_price():
    inventory = [
        InventoryItem("sofa", "furniture", quantity=2, special_handling=True),
        InventoryItem("boxes", "box", quantity=3),
    ]

    fare = price_house_moving(inventory, distance_km=10, helpers_count=2)

    assert fare.base == 50.0
    assert fare.distance == 20.0
    assert fare.surcharges == {"volume": 13.0, "helpers": 50.0, "special_handling": 15.0}
    assert fare.subtotal == 148.0
    assert fare.tax == 7.4
    assert fare.total == 155.4
    assert fare.platform_fee == 27.97
    assert fare.provider_earnings == 127.43


def test_moving_duration_estimate():
    # 1 h loading, 1 h driving, 1 h unloading
    assert estimate_moving_minutes(1.3, 10) == 180
    assert estimate_moving_minutes(4.5, 90) == 3 * 60 + 3 * 60 + 2 * 60


def test_delivery_price_taxes_goods_only():
    items = [OrderItem("p1", 10.0, 2), OrderItem("p2", 5.0, 2)]

    fare = price_delivery(items, distance_km=4)

    assert fare.items == 30.0
    assert fare.base == 2.0
    assert fare.distance == 2.0
    assert fare.tax == 1.5
    assert fare.subtotal == 34.0
    assert fare.total == 35.5
    assert delivery_fee(4) == 4.0


def test_ride_price_and_fallback(service_types):
    fare = price_ride(service_types["ride"])

    assert fare.total == 12.0
    assert fare.platform_fee == 2.16
    assert fare.provider_earnings == 9.84

    assert price_ride(service_types["moving"]).total == 10.0  # no base price configured


@pytest.fixture
def zones():
    return {
        "A": TaxiZone("A", "Centre", base_price=10.0),
        "B": TaxiZone("B", "Suburbs", base_price=6.0),
    }


def test_zone_taxi_crossing_zones(service_types, zones):
    fare = price_taxi(service_types["taxi"], zones["A"], zones["B"], is_metered=False)

    assert fare.base == 10.0
    assert fare.surcharges == {"cross_zone": 3.0}
    assert fare.total == 13.0


def test_zone_taxi_within_one_zone(service_types, zones):
    assert price_taxi(service_types["taxi"], zones["A"], zones["A"], is_metered=False).total == 10.0


def test_metered_or_unzoned_taxi_uses_base_price(service_types, zones):
    taxi = service_types["taxi"]

    assert price_taxi(taxi, zones["A"], zones["B"], is_metered=True).total == 8.0
    assert price_taxi(taxi, zones["A"], None, is_metered=False).total == 8.0


def test_shared_discount_tiers():
    assert shared_discount_percent(1) == 10
    assert shared_discount_percent(3) == 30
    assert shared_discount_percent(4) == 40
    assert shared_discount_percent(6) == 40


def test_shared_ride_price():
    fare = price_shared_ride(10.0, 20.0)

    assert fare.subtotal == 15.0
    assert fare.total == 12.0
    assert fare.surcharges == {"shared_discount": -3.0}
    assert price_shared_ride(10.0, 0.0).total == 15.0


def test_day_booking_prefers_district_price():
    assert price_day_booking(80.0, 95.0).total == 95.0
    assert price_day_booking(80.0, None).total == 80.0


def test_emergency_priority_surcharge():
    assert price_emergency(EmergencyPriority.CRITICAL).total == 0.0

    policy = PricingPolicy(emergency_priority_surcharge={"CRITICAL": 40.0})
    fare = price_emergency(EmergencyPriority.CRITICAL, policy=policy)

    assert fare.total == 40.0
    assert fare.surcharges == {"priority": 40.0}
    assert price_emergency(EmergencyPriority.LOW, policy=policy).total == 0.0


@pytest.mark.parametrize("hours_before, fee", [
    (10, 50.0),
    (24, 25.0),
    (30, 25.0),
    (60, 10.0),
    (72, 0.0),
    (100, 0.0),
])
def test_cancellation_fee_tiers(hours_before, fee):
    assert cancellation_fee(100.0, NOW + timedelta(hours=hours_before), NOW) == fee


def test_no_scheduled_time_no_fee():
    assert cancellation_fee(100.0, None, NOW) == 0.0


def test_pricing_policy_validation():
    PricingPolicy().validate()
    with pytest.raises(ValueError):
        PricingPolicy(cancellation_tiers=((48.0, 0.5), (24.0, 0.25))).validate()
    with pytest.raises(ValueError):
        PricingPolicy(default_commission_rate=1.5).validate()


def test_commission_split():
    commission = split_commission("req-1", 100.0, 0.18, secondary_fee=5.0)

    assert commission.platform_fee == 18.0
    assert commission.provider_earnings == 77.0
    assert commission.secondary_fee == 5.0

    with pytest.raises(ValidationError):
        split_commission("req-1", -1.0, 0.18)


def test_ledger_records_once_per_request():
    ledger = CommissionLedger()
    ledger.record("req-1", 50.0, 0.18)

    with pytest.raises(ValidationError):
        ledger.record("req-1", 50.0, 0.18)

    assert ledger.get("req-1").platform_fee == 9.0
    assert ledger.platform_total() == 9.0
