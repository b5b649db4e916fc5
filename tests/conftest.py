import pytest
from datetime import datetime, timedelta, timezone

from bookings.models import ServiceRequest, ServiceType, ServiceVertical
from dispatch.dispatcher import Dispatcher
from dispatch.events import EventPublisher, InMemoryEventSink
from drivers.models import Driver

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service_types():
    return {
        "ride": ServiceType(id="ride", name="Ride", vertical=ServiceVertical.RIDE, base_price=12.0),
        "taxi": ServiceType(id="taxi", name="Taxi", vertical=ServiceVertical.TAXI, base_price=8.0),
        "shared": ServiceType(id="shared", name="Shared ride", vertical=ServiceVertical.SHARED_RIDE, per_km_rate=1.0),
        "delivery": ServiceType(id="delivery", name="Delivery", vertical=ServiceVertical.DELIVERY, commission_rate=0.15),
        "moving": ServiceType(id="moving", name="House moving", vertical=ServiceVertical.HOUSE_MOVING),
        "emergency": ServiceType(id="emergency", name="Emergency", vertical=ServiceVertical.EMERGENCY, base_price=0.0),
        "day": ServiceType(id="day", name="Day booking", vertical=ServiceVertical.DAY_BOOKING),
    }


@pytest.fixture
def sink():
    return InMemoryEventSink()


@pytest.fixture
def dispatcher(service_types, clock, sink):
    return Dispatcher(service_types=service_types.values(), events=EventPublisher(sink), clock=clock)


@pytest.fixture
def make_driver():
    def _make(driver_id, lat=0.0, lon=0.0, *service_type_ids, availability="ONLINE", approval="APPROVED"):
        return Driver.new(
            driver_id,
            lat,
            lon,
            availability=availability,
            approval=approval,
            service_type_ids=service_type_ids,
        )
    return _make


@pytest.fixture
def make_request(service_types, clock):
    """
    A request built by hand, for driving the lifecycle directly.
    """
    def _make(service_type_id, status, requester_id="rider-1", **fields):
        return ServiceRequest(
            id=ServiceRequest.new_id(),
            requester_id=requester_id,
            service_type=service_types[service_type_id],
            status=status,
            created_at=clock(),
            **fields,
        )
    return _make
