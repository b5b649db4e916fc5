import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from bookings.models import RequestDraft, RequestStatus, SharedRideGroup
from bookings.pooling import SharedRideGrouper
from bookings.store import GroupStore
from dispatch.events import GROUP_UPDATE, EventPublisher
from dispatch.exceptions import CapacityExceeded, InvalidStateTransition, ValidationError
from dispatch.state_machines import Actor
from drivers.models import AvailabilityStatus
from fares.calculator import price_shared_ride
from routing.coordinates import Coordinate
from routing.distance import haversine_km, haversine_meters

from conftest import NOW

PICKUP = Coordinate.at(0.0, 0.0)
DROPOFF = Coordinate.at(0.0, 0.1)


@pytest.fixture
def store():
    return GroupStore()


@pytest.fixture
def grouper(store, clock, sink):
    return SharedRideGrouper(store, events=EventPublisher(sink), clock=clock)


def add_group(store, origin=(0.0, 0.001), destination=(0.0, 0.101), current=1, max_capacity=4,
              status=RequestStatus.SEARCHING_DRIVER, created_at=NOW):
    o, d = Coordinate.at(*origin), Coordinate.at(*destination)
    group = SharedRideGroup.new(o, d, haversine_meters(o, d), max_capacity, current, created_at=created_at)
    group.status = status
    return store.save(group)


def test_full_group_is_not_joined(grouper, store):
    """
    A group at 3 of 4 seats can't take a party of 2: a new group is opened.
    """
    full = add_group(store, current=3)

    group, is_new = grouper.join_or_create(PICKUP, DROPOFF, 2, 15, 20.0)

    assert is_new
    assert group.id != full.id
    assert group.current_capacity == 2
    assert store.get(full.id).current_capacity == 3


def test_party_that_fits_exactly_joins(grouper, store):
    existing = add_group(store, current=2)

    group, is_new = grouper.join_or_create(PICKUP, DROPOFF, 2, 15, 20.0, member_id="req-9")

    assert not is_new
    assert group.id == existing.id
    assert group.current_capacity == 4
    assert group.member_request_ids == ["req-9"]


def test_new_group_records_its_opener(grouper):
    group, is_new = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0, member_id="req-1")

    assert is_new
    assert group.member_request_ids == ["req-1"]
    assert group.max_capacity == 4
    assert group.status == RequestStatus.SEARCHING_DRIVER


def test_smallest_detour_wins(grouper, store):
    add_group(store, origin=(0.0, 0.02), destination=(0.0, 0.12))
    close = add_group(store, origin=(0.0, 0.001), destination=(0.0, 0.101))

    group, _ = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0)

    assert group.id == close.id


def test_equal_detours_keep_store_order(grouper, store):
    first = add_group(store)
    add_group(store)

    group, _ = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0)

    assert group.id == first.id


def test_detour_beyond_the_cap_opens_a_new_group(grouper, store):
    far = add_group(store, origin=(0.2, 0.2), destination=(0.3, 0.3))

    group, is_new = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0)

    assert is_new
    assert store.get(far.id).current_capacity == 1


def test_groups_outside_the_window_are_skipped(grouper, store):
    add_group(store, created_at=NOW - timedelta(minutes=31))
    fresh = add_group(store, created_at=NOW - timedelta(minutes=29))

    group, is_new = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0)

    assert not is_new
    assert group.id == fresh.id


def test_scheduled_requests_look_around_their_own_time(grouper, store):
    add_group(store, created_at=NOW)
    later = add_group(store, created_at=NOW + timedelta(hours=2))

    group, _ = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0, scheduled_time=NOW + timedelta(hours=2, minutes=10))

    assert group.id == later.id


def test_groups_with_a_driver_on_the_way_are_closed(grouper, store):
    add_group(store, status=RequestStatus.DRIVER_ACCEPTED)
    add_group(store, status=RequestStatus.IN_PROGRESS)

    _, is_new = grouper.join_or_create(PICKUP, DROPOFF, 1, 15, 20.0)

    assert is_new


@pytest.mark.parametrize("passengers, wait, detour", [
    (0, 15, 20.0),
    (5, 15, 20.0),
    (1, 4, 20.0),
    (1, 31, 20.0),
    (1, 15, -1.0),
    (1, 15, 51.0),
])
def test_out_of_range_input_is_rejected(grouper, store, passengers, wait, detour):
    with pytest.raises(ValidationError):
        grouper.join_or_create(PICKUP, DROPOFF, passengers, wait, detour)
    assert store.all() == []


def test_join_rechecks_capacity(grouper, store):
    group = add_group(store, current=3)

    with pytest.raises(CapacityExceeded):
        grouper.join(group.id, 2)
    assert store.get(group.id).current_capacity == 3


def test_join_rejects_a_closed_group(grouper, store):
    group = add_group(store, status=RequestStatus.COMPLETED)

    with pytest.raises(InvalidStateTransition):
        grouper.join(group.id, 1)


def test_concurrent_joins_never_overrun_capacity(grouper, store):
    group = add_group(store, current=0)

    def take_seat(n):
        try:
            grouper.join(group.id, 1, member_id=f"req-{n}")
            return True
        except CapacityExceeded:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(take_seat, range(20)))

    assert results.count(True) == 4
    assert store.get(group.id).current_capacity == 4
    assert len(store.get(group.id).member_request_ids) == 4


def test_estimate_lists_matches_without_joining(grouper, store, sink):
    group = add_group(store, current=1)

    estimate = grouper.estimate(PICKUP, DROPOFF, passenger_count=1, max_wait_minutes=10)

    direct_km = haversine_km(PICKUP, DROPOFF)
    assert estimate.direct_distance_km == round(direct_km, 3)
    assert estimate.direct_price == price_shared_ride(direct_km, 0.0).total
    assert estimate.shared_price == price_shared_ride(direct_km, 20.0).total
    assert estimate.pickup_window_minutes == 10

    [match] = estimate.potential_matches
    assert match.group_id == group.id
    assert match.current_passengers == 1
    assert match.estimated_discount == 20.0
    assert match.latest_pickup_at == NOW + timedelta(minutes=10)

    assert store.get(group.id).current_capacity == 1
    assert len(store.all()) == 1
    assert sink.events == []


def test_estimate_without_matches_prices_a_new_group(grouper):
    estimate = grouper.estimate(PICKUP, DROPOFF, passenger_count=2)

    direct_km = haversine_km(PICKUP, DROPOFF)
    assert estimate.potential_matches == []
    assert estimate.shared_price == price_shared_ride(direct_km, 20.0).total
    assert estimate.shared_price < estimate.direct_price


def test_leave_needs_the_lifecycle(grouper):
    with pytest.raises(RuntimeError):
        grouper.leave("req-1", Actor.requester("rider-1"))


# --- Leaving through the dispatcher ---


def shared_draft(requester_id, passengers=1):
    return RequestDraft(
        requester_id=requester_id,
        service_type_id="shared",
        pickup=PICKUP,
        dropoff=DROPOFF,
        passenger_count=passengers,
    )


def test_joiner_rides_under_the_group(dispatcher):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2", passengers=2))

    assert opener.is_new_group
    assert not joiner.is_new_group
    assert joiner.group.id == opener.group.id
    assert joiner.request.status == RequestStatus.REQUESTED
    assert joiner.request.driver_id is None
    assert joiner.request.estimated_price < opener.request.estimated_price

    group = dispatcher.groups.get(opener.group.id)
    assert group.current_capacity == 3
    assert group.member_request_ids == [opener.request.id, joiner.request.id]


def test_joiner_leaving_gives_seats_back(dispatcher, sink):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2", passengers=2))

    cancelled = dispatcher.update_status(joiner.request.id, RequestStatus.CANCELLED, Actor.requester("rider-2"))

    assert cancelled.status == RequestStatus.CANCELLED
    group = dispatcher.groups.get(opener.group.id)
    assert group.current_capacity == 1
    assert group.member_request_ids == [opener.request.id]
    assert sink.of(GROUP_UPDATE)[-1] == {
        "groupId": group.id,
        "currentCapacity": 1,
        "memberRequestIds": [opener.request.id],
    }


def test_last_member_leaving_deletes_the_group(dispatcher):
    opener = dispatcher.submit(shared_draft("rider-1"))

    dispatcher.update_status(opener.request.id, RequestStatus.CANCELLED, Actor.requester("rider-1"))

    assert dispatcher.groups.find(opener.group.id) is None
    assert dispatcher.requests.unassigned() == []


def test_cannot_leave_an_active_ride(dispatcher, make_driver):
    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))
    outcome = dispatcher.submit(shared_draft("rider-1"))
    driver = Actor.driver("X")
    dispatcher.update_status(outcome.request.id, RequestStatus.DRIVER_ARRIVED, driver)
    dispatcher.update_status(outcome.request.id, RequestStatus.IN_PROGRESS, driver)

    with pytest.raises(InvalidStateTransition):
        dispatcher.update_status(outcome.request.id, RequestStatus.CANCELLED, Actor.requester("rider-1"))

    group = dispatcher.groups.get(outcome.group.id)
    assert group.current_capacity == 1
    assert group.status == RequestStatus.IN_PROGRESS


def test_group_follows_its_driver(dispatcher, make_driver):
    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))

    outcome = dispatcher.submit(shared_draft("rider-1"))

    assert outcome.assigned
    group = dispatcher.groups.get(outcome.group.id)
    assert group.driver_id == "X"
    assert group.status == RequestStatus.DRIVER_ACCEPTED


def test_carrier_leaving_hands_the_driver_to_the_next_member(dispatcher, make_driver):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2"))
    assert not opener.assigned

    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))
    [retried] = dispatcher.retry_unassigned()
    assert retried.request.id == opener.request.id
    assert dispatcher.groups.get(opener.group.id).driver_id == "X"

    dispatcher.update_status(opener.request.id, RequestStatus.CANCELLED, Actor.requester("rider-1"))

    group = dispatcher.groups.get(opener.group.id)
    assert group.member_request_ids == [joiner.request.id]
    assert group.current_capacity == 1
    assert group.driver_id == "X"
    assert group.status == RequestStatus.DRIVER_ACCEPTED
    assert dispatcher.requests.get(joiner.request.id).status == RequestStatus.DRIVER_ACCEPTED
    assert dispatcher.requests.get(joiner.request.id).driver_id == "X"
    assert dispatcher.registry.get("X").availability == AvailabilityStatus.ON_TRIP
    assert dispatcher.registry.active_assignment("X") == joiner.request.id


def test_joiner_follows_the_group_through_its_statuses(dispatcher, make_driver, sink):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2"))
    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))
    dispatcher.retry_unassigned()

    accepted = dispatcher.requests.get(joiner.request.id)
    assert accepted.status == RequestStatus.DRIVER_ACCEPTED
    assert accepted.driver_id == "X"
    assert dispatcher.registry.active_assignment("X") == opener.request.id

    driver = Actor.driver("X")
    dispatcher.update_status(opener.request.id, RequestStatus.DRIVER_ARRIVED, driver)
    dispatcher.update_status(opener.request.id, RequestStatus.IN_PROGRESS, driver)

    started = dispatcher.requests.get(joiner.request.id)
    assert started.status == RequestStatus.IN_PROGRESS
    assert started.started_at == NOW
    assert [e["serviceId"] for e in sink.of("service:in_progress")] == [opener.request.id, joiner.request.id]


def test_completing_the_group_completes_every_member(dispatcher, make_driver):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2", passengers=2))
    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))
    dispatcher.retry_unassigned()

    driver = Actor.driver("X")
    for status in (RequestStatus.DRIVER_ARRIVED, RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED):
        dispatcher.update_status(opener.request.id, status, driver)

    for submitted in (opener, joiner):
        done = dispatcher.requests.get(submitted.request.id)
        assert done.status == RequestStatus.COMPLETED
        assert done.completed_at == NOW
        assert done.final_price == submitted.request.estimated_price
        assert dispatcher.ledger.get(done.id).amount == submitted.request.estimated_price

    assert len(dispatcher.ledger.all()) == 2
    assert dispatcher.groups.get(opener.group.id).status == RequestStatus.COMPLETED
    assert dispatcher.registry.get("X").availability == AvailabilityStatus.ONLINE
    assert dispatcher.registry.active_assignment("X") is None

    # terminal: nobody can leave a finished ride
    with pytest.raises(InvalidStateTransition):
        dispatcher.update_status(joiner.request.id, RequestStatus.CANCELLED, Actor.requester("rider-2"))


def test_group_with_a_driver_rejects_a_second_one(dispatcher, make_driver, monkeypatch):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2"))
    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))
    dispatcher.registry.register(make_driver("Y", 0.0, 0.0, "shared"))
    # the joiner has not caught up with the group yet
    monkeypatch.setattr(dispatcher.lifecycle, "_ride_along", lambda *args: None)
    dispatcher.lifecycle.apply_transition(opener.request.id, RequestStatus.DRIVER_ACCEPTED, Actor.driver("X"))

    with pytest.raises(InvalidStateTransition):
        dispatcher.lifecycle.apply_transition(joiner.request.id, RequestStatus.DRIVER_ACCEPTED, Actor.driver("Y"))

    assert dispatcher.requests.get(joiner.request.id).driver_id is None
    assert dispatcher.registry.get("Y").availability == AvailabilityStatus.ONLINE
    assert dispatcher.groups.get(opener.group.id).driver_id == "X"


def test_queued_opener_leaving_queues_the_next_member(dispatcher, make_driver):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2"))
    assert [r.id for r in dispatcher.requests.unassigned()] == [opener.request.id]

    dispatcher.update_status(opener.request.id, RequestStatus.CANCELLED, Actor.requester("rider-1"))

    waiting = dispatcher.requests.get(joiner.request.id)
    assert waiting.status == RequestStatus.SEARCHING_DRIVER
    assert [r.id for r in dispatcher.requests.unassigned()] == [joiner.request.id]

    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))
    [retried] = dispatcher.retry_unassigned()

    assert retried.request.id == joiner.request.id
    assert retried.request.driver_id == "X"
    group = dispatcher.groups.get(opener.group.id)
    assert group.driver_id == "X"
    assert group.status == RequestStatus.DRIVER_ACCEPTED


def test_opener_leaving_with_a_driver_free_dispatches_the_next_member(dispatcher, make_driver):
    opener = dispatcher.submit(shared_draft("rider-1"))
    joiner = dispatcher.submit(shared_draft("rider-2"))
    dispatcher.registry.register(make_driver("X", 0.0, 0.0, "shared"))

    dispatcher.update_status(opener.request.id, RequestStatus.CANCELLED, Actor.requester("rider-1"))

    assigned = dispatcher.requests.get(joiner.request.id)
    assert assigned.status == RequestStatus.DRIVER_ACCEPTED
    assert assigned.driver_id == "X"
    assert dispatcher.requests.unassigned() == []
    assert dispatcher.groups.get(opener.group.id).driver_id == "X"
