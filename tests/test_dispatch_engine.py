import pytest

from dispatch.candidate_filter import build_base_candidates, is_dispatchable
from dispatch.policy import DispatchPolicy
from dispatch.scoring import find_best_driver, rank_candidates
from drivers.models import Driver
from routing.coordinates import Coordinate


@pytest.fixture
def pickup():
    return Coordinate.at(0.1, 0.1)


def test_nearest_driver_wins(make_driver, pickup):
    """
    Driver X at (0,0) and Y at (1,1), both eligible: a pickup at (0.1, 0.1) goes to X.
    """
    drivers = [
        make_driver("Y", 1.0, 1.0, "ride"),
        make_driver("X", 0.0, 0.0, "ride"),
    ]

    best = find_best_driver(pickup, "ride", drivers)

    assert best is not None
    assert best.id == "X"


def test_tie_goes_to_first_encountered(make_driver, pickup):
    drivers = [
        make_driver("first", 0.0, 0.0, "ride"),
        make_driver("second", 0.0, 0.0, "ride"),
    ]

    assert find_best_driver(pickup, "ride", drivers).id == "first"
    assert [c.driver.id for c in rank_candidates(pickup, "ride", drivers)] == ["first", "second"]


def test_ineligible_drivers_are_never_returned(make_driver, pickup):
    drivers = [
        make_driver("offline", 0.1, 0.1, "ride", availability="OFFLINE"),
        make_driver("on_break", 0.1, 0.1, "ride", availability="BREAK"),
        make_driver("on_trip", 0.1, 0.1, "ride", availability="ON_TRIP"),
        make_driver("pending", 0.1, 0.1, "ride", approval="PENDING"),
        make_driver("suspended", 0.1, 0.1, "ride", approval="SUSPENDED"),
        make_driver("taxi_only", 0.1, 0.1, "taxi"),
        Driver.new("no_location", availability="ONLINE", approval="APPROVED", service_type_ids=["ride"]),
    ]

    assert build_base_candidates(drivers, "ride") == []
    assert find_best_driver(pickup, "ride", drivers) is None


def test_not_found_is_none_not_an_error(pickup):
    assert find_best_driver(pickup, "ride", []) is None
    assert rank_candidates(pickup, "ride", []) == []


def test_far_driver_still_found_when_alone(make_driver, pickup):
    drivers = [
        make_driver("far", 10.0, 10.0, "ride"),
        make_driver("near_but_offline", 0.1, 0.1, "ride", availability="OFFLINE"),
    ]

    assert find_best_driver(pickup, "ride", drivers).id == "far"


def test_rank_candidates_closest_first(make_driver, pickup):
    drivers = [
        make_driver("c", 0.5, 0.5, "ride"),
        make_driver("a", 0.1, 0.11, "ride"),
        make_driver("b", 0.2, 0.2, "ride"),
    ]

    ranked = rank_candidates(pickup, "ride", drivers)

    assert [c.driver.id for c in ranked] == ["a", "b", "c"]
    distances = [c.pickup_distance_m for c in ranked]
    assert distances == sorted(distances)
    # the engine query agrees with the head of the ranking
    assert find_best_driver(pickup, "ride", drivers).id == ranked[0].driver.id


def test_max_pickup_distance_filters_out_far_drivers(make_driver, pickup):
    drivers = [make_driver("far", 1.0, 1.0, "ride")]

    assert find_best_driver(pickup, "ride", drivers, max_pickup_distance_m=5000) is None
    assert find_best_driver(pickup, "ride", drivers, max_pickup_distance_m=500000).id == "far"


def test_is_dispatchable_gates(make_driver):
    assert is_dispatchable(make_driver("ok", 0, 0, "ride"), "ride")
    assert not is_dispatchable(make_driver("wrong_type", 0, 0, "taxi"), "ride")


def test_dispatch_policy_validation():
    DispatchPolicy().validate()
    with pytest.raises(ValueError):
        DispatchPolicy(max_assignment_attempts=0).validate()
    with pytest.raises(ValueError):
        DispatchPolicy(max_pickup_distance_m=0).validate()
