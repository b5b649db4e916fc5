import pandas as pd

from scripts.generate_mock_data import generate_mock_requests
from scripts.generate_mock_drivers import generate_mock_drivers
from scripts.run_dispatch_simulation import load_drivers, load_requests, run_simulation

COLUMNS = [
    "request_id", "service_type_id", "status", "driver_id",
    "group_id", "passengers", "estimated_price", "platform_fee", "queue_wait_s",
]


def write_csv(path, rows):
    pd.DataFrame(rows).to_csv(path, index=False)
    return str(path)


def test_simulation_assigns_and_queues(tmp_path):
    drivers = write_csv(tmp_path / "drivers.csv", [
        {"driver_id": "D1", "lat": 0.0, "lon": 0.0, "availability": "ONLINE",
         "approval": "APPROVED", "service_type_ids": "ride"},
        {"driver_id": "D2", "lat": 0.0, "lon": 0.0, "availability": "OFFLINE",
         "approval": "APPROVED", "service_type_ids": "ride;shared"},
    ])
    requests = write_csv(tmp_path / "requests.csv", [
        {"created_at": "2026-10-19T07:00:00+00:00", "requester_id": "u1", "service_type_id": "ride",
         "pickup_lat": 0.01, "pickup_lon": 0.01, "dropoff_lat": 0.05, "dropoff_lon": 0.05, "passenger_count": 1},
        {"created_at": "2026-10-19T07:01:00+00:00", "requester_id": "u2", "service_type_id": "ride",
         "pickup_lat": 0.02, "pickup_lon": 0.02, "dropoff_lat": 0.05, "dropoff_lon": 0.05, "passenger_count": 1},
        {"created_at": "2026-10-19T07:02:00+00:00", "requester_id": "u3", "service_type_id": "shared",
         "pickup_lat": 0.01, "pickup_lon": 0.01, "dropoff_lat": 0.05, "dropoff_lon": 0.05, "passenger_count": 2},
    ])
    output = tmp_path / "results.csv"

    summary = run_simulation(drivers, requests, output_path=str(output))

    assert list(summary.columns) == COLUMNS
    assert summary["status"].tolist() == ["DRIVER_ACCEPTED", "SEARCHING_DRIVER", "SEARCHING_DRIVER"]
    assert summary["driver_id"].iloc[0] == "D1"
    assert summary["group_id"].notna().tolist() == [False, False, True]
    assert summary["estimated_price"].iloc[0] == 10.0
    # only the requests still waiting for a driver carry a queue wait
    assert summary["queue_wait_s"].notna().tolist() == [False, True, True]
    assert (summary["queue_wait_s"].dropna() >= 0).all()
    assert output.exists()
    assert len(pd.read_csv(output)) == 3


def test_simulation_on_the_sample_data():
    summary = run_simulation(limit=5)

    assert len(summary) == 5
    assigned = summary.dropna(subset=["driver_id"])
    trips = assigned["group_id"].fillna(assigned["request_id"])
    # one active trip per driver; a pooled group is a single trip
    assert trips.groupby(assigned["driver_id"]).nunique().le(1).all()


def test_generated_data_loads(tmp_path):
    requests_file = tmp_path / "mock_requests.csv"
    drivers_file = tmp_path / "mock_drivers.csv"

    generate_mock_requests(num_requests=25, num_hotspots=3, output_file=str(requests_file))
    generate_mock_drivers(filename=str(drivers_file), count=10)

    drafts = load_requests(str(requests_file), limit=10)
    drivers = load_drivers(str(drivers_file))

    assert len(drafts) == 10
    assert {d.service_type_id for d in drafts} <= {"ride", "taxi", "shared"}
    assert all(1 <= d.passenger_count <= 3 for d in drafts)
    assert len(drivers) == 10
    assert all("ride" in d.service_type_ids for d in drivers)
