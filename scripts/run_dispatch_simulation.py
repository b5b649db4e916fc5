import logging
import os
from datetime import datetime
from typing import List, Optional

import pandas as pd

from bookings.models import RequestDraft, ServiceType, ServiceVertical
from bookings.store import RequestStore
from dispatch.dispatcher import Dispatcher, DispatchOutcome
from dispatch.events import EventPublisher, InMemoryEventSink
from drivers.models import Driver
from routing.coordinates import Coordinate

SERVICE_TYPES = [
    ServiceType(id="ride", name="Ride", vertical=ServiceVertical.RIDE, base_price=10.0),
    ServiceType(id="taxi", name="Metered taxi", vertical=ServiceVertical.TAXI, base_price=8.0),
    ServiceType(id="shared", name="Shared ride", vertical=ServiceVertical.SHARED_RIDE, per_km_rate=1.0),
]

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _resolve(filepath: str) -> str:
    # Resolve the correct path depending on where the user runs the script from.
    if os.path.isabs(filepath):
        return filepath
    return os.path.join(BASE_DIR, filepath)


def load_drivers(filepath="sampledata/drivers.csv") -> List[Driver]:
    df = pd.read_csv(_resolve(filepath), dtype={"driver_id": str})
    df["service_type_ids"] = df["service_type_ids"].fillna("")

    drivers = []
    for row in df.itertuples(index=False):
        drivers.append(
            Driver.new(
                row.driver_id,
                float(row.lat),
                float(row.lon),
                availability=row.availability,
                approval=row.approval,
                service_type_ids=[s for s in row.service_type_ids.split(";") if s],
            )
        )
    return drivers


def load_requests(filepath="sampledata/requests.csv", limit: Optional[int] = None) -> List[RequestDraft]:
    df = pd.read_csv(_resolve(filepath), dtype={"requester_id": str, "service_type_id": str})
    if "created_at" in df.columns:
        # oldest first, like the live queue
        df = df.sort_values("created_at", kind="stable")
    if limit is not None:
        df = df.head(limit)

    drafts = []
    for row in df.itertuples(index=False):
        drafts.append(
            RequestDraft(
                requester_id=row.requester_id,
                service_type_id=row.service_type_id,
                pickup=Coordinate.at(row.pickup_lat, row.pickup_lon, getattr(row, "pickup_address", "")),
                dropoff=Coordinate.at(row.dropoff_lat, row.dropoff_lon),
                passenger_count=int(getattr(row, "passenger_count", 1)),
            )
        )
    return drafts


COLUMNS = [
    "request_id", "service_type_id", "status", "driver_id",
    "group_id", "passengers", "estimated_price", "platform_fee", "queue_wait_s",
]


def summarize(outcomes: List[DispatchOutcome], store: Optional[RequestStore] = None,
              now: Optional[datetime] = None) -> pd.DataFrame:
    rows = []
    for outcome in outcomes:
        request = outcome.request
        # still waiting for a driver: how long so far
        wait = store.queue_wait_seconds(request.id, now) if store is not None else None
        rows.append({
            "request_id": request.id,
            "service_type_id": request.service_type.id,
            "status": request.status.value,
            "driver_id": request.driver_id,
            "group_id": request.shared_group_id,
            "passengers": request.passenger_count,
            "estimated_price": request.estimated_price,
            "platform_fee": request.fare.platform_fee if request.fare else 0.0,
            "queue_wait_s": wait,
        })
    return pd.DataFrame(rows, columns=COLUMNS)


def run_simulation(drivers_path="sampledata/drivers.csv", requests_path="sampledata/requests.csv",
                   limit=100, output_path: Optional[str] = None) -> pd.DataFrame:
    print("=== STARTING END-TO-END DISPATCH SIMULATION ===")

    # 1. Load Data
    drivers = load_drivers(drivers_path)
    drafts = load_requests(requests_path, limit=limit)
    print(f"Loaded {len(drafts)} Requests and {len(drivers)} Drivers.\n")

    # 2. Configure System
    sink = InMemoryEventSink()
    dispatcher = Dispatcher(service_types=SERVICE_TYPES, events=EventPublisher(sink))
    for driver in drivers:
        dispatcher.registry.register(driver)

    # 3. Submit everything, then give the unassigned queue one more cycle
    outcomes = [dispatcher.submit(draft) for draft in drafts]
    retried = dispatcher.retry_unassigned()
    print(f"Retry cycle assigned {len(retried)} queued request(s).")

    latest = [DispatchOutcome(dispatcher.requests.get(o.request.id)) for o in outcomes]
    summary = summarize(latest, dispatcher.requests, dispatcher.clock())

    print("\n=== SIMULATION COMPLETE ===")
    print(summary.groupby(["service_type_id", "status"]).size().to_string())
    print(f"Still queued: {summary['queue_wait_s'].notna().sum()}")
    print(f"Shared ride groups: {summary['group_id'].dropna().nunique()}")
    print(f"Events emitted: {len(sink.events)}")

    if output_path:
        summary.to_csv(_resolve(output_path), index=False)
        print(f"Results written to '{output_path}'.")
    return summary


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_simulation(output_path="dispatch_results.csv")
