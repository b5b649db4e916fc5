import pandas as pd
import numpy as np
from datetime import datetime, timezone, timedelta

SERVICE_TYPES = ["ride", "taxi", "shared"]


def generate_mock_requests(num_requests=500, num_hotspots=20, output_file="mock_requests.csv"):
    """
    Generates a realistic dataset of ride requests designed to exercise dispatch and pooling.
    Pickups are drawn around a fixed number of 'hotspots' (ranks, malls, campuses) so
    several shared-ride requests start close to each other and can be grouped.
    """
    # Center around Harare, Zimbabwe
    CENTER_LAT = -17.824858
    CENTER_LON = 31.053028

    # 1. Fixed hotspots within ~5km of the center
    hotspots = []
    for hotspot_index in range(num_hotspots):
        hotspots.append({
            "name": f"Hotspot {hotspot_index+1}",
            "lat": CENTER_LAT + np.random.uniform(-0.05, 0.05),
            "lon": CENTER_LON + np.random.uniform(-0.05, 0.05),
        })

    data = []
    now = datetime.now(timezone.utc)

    # 2. Requests
    for request_index in range(num_requests):
        hotspot = hotspots[np.random.randint(0, len(hotspots))]
        service_type_id = np.random.choice(SERVICE_TYPES, p=[0.5, 0.2, 0.3])

        # Dropoff within ~3-8km of the hotspot
        dropoff_lat = hotspot["lat"] + np.random.uniform(-0.07, 0.07)
        dropoff_lon = hotspot["lon"] + np.random.uniform(-0.07, 0.07)

        data.append({
            "request_id": f"r_{str(request_index+1).zfill(6)}",
            "created_at": (now - timedelta(minutes=int(np.random.randint(0, 30)))).isoformat(),
            "requester_id": f"u_{np.random.randint(1000, 9999)}",
            "service_type_id": service_type_id,
            # small jitter so pickups at the same hotspot aren't identical
            "pickup_lat": np.round(hotspot["lat"] + np.random.uniform(-0.002, 0.002), 6),
            "pickup_lon": np.round(hotspot["lon"] + np.random.uniform(-0.002, 0.002), 6),
            "dropoff_lat": np.round(dropoff_lat, 6),
            "dropoff_lon": np.round(dropoff_lon, 6),
            "passenger_count": int(np.random.choice([1, 2, 3], p=[0.7, 0.2, 0.1])),
            "pickup_address": hotspot["name"],
        })

    # 3. Save to CSV
    df = pd.DataFrame(data)
    df.to_csv(output_file, index=False)
    print(f"Generated {num_requests} requests and saved to '{output_file}'")

    # Quick preview of pooling density
    print("\nTop 5 Hotspots (Pooling Potential):")
    shared = df[df["service_type_id"] == "shared"]
    counts = shared["pickup_address"].value_counts().head(5)
    for name, count in counts.items():
        print(f"  {name}: {count} shared requests")


if __name__ == "__main__":
    generate_mock_requests(num_requests=500, num_hotspots=20)
