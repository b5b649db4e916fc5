import csv
import random


def generate_mock_drivers(filename="mock_drivers_100.csv", count=100):
    # Base coordinate roughly mapping to the center of Harare, where the mock requests cluster.
    base_lat = -17.824858
    base_lon = 31.053028

    with open(filename, mode='w', newline='') as file:
        writer = csv.writer(file)
        writer.writerow(["driver_id", "lat", "lon", "availability", "approval", "service_type_ids"])

        for i in range(count):
            driver_id = f"DRV-{str(i+1).zfill(3)}"

            # Scatter drivers randomly around the city center (roughly +/- 8km)
            lat = base_lat + (random.random() - 0.5) * 0.15
            lon = base_lon + (random.random() - 0.5) * 0.15

            # 80% online, the rest offline or on a break
            availability = "ONLINE" if random.random() < 0.8 else random.choice(["OFFLINE", "BREAK"])

            # a few applications still waiting for document review
            approval = "APPROVED" if random.random() < 0.9 else "PENDING"

            # every driver does rides; some also run a taxi or take shared rides
            service_types = ["ride"]
            if random.random() < 0.3:
                service_types.append("taxi")
            if random.random() < 0.5:
                service_types.append("shared")

            writer.writerow([driver_id, round(lat, 6), round(lon, 6), availability, approval, ";".join(service_types)])

    print(f"Successfully generated {count} mock drivers into '{filename}'.")


if __name__ == "__main__":
    generate_mock_drivers()
