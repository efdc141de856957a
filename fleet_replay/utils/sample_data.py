"""
Sample data generator for testing and demos.

Generates realistic-looking fleet trips as JSON trip files: a trip_started
event, periodic location pings with stops along the way, and a completion
or cancellation at the end. Output is fully determined by the seed.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import numpy as np


KM_PER_DEG_LAT = 111.0

# Percent of tank used per km driven
FUEL_PER_KM = 0.08

FLEET_START = datetime(2024, 3, 4, 8, 0, 0, tzinfo=timezone.utc)


def generate_trip_events(
    trip_id: str,
    start_time: datetime = FLEET_START,
    n_pings: int = 120,
    ping_interval_s: float = 60.0,
    start_lat: float = 39.7392,  # Example: Denver area
    start_lon: float = -104.9903,
    heading_deg: float = 90.0,
    avg_speed_kmh: float = 70.0,
    stop_probability: float = 0.05,
    outcome: str = "completed",
    cancel_fraction: float = 0.6,
    seed: int = 0,
) -> list[dict]:
    """
    Generate the raw events of one trip.

    Args:
        outcome: "completed", "cancelled" or "active" (no terminal event)
        cancel_fraction: Fraction of pings emitted before a cancellation
    """
    rng = np.random.default_rng(seed)

    planned_km = avg_speed_kmh * n_pings * ping_interval_s / 3600.0
    last_ping = int(n_pings * cancel_fraction) if outcome == "cancelled" else n_pings

    lat, lon = start_lat, start_lon
    travelled = 0.0
    fuel = 100.0
    moving = True
    events = [{
        "timestamp": _iso(start_time),
        "trip_id": trip_id,
        "event_type": "trip_started",
        "location": {"lat": round(lat, 6), "lng": round(lon, 6)},
        "planned_distance_km": round(planned_km, 1),
        "estimated_duration_hours": round(n_pings * ping_interval_s / 3600.0, 2),
    }]

    for i in range(1, last_ping + 1):
        t = start_time + timedelta(seconds=i * ping_interval_s)

        stopped = rng.random() < stop_probability
        speed = 0.0 if stopped else float(np.clip(rng.normal(avg_speed_kmh, 8.0), 5.0, 130.0))

        if stopped and moving:
            events.append(_motion_event(trip_id, t, "vehicle_stopped", lat, lon))
        elif not stopped and not moving:
            events.append(_motion_event(trip_id, t, "vehicle_moving", lat, lon))
        moving = not stopped

        # Advance along the heading with a little wander
        delta = speed * ping_interval_s / 3600.0
        heading = np.radians(heading_deg + rng.normal(0.0, 10.0))
        lat += delta * np.cos(heading) / KM_PER_DEG_LAT
        lon += delta * np.sin(heading) / (KM_PER_DEG_LAT * np.cos(np.radians(lat)))
        travelled += delta
        fuel = max(0.0, fuel - delta * FUEL_PER_KM)

        events.append({
            "timestamp": _iso(t),
            "trip_id": trip_id,
            "event_type": "location_ping",
            "location": {"lat": round(float(lat), 6), "lng": round(float(lon), 6)},
            "movement": {"speed_kmh": round(speed, 1), "moving": moving},
            "distance_delta_km": round(delta, 3),
            "distance_travelled_km": round(travelled, 3),
            "fuel_level": round(fuel, 1),
        })

    end_time = start_time + timedelta(seconds=(last_ping + 1) * ping_interval_s)
    if outcome == "completed":
        events.append({
            "timestamp": _iso(end_time),
            "trip_id": trip_id,
            "event_type": "trip_completed",
            "distance_travelled_km": round(travelled, 3),
        })
    elif outcome == "cancelled":
        events.append({
            "timestamp": _iso(end_time),
            "trip_id": trip_id,
            "event_type": "trip_cancelled",
            "reason": "route_blocked",
        })

    return events


def generate_trip_file(
    output_path: Path,
    trip_id: str,
    name: str,
    vehicle_id: Optional[str] = None,
    color: Optional[str] = None,
    start_location: Optional[str] = None,
    end_location: Optional[str] = None,
    **kwargs,
) -> Path:
    """Generate one trip and write it as a JSON wrapper object."""
    payload = {
        "trip_id": trip_id,
        "trip_name": name,
        "vehicle_id": vehicle_id,
        "color": color,
        "start_location": start_location,
        "end_location": end_location,
        "events": generate_trip_events(trip_id, **kwargs),
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return output_path


def generate_fleet(output_folder: Path, seed: int = 42) -> list[Path]:
    """Generate a set of five trips with different characteristics."""
    output_folder.mkdir(parents=True, exist_ok=True)

    files = []

    files.append(generate_trip_file(
        output_folder / "trip_1_cross_country.json",
        trip_id="trip_1",
        name="Cross Country Route",
        vehicle_id="VH_001",
        color="#FF6B6B",
        start_location="Denver, CO",
        end_location="Chicago, IL",
        n_pings=240,
        avg_speed_kmh=95.0,
        stop_probability=0.03,
        seed=seed,
    ))

    files.append(generate_trip_file(
        output_folder / "trip_2_urban_dense.json",
        trip_id="trip_2",
        name="Urban Delivery",
        vehicle_id="VH_002",
        color="#4ECDC4",
        start_time=FLEET_START + timedelta(minutes=15),
        n_pings=180,
        ping_interval_s=30.0,
        avg_speed_kmh=28.0,
        stop_probability=0.2,
        heading_deg=0.0,
        seed=seed + 1,
    ))

    files.append(generate_trip_file(
        output_folder / "trip_3_mountain_cancelled.json",
        trip_id="trip_3",
        name="Mountain Route",
        vehicle_id="VH_003",
        color="#45B7D1",
        start_time=FLEET_START + timedelta(minutes=5),
        n_pings=150,
        avg_speed_kmh=45.0,
        stop_probability=0.08,
        heading_deg=270.0,
        outcome="cancelled",
        seed=seed + 2,
    ))

    files.append(generate_trip_file(
        output_folder / "trip_4_southern_technical.json",
        trip_id="trip_4",
        name="Southern Technical",
        vehicle_id="VH_004",
        color="#FFA07A",
        start_time=FLEET_START + timedelta(minutes=30),
        n_pings=200,
        avg_speed_kmh=60.0,
        heading_deg=180.0,
        outcome="active",
        seed=seed + 3,
    ))

    files.append(generate_trip_file(
        output_folder / "trip_5_regional_logistics.json",
        trip_id="trip_5",
        name="Regional Logistics",
        vehicle_id="VH_005",
        color="#98D8C8",
        start_time=FLEET_START + timedelta(minutes=10),
        n_pings=160,
        avg_speed_kmh=75.0,
        stop_probability=0.06,
        heading_deg=45.0,
        seed=seed + 4,
    ))

    return files


def _motion_event(trip_id: str, t: datetime, event_type: str, lat: float, lon: float) -> dict:
    return {
        "timestamp": _iso(t),
        "trip_id": trip_id,
        "event_type": event_type,
        "location": {"lat": round(float(lat), 6), "lng": round(float(lon), 6)},
    }


def _iso(t: datetime) -> str:
    return t.isoformat().replace("+00:00", "Z")


if __name__ == "__main__":
    # Generate sample data when run directly
    output = Path("./data/trips")
    files = generate_fleet(output)
    print(f"Generated {len(files)} trip files in {output}")
    for f in files:
        print(f"  - {f.name}")
