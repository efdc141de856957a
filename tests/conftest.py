"""
Shared fixtures: a small two-trip fleet with known timestamps.

Trip A has events at +0s, +10s and +20s, trip B at +5s and +15s, so the
merged timeline spans 20 seconds.
"""

from datetime import datetime, timedelta, timezone

import pytest

from fleet_replay.services.event_index import EventIndex


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds: float) -> str:
    """ISO timestamp `seconds` after BASE_TIME."""
    return (BASE_TIME + timedelta(seconds=seconds)).isoformat().replace("+00:00", "Z")


@pytest.fixture
def two_trips():
    """Raw trip mapping: A as a plain list, B as a wrapper with metadata."""
    return {
        "A": [
            {"timestamp": at(0), "event_type": "trip_started", "location": {"lat": 40.0, "lng": -105.0}},
            {
                "timestamp": at(10),
                "event_type": "location_ping",
                "location": {"lat": 40.01, "lng": -105.0},
                "movement": {"speed_kmh": 50.0, "moving": True},
                "distance_delta_km": 1.1,
            },
            {"timestamp": at(20), "event_type": "trip_completed"},
        ],
        "B": {
            "name": "Trip B",
            "color": "#4ECDC4",
            "vehicle_id": "VH_B",
            "events": [
                {"timestamp": at(5), "event_type": "trip_started"},
                {
                    "timestamp": at(15),
                    "event_type": "location_ping",
                    "location": {"lat": 41.0, "lng": -104.0},
                    "speed_kmh": 30.0,
                },
            ],
        },
    }


@pytest.fixture
def index(two_trips):
    return EventIndex(two_trips)


@pytest.fixture
def labels(index):
    """Turn events into (trip_id, seconds since timeline start) pairs."""
    def _labels(events):
        return [(e.trip_id, e.epoch_s - index.min_timestamp) for e in events]
    return _labels
