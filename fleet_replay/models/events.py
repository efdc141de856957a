"""
Trip event data model.

Raw event records from trip files are normalized into this structure with:
- timezone-aware UTC timestamps (plus a cached epoch-seconds float)
- canonical snake_case field names resolved from known aliases
- optional numeric channels (speed, distance) coerced to float or None
- every unrecognised field carried through untouched in `extra`
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, NamedTuple, Optional

import numpy as np
import pandas as pd

from fleet_replay.errors import MalformedEventError


# Event types the engine interprets; anything else passes through generically
TRIP_STARTED = "trip_started"
LOCATION_PING = "location_ping"
VEHICLE_STOPPED = "vehicle_stopped"
VEHICLE_MOVING = "vehicle_moving"
TRIP_COMPLETED = "trip_completed"
TRIP_CANCELLED = "trip_cancelled"

UNKNOWN_EVENT_TYPE = "unknown"


# Field name mappings - source datasets mix snake_case, camelCase and short names
FIELD_ALIASES = {
    "timestamp": ["timestamp", "time", "ts"],
    "trip_id": ["trip_id", "tripId"],
    "event_type": ["event_type", "eventType", "type"],
    "speed_kmh": ["speed_kmh", "speedKmh", "speed"],
    "distance_delta_km": ["distance_delta_km", "distanceDeltaKm", "distance_delta"],
    "distance_travelled_km": [
        "distance_travelled_km",
        "distanceTravelledKm",
        "distance_traveled_km",
    ],
    "planned_distance_km": ["planned_distance_km", "plannedDistanceKm"],
    "estimated_duration_hours": ["estimated_duration_hours", "estimatedDurationHours"],
    "fuel_level": ["fuel_level", "fuelLevel"],
    "moving": ["moving", "is_moving", "isMoving"],
    "latitude": ["lat", "latitude", "Latitude"],
    "longitude": ["lng", "lon", "longitude", "Longitude", "long"],
}

# Nested objects some exports use instead of flat columns
LOCATION_KEY = "location"
MOVEMENT_KEY = "movement"


@dataclass(frozen=True)
class Location:
    """WGS84 position in degrees."""

    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class TripEvent:
    """
    One telemetry record belonging to a trip.

    Events are immutable once loaded. `sequence` is the ingestion order and
    only breaks ties between events that share a timestamp.
    """

    timestamp: datetime
    trip_id: str
    event_type: str
    location: Optional[Location] = None
    speed_kmh: Optional[float] = None
    distance_delta_km: Optional[float] = None
    distance_travelled_km: Optional[float] = None
    planned_distance_km: Optional[float] = None
    estimated_duration_hours: Optional[float] = None
    fuel_level: Optional[float] = None
    moving: Optional[bool] = None
    sequence: int = 0
    extra: dict = field(default_factory=dict, compare=False, hash=False)

    epoch_s: float = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "epoch_s", self.timestamp.timestamp())

    @property
    def has_location(self) -> bool:
        return self.location is not None

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any],
        trip_id: Optional[str] = None,
        sequence: int = 0,
    ) -> "TripEvent":
        """
        Normalize a raw event record.

        Args:
            raw: Source record (JSON object or CSV row)
            trip_id: Owning trip, used when the record does not name one
            sequence: Ingestion order for stable tie-breaking

        Raises:
            MalformedEventError: If the timestamp is missing or unparseable
        """
        if not isinstance(raw, Mapping):
            raise MalformedEventError(f"Event record is not a mapping: {raw!r}")

        consumed: set[str] = set()

        def lookup(name: str) -> Any:
            for alias in FIELD_ALIASES[name]:
                if alias in raw:
                    consumed.add(alias)
                    return raw[alias]
            return None

        timestamp = parse_timestamp(lookup("timestamp"))

        record_trip = lookup("trip_id")
        owner = str(record_trip) if _present(record_trip) else trip_id
        if owner is None:
            raise MalformedEventError(f"Event has no trip id: {raw!r}")

        event_type = lookup("event_type")
        event_type = str(event_type) if _present(event_type) else UNKNOWN_EVENT_TYPE

        movement = raw.get(MOVEMENT_KEY)
        movement = movement if isinstance(movement, Mapping) else {}

        speed = _to_float(lookup("speed_kmh"))
        if speed is None:
            speed = _to_float(movement.get("speed_kmh", movement.get("speedKmh")))

        moving = _to_bool(lookup("moving"))
        if moving is None:
            moving = _to_bool(movement.get("moving"))

        location = _extract_location(raw, lookup, consumed)

        return cls(
            timestamp=timestamp,
            trip_id=owner,
            event_type=event_type,
            location=location,
            speed_kmh=speed,
            distance_delta_km=_to_float(lookup("distance_delta_km")),
            distance_travelled_km=_to_float(lookup("distance_travelled_km")),
            planned_distance_km=_to_float(lookup("planned_distance_km")),
            estimated_duration_hours=_to_float(lookup("estimated_duration_hours")),
            fuel_level=_to_float(lookup("fuel_level")),
            moving=moving,
            sequence=sequence,
            extra={k: v for k, v in raw.items() if k not in consumed},
        )

    def to_dict(self) -> dict:
        """Serialize back to a flat snake_case record (extra fields included)."""
        data = dict(self.extra)
        data.update({
            "timestamp": self.timestamp.isoformat(),
            "trip_id": self.trip_id,
            "event_type": self.event_type,
        })
        if self.location is not None:
            data["location"] = self.location.to_dict()
        for key in (
            "speed_kmh",
            "distance_delta_km",
            "distance_travelled_km",
            "planned_distance_km",
            "estimated_duration_hours",
            "fuel_level",
            "moving",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class Trip:
    """A named, colored, vehicle-tagged sequence of events sharing a trip id."""

    trip_id: str
    name: str
    color: Optional[str] = None
    vehicle_id: Optional[str] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    events: list[TripEvent] = field(default_factory=list)

    @property
    def start_time(self) -> Optional[datetime]:
        return self.events[0].timestamp if self.events else None

    @property
    def end_time(self) -> Optional[datetime]:
        return self.events[-1].timestamp if self.events else None


class TimeRange(NamedTuple):
    """Timeline bounds in epoch seconds. All zero for an empty timeline."""

    min_timestamp: float
    max_timestamp: float
    total_duration: float


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an event timestamp into a UTC datetime.

    Accepts ISO-8601 strings, datetime objects and numbers (epoch
    milliseconds). Naive values are interpreted as UTC.

    Raises:
        MalformedEventError: If the value is missing or not a valid instant
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        raise MalformedEventError(f"Invalid timestamp: {value!r}")

    numeric = isinstance(value, (int, float, np.integer, np.floating))
    if numeric and not math.isfinite(float(value)):
        raise MalformedEventError(f"Invalid timestamp: {value!r}")

    try:
        ts = pd.Timestamp(value, unit="ms") if numeric else pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise MalformedEventError(f"Invalid timestamp: {value!r}") from e

    if pd.isna(ts):
        raise MalformedEventError(f"Invalid timestamp: {value!r}")

    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return not (isinstance(value, str) and not value.strip())


def _to_float(value: Any) -> Optional[float]:
    """Coerce a numeric-looking value to float; None for anything else."""
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return bool(value)
    if isinstance(value, (float, np.floating)):
        return None if math.isnan(value) else bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


def _extract_location(raw: Mapping[str, Any], lookup, consumed: set[str]) -> Optional[Location]:
    nested = raw.get(LOCATION_KEY)
    if isinstance(nested, Mapping):
        lat = _to_float(nested.get("lat", nested.get("latitude")))
        lng = _to_float(nested.get("lng", nested.get("lon", nested.get("longitude"))))
        if lat is not None and lng is not None:
            consumed.add(LOCATION_KEY)
            return Location(lat=lat, lng=lng)

    lat = _to_float(lookup("latitude"))
    lng = _to_float(lookup("longitude"))
    if lat is None or lng is None:
        return None
    return Location(lat=lat, lng=lng)
