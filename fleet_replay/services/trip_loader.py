"""
Trip file adapters.

Reads trip exports into TripSource records of raw event dicts. Timestamp
parsing and field normalization happen later, when the EventIndex is built,
so one bad row never rejects a whole file.

Supported formats:
- JSON: a list of events, or an object with "events" plus trip metadata
- CSV: one event per row; lat/lng columns become the event location
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

import pandas as pd

from fleet_replay.models.events import FIELD_ALIASES


# Metadata keys recognised on JSON wrapper objects (canonical name -> variants)
METADATA_MAPPINGS = {
    "trip_id": ["trip_id", "tripId", "id"],
    "name": ["trip_name", "tripName", "name"],
    "color": ["color", "colour"],
    "vehicle_id": ["vehicle_id", "vehicleId"],
    "start_location": ["start_location", "startLocation"],
    "end_location": ["end_location", "endLocation"],
}


@dataclass
class TripSource:
    """Raw events and metadata read from one trip file."""

    trip_id: str
    name: str
    source_file: Path
    events: list = field(default_factory=list)  # validated when indexed
    color: Optional[str] = None
    vehicle_id: Optional[str] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None

    def to_mapping(self) -> dict:
        """Wrapper form accepted by EventIndex."""
        return {
            "events": self.events,
            "name": self.name,
            "color": self.color,
            "vehicle_id": self.vehicle_id,
            "start_location": self.start_location,
            "end_location": self.end_location,
        }


class TripFileAdapter(Protocol):
    """Adapter interface for trip file formats."""

    name: str

    def can_parse(self, filepath: Path) -> bool:
        ...

    def parse(self, filepath: Path) -> TripSource:
        ...


class JsonTripAdapter:
    """Trip exports stored as JSON."""

    name = "json"

    def can_parse(self, filepath: Path) -> bool:
        return filepath.suffix.lower() == ".json"

    def parse(self, filepath: Path) -> TripSource:
        with open(filepath, "r", encoding="utf-8-sig") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {filepath.name}: {e}") from e

        if isinstance(data, list):
            events, metadata = data, {}
        elif isinstance(data, dict):
            events = data.get("events") or []
            metadata = _extract_metadata(data)
        else:
            raise ValueError(f"Unsupported JSON layout in {filepath.name}")

        if not isinstance(events, list):
            raise ValueError(f"'events' must be a list in {filepath.name}")

        trip_id = metadata.get("trip_id") or _trip_id_from_events(events) or filepath.stem
        return TripSource(
            trip_id=str(trip_id),
            name=metadata.get("name") or filepath.stem,
            source_file=filepath,
            events=list(events),
            color=metadata.get("color"),
            vehicle_id=metadata.get("vehicle_id"),
            start_location=metadata.get("start_location"),
            end_location=metadata.get("end_location"),
        )


class CsvTripAdapter:
    """Trip exports stored as CSV, one event per row."""

    name = "csv"

    def can_parse(self, filepath: Path) -> bool:
        return filepath.suffix.lower() == ".csv"

    def parse(self, filepath: Path) -> TripSource:
        df = pd.read_csv(filepath, encoding="utf-8-sig")
        df.columns = df.columns.str.strip()

        if not any(alias in df.columns for alias in FIELD_ALIASES["timestamp"]):
            raise ValueError("No timestamp column found in CSV")

        # Empty cells come back as NaN; drop them so the field reads as absent
        events = [
            {key: value for key, value in row.items() if not _is_missing(value)}
            for row in df.to_dict(orient="records")
        ]

        trip_id = _trip_id_from_events(events) or filepath.stem
        return TripSource(
            trip_id=str(trip_id),
            name=filepath.stem,
            source_file=filepath,
            events=events,
        )


ADAPTERS: list[TripFileAdapter] = [JsonTripAdapter(), CsvTripAdapter()]

SUPPORTED_SUFFIXES = (".json", ".csv")


def load_trip_file(filepath: Path) -> TripSource:
    """
    Load a trip file with the first adapter that accepts it.

    Raises:
        ValueError: If no adapter handles the file or its content is invalid
    """
    filepath = Path(filepath)
    for adapter in ADAPTERS:
        if adapter.can_parse(filepath):
            return adapter.parse(filepath)
    raise ValueError(f"No adapter available for file: {filepath}")


def _extract_metadata(data: dict) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    for std_name, variants in METADATA_MAPPINGS.items():
        metadata[std_name] = None
        for variant in variants:
            if data.get(variant) is not None:
                metadata[std_name] = data[variant]
                break
    return metadata


def _trip_id_from_events(events: list) -> Optional[str]:
    for event in events:
        if not isinstance(event, dict):
            continue
        for alias in FIELD_ALIASES["trip_id"]:
            value = event.get(alias)
            if value is not None and not _is_missing(value):
                return str(value)
    return None


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)
