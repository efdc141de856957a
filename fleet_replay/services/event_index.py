"""
Event index - time-ordered view over every event of every trip.

Built once from loaded trip data. Malformed events are logged and skipped;
everything else is flattened into one globally sorted sequence that the
replay clock slices with binary searches.
"""

import logging
import math
from typing import Any, Iterable, Mapping, Optional

import numpy as np
from numpy.typing import NDArray

from fleet_replay.errors import MalformedEventError
from fleet_replay.models.events import TimeRange, Trip, TripEvent


logger = logging.getLogger(__name__)


# Wrapper keys copied onto the Trip when a source is {"events": [...], ...}
TRIP_METADATA_KEYS = ("name", "color", "vehicle_id", "start_location", "end_location")


class EventIndex:
    """
    Queryable, time-ordered index over all trip events.

    Ordering is by timestamp with ties kept in input order (trip order in the
    source mapping, then event order within each trip). Queries never raise on
    an empty index; they return empty results.
    """

    def __init__(self, trips: Optional[Mapping[str, Any]] = None):
        """
        Build the index.

        Args:
            trips: Mapping of trip id to either a sequence of events or a
                wrapper object with an "events" sequence. Events may be raw
                records or TripEvent instances.
        """
        self._trips: dict[str, Trip] = {}
        self._trip_times: dict[str, NDArray[np.float64]] = {}
        self._events: list[TripEvent] = []
        self._times: NDArray[np.float64] = np.empty(0, dtype=np.float64)
        self._min_timestamp = math.inf
        self._max_timestamp = -math.inf
        self._malformed_count = 0

        self._ingest(trips or {})

    def _ingest(self, trips: Mapping[str, Any]) -> None:
        combined: list[TripEvent] = []
        sequence = 0

        for key, source in trips.items():
            trip_id = str(key)
            raw_events, metadata = _unwrap_trip(trip_id, source)

            parsed: list[TripEvent] = []
            for raw in raw_events:
                try:
                    event = raw if isinstance(raw, TripEvent) else TripEvent.from_raw(raw, trip_id, sequence)
                except MalformedEventError as e:
                    self._malformed_count += 1
                    logger.warning(f"Skipping malformed event in trip {trip_id}: {e}")
                    continue
                sequence += 1
                parsed.append(event)
                if event.epoch_s < self._min_timestamp:
                    self._min_timestamp = event.epoch_s
                if event.epoch_s > self._max_timestamp:
                    self._max_timestamp = event.epoch_s

            # list.sort is stable, so equal timestamps keep input order
            parsed.sort(key=lambda e: e.epoch_s)

            self._trips[trip_id] = Trip(
                trip_id=trip_id,
                name=metadata.get("name") or trip_id,
                color=metadata.get("color"),
                vehicle_id=metadata.get("vehicle_id"),
                start_location=metadata.get("start_location"),
                end_location=metadata.get("end_location"),
                events=parsed,
            )
            self._trip_times[trip_id] = np.array([e.epoch_s for e in parsed], dtype=np.float64)
            combined.extend(parsed)
            logger.debug(f"Indexed trip {trip_id}: {len(parsed)} events")

        if combined:
            times = np.array([e.epoch_s for e in combined], dtype=np.float64)
            order = np.argsort(times, kind="stable")
            self._events = [combined[i] for i in order]
            self._times = times[order]
        else:
            self._min_timestamp = 0.0
            self._max_timestamp = 0.0

        if self._malformed_count:
            logger.warning(f"Excluded {self._malformed_count} malformed events from index")
        logger.info(
            f"Indexed {len(self._events)} events across {len(self._trips)} trips "
            f"(duration {self.total_duration:.1f}s)"
        )

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    @property
    def min_timestamp(self) -> float:
        return self._min_timestamp

    @property
    def max_timestamp(self) -> float:
        return self._max_timestamp

    @property
    def total_duration(self) -> float:
        return max(0.0, self._max_timestamp - self._min_timestamp)

    def time_range(self) -> TimeRange:
        """Return (min_timestamp, max_timestamp, total_duration) in seconds."""
        return TimeRange(self._min_timestamp, self._max_timestamp, self.total_duration)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def events_up_to(self, cutoff_relative: float) -> list[TripEvent]:
        """
        Get every event at or before min_timestamp + cutoff_relative.

        Pure: the same cutoff always yields the same globally ordered list.
        """
        return self._events[: self.count_up_to(cutoff_relative)]

    def count_up_to(self, cutoff_relative: float) -> int:
        """Number of events at or before min_timestamp + cutoff_relative."""
        if not self._events:
            return 0
        if cutoff_relative >= self.total_duration:
            return len(self._events)
        cutoff = self._min_timestamp + cutoff_relative
        return int(np.searchsorted(self._times, cutoff, side="right"))

    def events_between(self, after: float, until: float) -> list[TripEvent]:
        """
        Get events with after < timestamp <= until (absolute epoch seconds).

        Use -inf for `after` to include everything up to `until`.
        """
        if not self._events or until <= after:
            return []
        lo = int(np.searchsorted(self._times, after, side="right"))
        hi = int(np.searchsorted(self._times, until, side="right"))
        return self._events[lo:hi]

    def events_for_trip(self, trip_id: str) -> list[TripEvent]:
        """Full ordered event list for a trip (empty for unknown ids)."""
        trip = self._trips.get(trip_id)
        return list(trip.events) if trip is not None else []

    def trip_events_up_to(self, trip_id: str, cutoff_relative: float) -> list[TripEvent]:
        """Prefix of a trip's events at or before min_timestamp + cutoff_relative."""
        trip = self._trips.get(trip_id)
        if trip is None or not trip.events:
            return []
        if cutoff_relative >= self.total_duration:
            return list(trip.events)
        cutoff = self._min_timestamp + cutoff_relative
        count = int(np.searchsorted(self._trip_times[trip_id], cutoff, side="right"))
        return trip.events[:count]

    def events_by_type(self, event_type: str) -> list[TripEvent]:
        return [e for e in self._events if e.event_type == event_type]

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self._trips.get(trip_id)

    @property
    def trips(self) -> list[Trip]:
        return list(self._trips.values())

    @property
    def trip_ids(self) -> list[str]:
        return list(self._trips.keys())

    @property
    def all_events(self) -> list[TripEvent]:
        return list(self._events)

    @property
    def event_count(self) -> int:
        return len(self._events)

    @property
    def trip_count(self) -> int:
        return len(self._trips)

    @property
    def malformed_count(self) -> int:
        return self._malformed_count

    @property
    def is_empty(self) -> bool:
        return not self._events


def _unwrap_trip(trip_id: str, source: Any) -> tuple[Iterable[Any], dict]:
    """Split a trip source into (events, metadata)."""
    if source is None:
        return [], {}
    if isinstance(source, Trip):
        metadata = {key: getattr(source, key) for key in TRIP_METADATA_KEYS}
        return source.events, metadata
    if isinstance(source, Mapping):
        events = source.get("events") or []
        metadata = {key: source.get(key) for key in TRIP_METADATA_KEYS}
        return events, metadata
    if isinstance(source, (list, tuple)):
        return source, {}

    logger.warning(f"Ignoring trip {trip_id}: unsupported source type {type(source).__name__}")
    return [], {}
