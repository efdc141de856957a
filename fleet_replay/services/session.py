"""
Replay session - the surface a hosting application talks to.

Bundles an EventIndex with its ReplayClock and answers the two questions a
dashboard asks on every tick: which events are visible, and what the
per-trip metrics look like given only those events.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from fleet_replay.models.events import TripEvent
from fleet_replay.models.metrics import FleetSummary, TripMetrics, VehicleStatus
from fleet_replay.services.event_index import EventIndex
from fleet_replay.services.metrics import compute_metrics, compute_vehicle_status, summarize_fleet
from fleet_replay.services.replay_clock import (
    DEFAULT_SPEED_MULTIPLIER,
    ReplayClock,
    ReplayStatistics,
)


@dataclass(frozen=True)
class ReplaySnapshot:
    """Everything visible at one replay position."""

    revealed_events: list[TripEvent]
    metrics: dict[str, TripMetrics]
    fleet: FleetSummary
    statistics: ReplayStatistics
    vehicles: dict[str, VehicleStatus]


class ReplaySession:
    """
    Index + clock + metrics for one dashboard view.

    Sessions share nothing; open one per view.
    """

    def __init__(
        self,
        index: EventIndex,
        speed_multiplier: float = DEFAULT_SPEED_MULTIPLIER,
        time_source: Callable[[], float] = time.monotonic,
        planned_distances: Optional[Mapping[str, float]] = None,
    ):
        self._index = index
        self._clock = ReplayClock(index, speed_multiplier, time_source)
        self._planned = dict(planned_distances or {})
        # trip id -> (prefix length, metrics); events are immutable so length identifies the prefix
        self._metrics_cache: dict[str, tuple[int, TripMetrics]] = {}

    @classmethod
    def from_trips(cls, trips: Mapping[str, Any], **kwargs) -> "ReplaySession":
        """Index raw trip data and open a session over it."""
        return cls(EventIndex(trips), **kwargs)

    @property
    def index(self) -> EventIndex:
        return self._index

    @property
    def clock(self) -> ReplayClock:
        return self._clock

    def revealed_events(self) -> list[TripEvent]:
        return self._clock.revealed_events()

    def trip_metrics(self, trip_id: str) -> TripMetrics:
        """Metrics for one trip from its events revealed so far."""
        prefix = self._index.trip_events_up_to(trip_id, self._clock.simulated_elapsed)

        cached = self._metrics_cache.get(trip_id)
        if cached is not None and cached[0] == len(prefix):
            return cached[1]

        metrics = compute_metrics(prefix, self._planned.get(trip_id))
        self._metrics_cache[trip_id] = (len(prefix), metrics)
        return metrics

    def metrics(self) -> dict[str, TripMetrics]:
        """Metrics for every trip, keyed by trip id."""
        return {trip_id: self.trip_metrics(trip_id) for trip_id in self._index.trip_ids}

    def vehicle_statuses(self) -> dict[str, VehicleStatus]:
        """
        Live status of every vehicle, keyed by vehicle id.

        Trips without a vehicle id stand in as their own vehicle. A vehicle
        driving several trips is folded over their revealed events in time order.
        """
        trips_by_vehicle: dict[str, list[str]] = {}
        for trip in self._index.trips:
            trips_by_vehicle.setdefault(trip.vehicle_id or trip.trip_id, []).append(trip.trip_id)

        elapsed = self._clock.simulated_elapsed
        statuses = {}
        for vehicle_id, trip_ids in trips_by_vehicle.items():
            events = [e for trip_id in trip_ids for e in self._index.trip_events_up_to(trip_id, elapsed)]
            events.sort(key=lambda e: e.epoch_s)
            statuses[vehicle_id] = compute_vehicle_status(vehicle_id, events)
        return statuses

    def statistics(self) -> ReplayStatistics:
        return self._clock.statistics()

    def snapshot(self) -> ReplaySnapshot:
        metrics = self.metrics()
        return ReplaySnapshot(
            revealed_events=self.revealed_events(),
            metrics=metrics,
            fleet=summarize_fleet(metrics),
            statistics=self.statistics(),
            vehicles=self.vehicle_statuses(),
        )
