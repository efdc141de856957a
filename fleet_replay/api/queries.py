"""
In-process query service over an EventIndex.

Offers the filtered/paginated event and trip lookups a dashboard needs
outside of live replay, returning the pydantic models from schemas.py.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Optional

from fleet_replay.api.schemas import (
    EventPageResponse,
    EventResponse,
    FleetStatsResponse,
    FleetSummaryResponse,
    HealthResponse,
    LocationResponse,
    ReplayStatisticsResponse,
    TripEventsResponse,
    TripMetricsResponse,
    TripSummaryResponse,
    VehicleStatusResponse,
)
from fleet_replay.errors import InvalidArgumentError, MalformedEventError, TripNotFoundError
from fleet_replay.models.events import Location, Trip, TripEvent, parse_timestamp
from fleet_replay.models.metrics import FleetSummary, TripMetrics, VehicleStatus
from fleet_replay.services.event_index import EventIndex
from fleet_replay.services.replay_clock import ReplayStatistics


DEFAULT_PAGE_SIZE = 100


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _build_location(location: Optional[Location]) -> Optional[LocationResponse]:
    if location is None:
        return None
    return LocationResponse(lat=location.lat, lng=location.lng)


def build_event_response(event: TripEvent) -> EventResponse:
    """Build event response from TripEvent."""
    return EventResponse(
        timestamp=event.timestamp.isoformat(),
        trip_id=event.trip_id,
        event_type=event.event_type,
        location=_build_location(event.location),
        speed_kmh=event.speed_kmh,
        distance_delta_km=event.distance_delta_km,
        distance_travelled_km=event.distance_travelled_km,
        planned_distance_km=event.planned_distance_km,
        estimated_duration_hours=event.estimated_duration_hours,
        fuel_level=event.fuel_level,
        moving=event.moving,
        extra=dict(event.extra),
    )


def build_trip_summary(trip: Trip) -> TripSummaryResponse:
    """Build trip summary response from Trip."""
    return TripSummaryResponse(
        id=trip.trip_id,
        name=trip.name,
        color=trip.color,
        vehicle_id=trip.vehicle_id,
        start_location=trip.start_location,
        end_location=trip.end_location,
        event_count=len(trip.events),
        start_time=_iso(trip.start_time),
        end_time=_iso(trip.end_time),
    )


def build_metrics_response(metrics: TripMetrics) -> TripMetricsResponse:
    """Build metrics response, rounding distances and speeds to 0.1."""
    return TripMetricsResponse(
        status=metrics.status.value,
        total_distance_km=round(metrics.total_distance_km, 1),
        average_speed_kmh=round(metrics.average_speed_kmh, 1),
        max_speed_kmh=round(metrics.max_speed_kmh, 1),
        stop_count=metrics.stop_count,
        completion_percentage=metrics.completion_percentage,
        last_known_location=_build_location(metrics.last_known_location),
        start_time=_iso(metrics.start_time),
        last_update_time=_iso(metrics.last_update_time),
        elapsed_hours=metrics.elapsed_duration_s / 3600.0,
        total_events=metrics.total_events,
        planned_distance_km=metrics.planned_distance_km,
        estimated_duration_hours=(
            metrics.estimated_duration_s / 3600.0 if metrics.estimated_duration_s is not None else None
        ),
    )


def build_vehicle_response(status: VehicleStatus) -> VehicleStatusResponse:
    """Build vehicle status response, rounding speed and distance to 0.1."""
    return VehicleStatusResponse(
        vehicle_id=status.vehicle_id,
        state=status.state.value,
        current_speed_kmh=round(status.current_speed_kmh, 1),
        current_location=_build_location(status.current_location),
        last_update_time=_iso(status.last_update_time),
        total_distance_km=round(status.total_distance_km, 1),
        fuel_level=status.fuel_level,
        trip_id=status.trip_id,
    )


def build_fleet_response(summary: FleetSummary) -> FleetSummaryResponse:
    return FleetSummaryResponse(
        trip_count=summary.trip_count,
        idle_count=summary.idle_count,
        active_count=summary.active_count,
        completed_count=summary.completed_count,
        cancelled_count=summary.cancelled_count,
        reached_25=summary.reached_25,
        reached_50=summary.reached_50,
        reached_80=summary.reached_80,
        average_completion=summary.average_completion,
        all_trips_finished=summary.all_trips_finished,
    )


def build_statistics_response(stats: ReplayStatistics) -> ReplayStatisticsResponse:
    """Build replay statistics response from ReplayStatistics."""
    return ReplayStatisticsResponse(
        progress=stats.progress,
        current_time=_iso(stats.current_time),
        relative_time=stats.relative_time,
        total_duration=stats.total_duration,
        event_count=stats.event_count,
        trip_count=stats.trip_count,
        revealed_count=stats.revealed_count,
        speed_multiplier=stats.speed_multiplier,
        is_playing=stats.is_playing,
        state=stats.state.value,
        min_timestamp=_iso(stats.min_timestamp),
        max_timestamp=_iso(stats.max_timestamp),
    )


class FleetQueryService:
    """Read-only queries over an indexed fleet."""

    def __init__(self, index: EventIndex):
        self._index = index

    def get_events(
        self,
        start_time: Any = None,
        end_time: Any = None,
        trip_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> EventPageResponse:
        """
        Get events with optional filtering.

        Args:
            start_time: Inclusive lower bound (ISO string, datetime or epoch ms)
            end_time: Inclusive upper bound
            trip_id: Restrict to one trip (unknown trips yield an empty page)
            limit: Page size (>= 1)
            offset: Number of matching events to skip (>= 0)

        Raises:
            InvalidArgumentError: On bad bounds or pagination values
        """
        _validate_page(limit, offset)

        events = self._index.events_for_trip(trip_id) if trip_id else self._index.all_events

        if start_time is not None or end_time is not None:
            start = _parse_bound(start_time, "start_time")
            end = _parse_bound(end_time, "end_time")
            events = [
                e for e in events
                if (start is None or e.epoch_s >= start) and (end is None or e.epoch_s <= end)
            ]

        total = len(events)
        page = events[offset: offset + limit]
        return EventPageResponse(
            events=[build_event_response(e) for e in page],
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )

    def get_trips(self) -> list[TripSummaryResponse]:
        """List every trip in index order."""
        return [build_trip_summary(trip) for trip in self._index.trips]

    def get_trip_events(
        self,
        trip_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> TripEventsResponse:
        """
        Get one page of a trip's events.

        Raises:
            TripNotFoundError: If the trip is not indexed
        """
        _validate_page(limit, offset)

        trip = self._index.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(f"Trip not found: {trip_id}")

        page = trip.events[offset: offset + limit]
        return TripEventsResponse(
            trip_id=trip_id,
            events=[build_event_response(e) for e in page],
            total=len(trip.events),
            limit=limit,
            offset=offset,
            has_more=offset + limit < len(trip.events),
        )

    def get_stats(self) -> FleetStatsResponse:
        counts = Counter(e.event_type for e in self._index.all_events)
        return FleetStatsResponse(
            total_trips=self._index.trip_count,
            total_events=self._index.event_count,
            events_by_type=dict(sorted(counts.items())),
            malformed_events=self._index.malformed_count,
        )

    def get_health(self) -> HealthResponse:
        return HealthResponse(
            status="ok",
            trips=self._index.trip_count,
            events=self._index.event_count,
        )


def _validate_page(limit: int, offset: int) -> None:
    if limit < 1:
        raise InvalidArgumentError(f"limit must be >= 1, got {limit}")
    if offset < 0:
        raise InvalidArgumentError(f"offset must be >= 0, got {offset}")


def _parse_bound(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return parse_timestamp(value).timestamp()
    except MalformedEventError as e:
        raise InvalidArgumentError(f"Invalid {name}: {value!r}") from e
