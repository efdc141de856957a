"""
Metrics aggregator.

Pure functions turning an event prefix for one trip into a TripMetrics
snapshot, a set of snapshots into a fleet summary, and a vehicle's events
into its live status. No wall-clock reads, no randomness: the same input
always produces the same output.
"""

import math
import os
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from fleet_replay.models.events import (
    LOCATION_PING,
    TRIP_CANCELLED,
    TRIP_COMPLETED,
    TRIP_STARTED,
    VEHICLE_MOVING,
    VEHICLE_STOPPED,
    TripEvent,
)
from fleet_replay.models.metrics import (
    FleetSummary,
    TripMetrics,
    TripStatus,
    VehicleState,
    VehicleStatus,
)
from fleet_replay.utils.coordinates import path_length_km


# Speed (km/h) at or below which a sample without a moving flag counts as stopped
STOPPED_SPEED_KMH = float(os.getenv("FLEET_REPLAY_STOPPED_KMH", "1.0"))

COMPLETION_MILESTONES = (25, 50, 80)


def compute_metrics(
    events: Iterable[TripEvent],
    planned_distance_km: Optional[float] = None,
) -> TripMetrics:
    """
    Compute metrics for one trip from a time-sorted event prefix.

    Args:
        events: Events of a single trip, ascending by timestamp (may be empty)
        planned_distance_km: Planned route length; when omitted the value on
            the trip_started event is used if present

    Returns:
        TripMetrics snapshot
    """
    events = list(events)
    if not events:
        return _empty_metrics(planned_distance_km)

    started = _first_of_type(events, TRIP_STARTED)
    planned = _planned_distance(started, planned_distance_km)

    positions = [e for e in events if e.has_location]
    speeds = np.array([e.speed_kmh for e in events if e.speed_kmh is not None], dtype=np.float64)

    if _first_of_type(events, TRIP_CANCELLED) is not None:
        status = TripStatus.CANCELLED
        # Cancellation freezes whatever completion the trip had reached
        _, completion = _progress(
            [e for e in events if e.event_type != TRIP_CANCELLED], planned
        )
    else:
        status, completion = _progress(events, planned)

    start_time = started.timestamp if started is not None else events[0].timestamp
    last_update = events[-1].timestamp
    elapsed = _elapsed_seconds(start_time, last_update)

    return TripMetrics(
        status=status,
        total_distance_km=_total_distance_km(positions),
        average_speed_kmh=float(np.mean(speeds)) if speeds.size else 0.0,
        max_speed_kmh=float(np.max(speeds)) if speeds.size else 0.0,
        stop_count=count_stops(events),
        completion_percentage=completion,
        last_known_location=positions[-1].location if positions else None,
        start_time=start_time,
        last_update_time=last_update,
        elapsed_duration_s=elapsed,
        total_events=len(events),
        position_event_count=len(positions),
        planned_distance_km=planned,
        estimated_duration_s=_estimated_duration(started, elapsed, completion),
    )


def count_stops(events: Sequence[TripEvent]) -> int:
    """
    Count moving -> stopped transitions across consecutive motion samples.

    A run of stopped samples counts once. Samples whose motion state cannot
    be determined are skipped rather than breaking the run.
    """
    stops = 0
    previous: Optional[bool] = None
    for event in events:
        if not (event.has_location or event.event_type in (VEHICLE_STOPPED, VEHICLE_MOVING)):
            continue
        moving = _is_moving(event)
        if moving is None:
            continue
        if previous and not moving:
            stops += 1
        previous = moving
    return stops


def summarize_fleet(metrics_by_trip: Mapping[str, TripMetrics]) -> FleetSummary:
    """Roll per-trip metrics up into fleet-wide counts."""
    metrics = list(metrics_by_trip.values())
    by_status = {status: 0 for status in TripStatus}
    for m in metrics:
        by_status[m.status] += 1

    reached = {
        milestone: sum(1 for m in metrics if m.completion_percentage >= milestone)
        for milestone in COMPLETION_MILESTONES
    }
    finished = by_status[TripStatus.COMPLETED] + by_status[TripStatus.CANCELLED]

    return FleetSummary(
        trip_count=len(metrics),
        idle_count=by_status[TripStatus.IDLE],
        active_count=by_status[TripStatus.ACTIVE],
        completed_count=by_status[TripStatus.COMPLETED],
        cancelled_count=by_status[TripStatus.CANCELLED],
        reached_25=reached[25],
        reached_50=reached[50],
        reached_80=reached[80],
        average_completion=(
            sum(m.completion_percentage for m in metrics) / len(metrics) if metrics else 0.0
        ),
        all_trips_finished=bool(metrics) and finished == len(metrics),
    )


def compute_vehicle_status(vehicle_id: str, events: Iterable[TripEvent]) -> VehicleStatus:
    """
    Fold a vehicle's revealed events, oldest first, into its live status.

    Trip starts and vehicle_moving put the vehicle in transit, vehicle_stopped
    stops it and a trip end leaves it idle. Location pings update position,
    speed and distance without changing the state.
    """
    state = VehicleState.IDLE
    speed = 0.0
    location = None
    last_update = None
    distance = 0.0
    fuel_level = None
    trip_id = None

    for event in events:
        last_update = event.timestamp
        trip_id = event.trip_id
        if event.event_type == TRIP_STARTED:
            state = VehicleState.IN_TRANSIT
        elif event.event_type in (TRIP_COMPLETED, TRIP_CANCELLED):
            state = VehicleState.IDLE
            speed = 0.0
        elif event.event_type == VEHICLE_STOPPED:
            state = VehicleState.STOPPED
            speed = 0.0
        elif event.event_type == VEHICLE_MOVING:
            state = VehicleState.IN_TRANSIT
            speed = event.speed_kmh or 0.0
        elif event.event_type == LOCATION_PING:
            if event.location is not None:
                location = event.location
            speed = event.speed_kmh or 0.0
            distance += event.distance_delta_km or 0.0

        if event.fuel_level is not None:
            fuel_level = event.fuel_level

    return VehicleStatus(
        vehicle_id=vehicle_id,
        state=state,
        current_speed_kmh=speed,
        current_location=location,
        last_update_time=last_update,
        total_distance_km=distance,
        fuel_level=fuel_level,
        trip_id=trip_id,
    )


def _progress(events: list[TripEvent], planned: Optional[float]) -> tuple[TripStatus, int]:
    """Status and completion ignoring cancellation."""
    if _first_of_type(events, TRIP_COMPLETED) is not None:
        return TripStatus.COMPLETED, 100
    if _first_of_type(events, TRIP_STARTED) is None:
        return TripStatus.IDLE, 0

    positions = [e for e in events if e.has_location]
    if planned:
        ratio = _total_distance_km(positions) / planned
    else:
        # Coarse proxy when no route length is known
        ratio = len(positions) / len(events) if events else 0.0
    return TripStatus.ACTIVE, _clamp_percentage(ratio * 100)


def _total_distance_km(positions: list[TripEvent]) -> float:
    """
    Distance covered, from whichever representation the data carries.

    Incremental deltas win over a cumulative odometer; positions are the
    last resort.
    """
    deltas = [e.distance_delta_km for e in positions if e.distance_delta_km is not None]
    if deltas:
        return float(sum(deltas))

    cumulative = [e.distance_travelled_km for e in positions if e.distance_travelled_km is not None]
    if cumulative:
        return float(cumulative[-1])

    if len(positions) < 2:
        return 0.0
    lat = np.array([e.location.lat for e in positions], dtype=np.float64)
    lng = np.array([e.location.lng for e in positions], dtype=np.float64)
    return path_length_km(lat, lng)


def _is_moving(event: TripEvent) -> Optional[bool]:
    if event.moving is not None:
        return event.moving
    if event.event_type == VEHICLE_STOPPED:
        return False
    if event.event_type == VEHICLE_MOVING:
        return True
    if event.speed_kmh is not None:
        return event.speed_kmh > STOPPED_SPEED_KMH
    return None


def _planned_distance(started: Optional[TripEvent], override: Optional[float]) -> Optional[float]:
    if override is not None and override > 0:
        return float(override)
    if started is not None and started.planned_distance_km and started.planned_distance_km > 0:
        return started.planned_distance_km
    return None


def _first_of_type(events: Sequence[TripEvent], event_type: str) -> Optional[TripEvent]:
    for event in events:
        if event.event_type == event_type:
            return event
    return None


def _clamp_percentage(value: float) -> int:
    # Half-up rounding, so 12.5 -> 13 regardless of banker's rounding
    return int(min(100, max(0, math.floor(value + 0.5))))


def _elapsed_seconds(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds())


def _estimated_duration(started: Optional[TripEvent], elapsed_s: float, completion: int) -> float:
    if started is not None and started.estimated_duration_hours and started.estimated_duration_hours > 0:
        return started.estimated_duration_hours * 3600.0
    # Extrapolate from the share of the trip covered so far
    return elapsed_s * 100.0 / max(completion, 1)


def _empty_metrics(planned_distance_km: Optional[float]) -> TripMetrics:
    return TripMetrics(
        status=TripStatus.IDLE,
        total_distance_km=0.0,
        average_speed_kmh=0.0,
        max_speed_kmh=0.0,
        stop_count=0,
        completion_percentage=0,
        last_known_location=None,
        start_time=None,
        last_update_time=None,
        elapsed_duration_s=0.0,
        total_events=0,
        position_event_count=0,
        planned_distance_km=planned_distance_km if planned_distance_km and planned_distance_km > 0 else None,
    )
