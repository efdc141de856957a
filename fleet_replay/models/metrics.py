"""
Derived trip metrics.

Metrics are recomputed from an event prefix every time they are requested;
these classes are snapshots, never the source of truth.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from fleet_replay.models.events import Location


class TripStatus(str, Enum):
    """Lifecycle status derived from the events seen so far."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TripMetrics:
    """Metrics snapshot for one trip."""

    status: TripStatus
    total_distance_km: float
    average_speed_kmh: float
    max_speed_kmh: float
    stop_count: int
    completion_percentage: int  # 0-100
    last_known_location: Optional[Location]
    start_time: Optional[datetime]
    last_update_time: Optional[datetime]
    elapsed_duration_s: float
    total_events: int = 0
    position_event_count: int = 0
    planned_distance_km: Optional[float] = None
    estimated_duration_s: Optional[float] = None


@dataclass(frozen=True)
class FleetSummary:
    """Fleet-wide rollup of per-trip metrics."""

    trip_count: int
    idle_count: int
    active_count: int
    completed_count: int
    cancelled_count: int
    reached_25: int
    reached_50: int
    reached_80: int
    average_completion: float
    all_trips_finished: bool


class VehicleState(str, Enum):
    """Live state of a vehicle as of its latest revealed event."""

    IDLE = "idle"
    IN_TRANSIT = "in_transit"
    STOPPED = "stopped"


@dataclass(frozen=True)
class VehicleStatus:
    """Latest known state of one vehicle across the trips it drives."""

    vehicle_id: str
    state: VehicleState
    current_speed_kmh: float
    current_location: Optional[Location]
    last_update_time: Optional[datetime]
    total_distance_km: float
    fuel_level: Optional[float] = None
    trip_id: Optional[str] = None
