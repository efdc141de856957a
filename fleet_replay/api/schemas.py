"""
API schemas (Pydantic models) for the in-process query surface.
"""

from typing import Optional
from pydantic import BaseModel, Field


# ============================================================================
# Event Schemas
# ============================================================================

class LocationResponse(BaseModel):
    """WGS84 position."""
    lat: float
    lng: float


class EventResponse(BaseModel):
    """Single trip event."""
    timestamp: str
    trip_id: str
    event_type: str
    location: Optional[LocationResponse] = None
    speed_kmh: Optional[float] = None
    distance_delta_km: Optional[float] = None
    distance_travelled_km: Optional[float] = None
    planned_distance_km: Optional[float] = None
    estimated_duration_hours: Optional[float] = None
    fuel_level: Optional[float] = None
    moving: Optional[bool] = None
    extra: dict = Field(default_factory=dict)  # pass-through source fields


class EventPageResponse(BaseModel):
    """One page of events, globally time-ordered."""
    events: list[EventResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


# ============================================================================
# Trip Schemas
# ============================================================================

class TripSummaryResponse(BaseModel):
    """Summary of a trip for listing."""
    id: str
    name: str
    color: Optional[str] = None
    vehicle_id: Optional[str] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    event_count: int
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class TripEventsResponse(BaseModel):
    """One page of a single trip's events."""
    trip_id: str
    events: list[EventResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


# ============================================================================
# Metrics Schemas
# ============================================================================

class TripMetricsResponse(BaseModel):
    """Metrics for one trip, rounded for display."""
    status: str
    total_distance_km: float
    average_speed_kmh: float
    max_speed_kmh: float
    stop_count: int
    completion_percentage: int = Field(ge=0, le=100)
    last_known_location: Optional[LocationResponse] = None
    start_time: Optional[str] = None
    last_update_time: Optional[str] = None
    elapsed_hours: float
    total_events: int
    planned_distance_km: Optional[float] = None
    estimated_duration_hours: Optional[float] = None


class VehicleStatusResponse(BaseModel):
    """Live state of one vehicle."""
    vehicle_id: str
    state: str
    current_speed_kmh: float
    current_location: Optional[LocationResponse] = None
    last_update_time: Optional[str] = None
    total_distance_km: float
    fuel_level: Optional[float] = None
    trip_id: Optional[str] = None


class FleetSummaryResponse(BaseModel):
    """Fleet-wide completion rollup."""
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


# ============================================================================
# Replay Schemas
# ============================================================================

class ReplayStatisticsResponse(BaseModel):
    """Replay transport status."""
    progress: float = Field(ge=0.0, le=1.0)
    current_time: Optional[str] = None
    relative_time: float
    total_duration: float
    event_count: int
    trip_count: int
    revealed_count: int
    speed_multiplier: float
    is_playing: bool
    state: str
    min_timestamp: Optional[str] = None
    max_timestamp: Optional[str] = None


# ============================================================================
# Fleet Schemas
# ============================================================================

class FleetStatsResponse(BaseModel):
    """Dataset statistics."""
    total_trips: int
    total_events: int
    events_by_type: dict[str, int]
    malformed_events: int


class HealthResponse(BaseModel):
    """Basic health information."""
    status: str
    trips: int
    events: int
