"""
Great-circle distance utilities.

Used to derive trip distance from positions when a dataset carries neither
per-event distance deltas nor a cumulative odometer.
"""

import numpy as np
from numpy.typing import NDArray

EARTH_RADIUS_KM = 6371.0088  # IUGG mean radius


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in kilometres
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(lat2 - lat1)
    dlon = np.radians(lon2 - lon1)

    a = np.sin(dlat/2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1-a))

    return float(EARTH_RADIUS_KM * c)


def segment_distances(
    lat: NDArray[np.float64],
    lon: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Distances between consecutive points of a path.

    Args:
        lat: Latitude array in degrees
        lon: Longitude array in degrees

    Returns:
        Array of len(lat) - 1 segment lengths in kilometres (NaN segments are 0)
    """
    if len(lat) < 2:
        return np.zeros(0, dtype=np.float64)

    lat_rad = np.radians(lat)
    dlat = np.diff(lat_rad)
    dlon = np.radians(np.diff(lon))

    a = np.sin(dlat/2)**2 + np.cos(lat_rad[:-1]) * np.cos(lat_rad[1:]) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1-a))

    segments = EARTH_RADIUS_KM * c
    return np.where(np.isnan(segments), 0.0, segments)


def path_length_km(lat: NDArray[np.float64], lon: NDArray[np.float64]) -> float:
    """Total length of a path in kilometres."""
    return float(np.sum(segment_distances(np.asarray(lat, dtype=np.float64), np.asarray(lon, dtype=np.float64))))
