"""
Trip Repository - manages loading and caching of trip files.

The replay engine only needs an in-memory mapping of trip id to events;
this layer produces that mapping from a folder of JSON/CSV exports.
"""

import logging
from pathlib import Path
from typing import Optional

from fleet_replay.services.event_index import EventIndex
from fleet_replay.services.trip_loader import SUPPORTED_SUFFIXES, TripSource, load_trip_file


logger = logging.getLogger(__name__)


# Assigned in load order to trips whose files carry no colour
DEFAULT_TRIP_COLORS = ["#FF6B6B", "#4ECDC4", "#45B7D1", "#FFA07A", "#98D8C8"]


class TripRepository:
    """
    Repository for trip files.

    Reads every supported file in a folder. Caches parsed trips in memory.
    """

    def __init__(self, data_folder: Optional[Path] = None):
        """
        Initialize the repository.

        Args:
            data_folder: Folder containing trip files. If None, must be set later.
        """
        self._data_folder: Optional[Path] = data_folder
        self._cache: dict[str, TripSource] = {}
        self._index: dict[str, Path] = {}  # file stem -> filepath

        if data_folder is not None:
            self.scan_folder(data_folder)

    @property
    def data_folder(self) -> Optional[Path]:
        return self._data_folder

    @property
    def file_count(self) -> int:
        return len(self._index)

    def set_data_folder(self, folder: Path) -> int:
        """
        Set the data folder and scan it.

        Returns:
            Number of trip files found
        """
        self._data_folder = folder
        self._cache.clear()
        self._index.clear()
        return self.scan_folder(folder)

    def scan_folder(self, folder: Path) -> int:
        """
        Scan a folder for trip files and build the index.

        Returns:
            Number of trip files found
        """
        if not folder.exists():
            logger.warning(f"Data folder does not exist: {folder}")
            return 0

        count = 0
        for filepath in sorted(folder.iterdir()):
            if filepath.is_file() and filepath.suffix.lower() in SUPPORTED_SUFFIXES:
                self._index[filepath.stem] = filepath
                count += 1
                logger.debug(f"Indexed trip file: {filepath.name}")

        logger.info(f"Scanned {count} trip files in {folder}")
        return count

    def list_trips(self) -> list[TripSource]:
        """
        Load every indexed trip file, skipping unreadable ones.

        Returns:
            TripSource objects sorted by trip id
        """
        sources = []
        for stem in self._index:
            source = self._get_or_load(stem)
            if source is not None:
                sources.append(source)
        sources.sort(key=lambda s: s.trip_id)
        return sources

    def get_trip(self, trip_id: str) -> Optional[TripSource]:
        """
        Get a trip by id.

        Returns:
            TripSource if found, None otherwise
        """
        for source in self.list_trips():
            if source.trip_id == trip_id:
                return source
        return None

    def load_all(self) -> dict[str, dict]:
        """
        Build the trip mapping consumed by EventIndex.

        Duplicate trip ids keep the first file (in trip id order) and log the rest.
        """
        trips: dict[str, dict] = {}
        for i, source in enumerate(self.list_trips()):
            if source.trip_id in trips:
                logger.warning(
                    f"Duplicate trip id {source.trip_id} in {source.source_file.name}; skipped"
                )
                continue
            mapping = source.to_mapping()
            if not mapping["color"]:
                mapping["color"] = DEFAULT_TRIP_COLORS[i % len(DEFAULT_TRIP_COLORS)]
            trips[source.trip_id] = mapping
        return trips

    def build_index(self) -> EventIndex:
        """Load every trip file and index the result."""
        return EventIndex(self.load_all())

    def clear_cache(self) -> None:
        """Clear the in-memory cache."""
        self._cache.clear()
        logger.info("Trip cache cleared")

    def _get_or_load(self, stem: str) -> Optional[TripSource]:
        if stem in self._cache:
            return self._cache[stem]

        filepath = self._index[stem]
        try:
            source = load_trip_file(filepath)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load trip file {filepath}: {e}")
            return None

        self._cache[stem] = source
        logger.debug(f"Loaded and cached trip: {source.trip_id} ({len(source.events)} events)")
        return source


# Global repository instance (set up by the host script)
_repository: Optional[TripRepository] = None


def get_repository() -> TripRepository:
    """Get the global repository instance."""
    global _repository
    if _repository is None:
        _repository = TripRepository()
    return _repository


def init_repository(data_folder: Path) -> TripRepository:
    """Initialize the global repository with a data folder."""
    global _repository
    _repository = TripRepository(data_folder)
    return _repository
