#!/usr/bin/env python3
"""
Headless replay host for fleet trip data.

Loads every trip file in a folder, replays the fleet against the wall clock
and logs events and per-trip metrics as they are revealed.

Usage:
    python run_replay.py [data_folder] [--speed SPEED] [--tick-hz HZ] [--seek P]

Examples:
    python run_replay.py                        # Use default ./data/trips folder
    python run_replay.py --generate             # Write sample trips first
    python run_replay.py /path/to/trips -s 600  # 10 simulated minutes per second

The default speed comes from FLEET_REPLAY_SPEED (1x when unset).
"""

import argparse
import logging
import os
import time
from pathlib import Path

from fleet_replay.api.queries import (
    build_metrics_response,
    build_statistics_response,
    build_vehicle_response,
)
from fleet_replay.errors import InvalidArgumentError
from fleet_replay.models.events import TripEvent
from fleet_replay.services.replay_clock import DEFAULT_SPEED_MULTIPLIER
from fleet_replay.services.repository import init_repository
from fleet_replay.services.session import ReplaySession
from fleet_replay.utils.sample_data import generate_fleet


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


DEFAULT_DATA_FOLDER = os.getenv("FLEET_REPLAY_DATA_FOLDER", "./data/trips")
DEFAULT_TICK_HZ = float(os.getenv("FLEET_REPLAY_TICK_HZ", "60"))

STATUS_EVERY_S = 1.0


def main():
    parser = argparse.ArgumentParser(description="Fleet trip replay")
    parser.add_argument(
        "data_folder",
        nargs="?",
        default=DEFAULT_DATA_FOLDER,
        help=f"Path to folder containing trip files (default: {DEFAULT_DATA_FOLDER})"
    )
    parser.add_argument(
        "--speed", "-s",
        type=float,
        default=DEFAULT_SPEED_MULTIPLIER,
        help=f"Speed multiplier (default: {DEFAULT_SPEED_MULTIPLIER})"
    )
    parser.add_argument(
        "--tick-hz", "-t",
        type=float,
        default=DEFAULT_TICK_HZ,
        help=f"Ticks per second (default: {DEFAULT_TICK_HZ})"
    )
    parser.add_argument(
        "--seek",
        type=float,
        default=0.0,
        help="Start position as a fraction of the timeline (default: 0)"
    )
    parser.add_argument(
        "--generate", "-g",
        action="store_true",
        help="Write sample trips into the data folder before replaying"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every revealed event"
    )

    args = parser.parse_args()

    data_folder = Path(args.data_folder)
    if args.generate:
        files = generate_fleet(data_folder)
        logger.info(f"Generated {len(files)} sample trips in {data_folder}")

    if not data_folder.exists():
        parser.error(f"Data folder does not exist: {data_folder}")
    if args.tick_hz <= 0:
        parser.error("--tick-hz must be positive")

    repo = init_repository(data_folder)
    try:
        session = ReplaySession(repo.build_index(), speed_multiplier=args.speed)
        session.clock.seek(args.seek)
    except InvalidArgumentError as e:
        parser.error(str(e))

    run(session, tick_interval=1.0 / args.tick_hz, verbose=args.verbose)


def run(session: ReplaySession, tick_interval: float, verbose: bool = False) -> None:
    """Drive the clock until the stream completes or the user interrupts."""
    clock = session.clock

    def log_event(event: TripEvent) -> None:
        logger.info(f"[{event.trip_id}] {event.timestamp.isoformat()} {event.event_type}")

    if verbose:
        clock.on_event(log_event)
    clock.on_complete(lambda: logger.info("Stream complete"))

    clock.play()
    last_status = 0.0
    try:
        while clock.is_playing:
            clock.tick()
            now = time.monotonic()
            if now - last_status >= STATUS_EVERY_S:
                last_status = now
                _log_status(session)
            time.sleep(tick_interval)
    except KeyboardInterrupt:
        clock.pause()
        logger.info("Interrupted")

    _log_status(session)
    for trip_id, metrics in session.metrics().items():
        logger.info(f"{trip_id}: {build_metrics_response(metrics).model_dump_json()}")
    for vehicle_id, status in session.vehicle_statuses().items():
        logger.info(f"{vehicle_id}: {build_vehicle_response(status).model_dump_json()}")


def _log_status(session: ReplaySession) -> None:
    stats = build_statistics_response(session.statistics())
    logger.info(
        f"{stats.progress * 100:5.1f}% {stats.current_time} "
        f"revealed {stats.revealed_count}/{stats.event_count} at {stats.speed_multiplier}x"
    )


if __name__ == "__main__":
    main()
