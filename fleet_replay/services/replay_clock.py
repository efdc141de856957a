"""
Replay clock - maps wall-clock time onto the indexed event timeline.

The host drives playback by calling tick(now) on whatever cadence it likes;
the clock never schedules anything itself. Every time-dependent call accepts
an explicit `now` (seconds) so tests can feed synthetic times; when omitted
the injected time source is read.

    simulated_elapsed = (now - anchor) * speed_multiplier

The anchor is recomputed on play, seek and speed changes so that the
visible cutoff never jumps.
"""

import logging
import math
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Callable, Optional

from fleet_replay.errors import InvalidArgumentError
from fleet_replay.models.events import TripEvent
from fleet_replay.services.event_index import EventIndex
from fleet_replay.services.observers import ListenerRegistry, Unsubscribe


logger = logging.getLogger(__name__)


DEFAULT_SPEED_MULTIPLIER = float(os.getenv("FLEET_REPLAY_SPEED", "1.0"))

# Below every real timestamp; forces the next tick to re-reveal the prefix
NOTHING_REVEALED = -math.inf

EventListener = Callable[[TripEvent], None]
CompleteListener = Callable[[], None]


class ReplayState(str, Enum):
    """Transport state of a replay clock."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class ReplayStatistics:
    """Point-in-time view of the replay for status displays."""

    progress: float
    current_time: Optional[datetime]
    relative_time: float
    total_duration: float
    event_count: int
    trip_count: int
    revealed_count: int
    speed_multiplier: float
    is_playing: bool
    state: ReplayState
    min_timestamp: Optional[datetime]
    max_timestamp: Optional[datetime]


class ReplayClock:
    """
    Virtual playback clock over an EventIndex.

    Single-writer: play, pause, tick, seek, set_speed_multiplier and reset
    must be called sequentially from one thread of control.
    """

    def __init__(
        self,
        index: EventIndex,
        speed_multiplier: float = DEFAULT_SPEED_MULTIPLIER,
        time_source: Callable[[], float] = time.monotonic,
    ):
        _validate_speed(speed_multiplier)

        self._index = index
        self._speed = float(speed_multiplier)
        self._time_source = time_source

        self._state = ReplayState.IDLE
        self._elapsed = 0.0
        self._anchor = 0.0
        self._last_revealed = NOTHING_REVEALED
        self._completion_signalled = False

        self._event_listeners: ListenerRegistry = ListenerRegistry("event")
        self._complete_listeners: ListenerRegistry = ListenerRegistry("completion")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def index(self) -> EventIndex:
        return self._index

    @property
    def state(self) -> ReplayState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is ReplayState.PLAYING

    @property
    def speed_multiplier(self) -> float:
        return self._speed

    @property
    def simulated_elapsed(self) -> float:
        """Seconds of timeline covered so far (0 = at min_timestamp)."""
        return self._elapsed

    @property
    def last_revealed_timestamp(self) -> float:
        return self._last_revealed

    @property
    def cutoff_timestamp(self) -> float:
        """Absolute epoch seconds up to which events are revealed."""
        if self._elapsed >= self._index.total_duration:
            return self._index.max_timestamp
        return self._index.min_timestamp + self._elapsed

    def progress(self) -> float:
        """Fraction of the timeline covered, clamped to [0, 1]."""
        total = self._index.total_duration
        if total <= 0:
            return 0.0
        return min(max(self._elapsed / total, 0.0), 1.0)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self, now: Optional[float] = None) -> None:
        """Start or resume playback without moving the current position."""
        if self._state is ReplayState.PLAYING:
            return

        now = self._now(now)
        self._anchor = now - self._elapsed / self._speed
        self._state = ReplayState.PLAYING
        logger.info(f"Replay playing at {self._speed}x from {self._elapsed:.1f}s")

        if self._index.total_duration <= 0:
            # Nothing to advance through: reveal whatever exists and finish
            self.tick(now)

    def pause(self, now: Optional[float] = None) -> None:
        """Freeze playback at the current computed position."""
        if self._state is not ReplayState.PLAYING:
            return

        self._elapsed = self._elapsed_at(self._now(now))
        self._state = ReplayState.PAUSED
        logger.info(f"Replay paused at {self._elapsed:.1f}s")

    def tick(self, now: Optional[float] = None) -> list[TripEvent]:
        """
        Advance playback to `now` and return the newly revealed events.

        Event listeners are notified for each returned event, in order. When
        the end of the timeline is reached the clock pauses itself after the
        final batch and completion listeners fire (once per play-through).
        """
        if self._state is not ReplayState.PLAYING:
            return []

        self._elapsed = self._elapsed_at(self._now(now))
        revealed = self._index.events_between(self._last_revealed, self.cutoff_timestamp)
        if revealed:
            self._last_revealed = revealed[-1].epoch_s
            for event in revealed:
                self._event_listeners.emit(event)

        if self._elapsed >= self._index.total_duration:
            self._state = ReplayState.PAUSED
            if not self._completion_signalled:
                self._completion_signalled = True
                logger.info("Replay complete")
                self._complete_listeners.emit()

        return revealed

    def seek(self, progress: float, now: Optional[float] = None) -> None:
        """
        Jump to a fraction of the timeline.

        Previously revealed events after the new position are forgotten and
        everything up to it is revealed again by the next tick.

        Raises:
            InvalidArgumentError: If progress is not a number in [0, 1]
        """
        if (
            not isinstance(progress, Real)
            or isinstance(progress, bool)
            or math.isnan(progress)
            or not 0.0 <= progress <= 1.0
        ):
            raise InvalidArgumentError(f"Seek progress must be within [0, 1], got {progress!r}")

        self._elapsed = self._index.total_duration * float(progress)
        self._last_revealed = NOTHING_REVEALED
        self._completion_signalled = False
        if self._state is ReplayState.PLAYING:
            self._anchor = self._now(now) - self._elapsed / self._speed
        logger.info(f"Replay seek to {float(progress):.3f} ({self._elapsed:.1f}s)")

    def set_speed_multiplier(self, value: float, now: Optional[float] = None) -> None:
        """
        Change the playback rate without moving the current position.

        Raises:
            InvalidArgumentError: If value is not a positive finite number
        """
        _validate_speed(value)

        if self._state is ReplayState.PLAYING:
            now = self._now(now)
            self._elapsed = self._elapsed_at(now)
            self._speed = float(value)
            self._anchor = now - self._elapsed / self._speed
        else:
            self._speed = float(value)
        logger.info(f"Replay speed set to {self._speed}x")

    def reset(self) -> None:
        """Stop playback and rewind to the start of the timeline."""
        self._state = ReplayState.IDLE
        self._elapsed = 0.0
        self._anchor = 0.0
        self._last_revealed = NOTHING_REVEALED
        self._completion_signalled = False
        logger.info("Replay reset")

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def on_event(self, listener: EventListener) -> Unsubscribe:
        """Subscribe to per-event notifications. Returns an unsubscribe handle."""
        return self._event_listeners.subscribe(listener)

    def on_complete(self, listener: CompleteListener) -> Unsubscribe:
        """Subscribe to the end-of-stream notification. Returns an unsubscribe handle."""
        return self._complete_listeners.subscribe(listener)

    def revealed_events(self) -> list[TripEvent]:
        """All events at or before the current position, globally ordered."""
        return self._index.events_up_to(self._elapsed)

    def statistics(self) -> ReplayStatistics:
        index = self._index
        empty = index.is_empty
        return ReplayStatistics(
            progress=self.progress(),
            current_time=None if empty else _to_datetime(self.cutoff_timestamp),
            relative_time=self._elapsed,
            total_duration=index.total_duration,
            event_count=index.event_count,
            trip_count=index.trip_count,
            revealed_count=index.count_up_to(self._elapsed),
            speed_multiplier=self._speed,
            is_playing=self.is_playing,
            state=self._state,
            min_timestamp=None if empty else _to_datetime(index.min_timestamp),
            max_timestamp=None if empty else _to_datetime(index.max_timestamp),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self, now: Optional[float]) -> float:
        return self._time_source() if now is None else float(now)

    def _elapsed_at(self, now: float) -> float:
        """Elapsed position at `now`, never behind the current one nor past the end."""
        elapsed = (now - self._anchor) * self._speed
        return min(max(elapsed, self._elapsed), self._index.total_duration)


def _validate_speed(value: float) -> None:
    if (
        not isinstance(value, Real)
        or isinstance(value, bool)
        or not math.isfinite(value)
        or value <= 0
    ):
        raise InvalidArgumentError(f"Speed multiplier must be a positive number, got {value!r}")


def _to_datetime(epoch_s: float) -> datetime:
    return datetime.fromtimestamp(epoch_s, tz=timezone.utc)
