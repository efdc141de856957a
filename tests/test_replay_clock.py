"""
Tests for the replay clock.

Every call passes an explicit `now` so no test depends on the wall clock.
"""

import math

import pytest

from fleet_replay.errors import InvalidArgumentError
from fleet_replay.services.event_index import EventIndex
from fleet_replay.services.replay_clock import NOTHING_REVEALED, ReplayClock, ReplayState

from conftest import at


def never_called():
    raise AssertionError("time source should not be read")


@pytest.fixture
def clock(index):
    return ReplayClock(index, speed_multiplier=1.0, time_source=never_called)


@pytest.fixture
def completions(clock):
    fired = []
    clock.on_complete(lambda: fired.append(True))
    return fired


class TestInitialState:
    """Tests for a freshly created clock."""

    def test_idle_at_start(self, clock):
        """A new clock is idle at position zero."""
        assert clock.state is ReplayState.IDLE
        assert not clock.is_playing
        assert clock.progress() == 0.0
        assert clock.simulated_elapsed == 0.0
        assert clock.last_revealed_timestamp == NOTHING_REVEALED

    def test_start_position_shows_first_events(self, clock, labels):
        """Position zero already shows the events at the timeline start."""
        assert labels(clock.revealed_events()) == [("A", 0.0)]
        assert clock.statistics().revealed_count == 1
        assert clock.last_revealed_timestamp == NOTHING_REVEALED

    def test_tick_while_idle_reveals_nothing(self, clock):
        """Ticks before play advance nothing."""
        assert clock.tick(now=100.0) == []
        assert clock.simulated_elapsed == 0.0

    def test_time_source_used_when_now_omitted(self, index):
        """The injected time source drives ticks without an explicit now."""
        times = iter([100.0, 107.0])
        clock = ReplayClock(index, time_source=lambda: next(times))
        clock.play()
        clock.tick()
        assert clock.simulated_elapsed == pytest.approx(7.0)


class TestPlayback:
    """Tests for play and tick."""

    def test_tick_reveals_prefix(self, clock, labels):
        """A tick reveals every event up to the new position."""
        clock.play(now=0.0)
        revealed = clock.tick(now=15.0)
        assert labels(revealed) == [("A", 0.0), ("B", 5.0), ("A", 10.0), ("B", 15.0)]

    def test_events_revealed_once(self, clock, labels):
        """An event is delivered by exactly one tick."""
        clock.play(now=0.0)
        clock.tick(now=15.0)
        assert clock.tick(now=15.0) == []
        assert labels(clock.tick(now=19.0)) == []
        assert labels(clock.tick(now=20.0)) == [("A", 20.0)]

    def test_listeners_see_tick_events_in_order(self, clock):
        """Event listeners get the tick's batch in order."""
        seen = []
        clock.on_event(seen.append)
        clock.play(now=0.0)
        revealed = clock.tick(now=12.0)
        assert seen == revealed

    def test_play_while_playing_keeps_anchor(self, clock):
        """Calling play again does not restart the clock."""
        clock.play(now=0.0)
        clock.play(now=5.0)
        clock.tick(now=10.0)
        assert clock.simulated_elapsed == pytest.approx(10.0)

    def test_earlier_now_never_moves_backwards(self, clock):
        """A wall time earlier than the last tick does not rewind."""
        clock.play(now=0.0)
        clock.tick(now=10.0)
        assert clock.tick(now=5.0) == []
        assert clock.simulated_elapsed == pytest.approx(10.0)

    def test_revealed_set_only_grows(self, clock):
        """The revealed prefix only grows while playing."""
        clock.play(now=0.0)
        previous = []
        for now in [1.0, 4.0, 5.0, 11.0, 16.0, 20.0, 25.0]:
            clock.tick(now=now)
            current = clock.revealed_events()
            assert current[: len(previous)] == previous
            previous = current
        assert len(previous) == 5

    def test_same_ticks_same_sequence(self, index):
        """Identical tick times deliver identical sequences."""
        def run():
            clock = ReplayClock(index, time_source=never_called)
            seen = []
            clock.on_event(seen.append)
            clock.play(now=0.0)
            for now in [0.5, 3.0, 9.0, 14.0, 21.0]:
                clock.tick(now=now)
            return seen

        assert run() == run()

    def test_tick_cadence_does_not_matter(self, index):
        """Many small ticks reveal the same as one large tick."""
        coarse = ReplayClock(index, time_source=never_called)
        fine = ReplayClock(index, time_source=never_called)
        coarse.play(now=0.0)
        fine.play(now=0.0)

        coarse.tick(now=12.0)
        for i in range(1, 121):
            fine.tick(now=i * 0.1)

        assert coarse.revealed_events() == fine.revealed_events()


class TestSpeed:
    """Tests for the speed multiplier."""

    def test_elapsed_scales_with_speed(self, index):
        """Simulated time advances at the speed multiplier."""
        fast = ReplayClock(index, speed_multiplier=2.0, time_source=never_called)
        slow = ReplayClock(index, speed_multiplier=1.0, time_source=never_called)
        fast.play(now=0.0)
        slow.play(now=0.0)

        fast_events = fast.tick(now=5.0)
        slow_events = slow.tick(now=10.0)

        assert fast.simulated_elapsed == pytest.approx(10.0)
        assert fast_events == slow_events

    def test_speed_change_does_not_jump(self, clock):
        """Changing speed keeps the current position."""
        clock.play(now=0.0)
        clock.tick(now=4.0)
        clock.set_speed_multiplier(5.0, now=6.0)
        assert clock.simulated_elapsed == pytest.approx(6.0)

        clock.tick(now=6.0)
        assert clock.simulated_elapsed == pytest.approx(6.0)
        clock.tick(now=8.0)
        assert clock.simulated_elapsed == pytest.approx(16.0)

    def test_speed_change_while_paused(self, clock):
        """A speed set while paused applies after resume."""
        clock.play(now=0.0)
        clock.pause(now=4.0)
        clock.set_speed_multiplier(2.0)
        clock.play(now=10.0)
        clock.tick(now=12.0)
        assert clock.simulated_elapsed == pytest.approx(8.0)

    @pytest.mark.parametrize("value", [0, -1.0, math.nan, math.inf, "2", True, None])
    def test_invalid_speed_rejected(self, clock, value):
        """Invalid multipliers are rejected and leave the clock untouched."""
        clock.play(now=0.0)
        clock.tick(now=3.0)

        with pytest.raises(InvalidArgumentError):
            clock.set_speed_multiplier(value, now=4.0)

        assert clock.speed_multiplier == 1.0
        assert clock.is_playing
        assert clock.simulated_elapsed == pytest.approx(3.0)

    def test_invalid_initial_speed(self, index):
        """The constructor validates the multiplier too."""
        with pytest.raises(InvalidArgumentError):
            ReplayClock(index, speed_multiplier=0)


class TestPause:
    """Tests for pause and resume."""

    def test_pause_freezes_position(self, clock):
        """Paused clocks ignore ticks."""
        clock.play(now=0.0)
        clock.pause(now=7.0)
        assert clock.state is ReplayState.PAUSED
        assert clock.simulated_elapsed == pytest.approx(7.0)

        assert clock.tick(now=50.0) == []
        assert clock.simulated_elapsed == pytest.approx(7.0)

    def test_resume_continues_from_pause(self, index):
        """Pausing costs no simulated time."""
        interrupted = ReplayClock(index, time_source=never_called)
        interrupted.play(now=0.0)
        interrupted.tick(now=4.0)
        interrupted.pause(now=4.0)
        interrupted.play(now=100.0)
        interrupted.tick(now=106.0)

        straight = ReplayClock(index, time_source=never_called)
        straight.play(now=0.0)
        straight.tick(now=10.0)

        assert interrupted.simulated_elapsed == pytest.approx(straight.simulated_elapsed)
        assert interrupted.revealed_events() == straight.revealed_events()

    def test_pause_when_idle_is_noop(self, clock):
        """Pausing an idle clock keeps it idle."""
        clock.pause(now=5.0)
        assert clock.state is ReplayState.IDLE


class TestSeek:
    """Tests for seeking."""

    def test_seek_sets_position(self, clock, labels):
        """Seeking moves to a fraction of the timeline."""
        clock.seek(0.5)
        assert clock.simulated_elapsed == pytest.approx(10.0)
        assert clock.progress() == pytest.approx(0.5)
        assert labels(clock.revealed_events()) == [("A", 0.0), ("B", 5.0), ("A", 10.0)]

    @pytest.mark.parametrize("p", [0.0, 0.25, 1 / 3, 0.5, 0.99, 1.0])
    def test_seek_then_progress(self, clock, p):
        """progress reports the fraction that was sought."""
        clock.seek(p)
        assert clock.progress() == pytest.approx(p)

    def test_seek_while_playing_rereveals_prefix(self, clock, labels):
        """After a seek the next tick re-delivers the prefix."""
        clock.play(now=0.0)
        assert len(clock.tick(now=15.0)) == 4

        clock.seek(0.5, now=15.0)
        assert clock.last_revealed_timestamp == NOTHING_REVEALED
        assert labels(clock.tick(now=15.0)) == [("A", 0.0), ("B", 5.0), ("A", 10.0)]

    def test_seek_keeps_state(self, clock):
        """Seeking does not change the play state."""
        clock.seek(0.3)
        assert clock.state is ReplayState.IDLE

        clock.play(now=0.0)
        clock.seek(0.3, now=1.0)
        assert clock.is_playing

    @pytest.mark.parametrize("value", [-0.1, 1.1, math.nan, None, "0.5", True])
    def test_invalid_seek_rejected(self, clock, value):
        """Out-of-range positions are rejected without side effects."""
        clock.play(now=0.0)
        clock.tick(now=6.0)
        before = clock.revealed_events()

        with pytest.raises(InvalidArgumentError):
            clock.seek(value, now=6.0)

        assert clock.simulated_elapsed == pytest.approx(6.0)
        assert clock.revealed_events() == before
        assert clock.tick(now=6.0) == []

    def test_seek_does_not_fire_completion(self, clock, completions):
        """Seeking to the end does not signal completion."""
        clock.seek(1.0)
        assert completions == []


class TestCompletion:
    """Tests for the end-of-stream signal."""

    def test_completion_fires_once(self, clock, completions):
        """Completion fires once and pauses the clock at the end."""
        clock.play(now=0.0)
        clock.tick(now=20.0)
        clock.tick(now=30.0)
        clock.play(now=40.0)
        clock.tick(now=50.0)

        assert completions == [True]
        assert clock.state is ReplayState.PAUSED
        assert clock.progress() == 1.0

    def test_completion_after_final_batch(self, clock):
        """Completion follows the last event batch."""
        order = []
        clock.on_event(lambda e: order.append("event"))
        clock.on_complete(lambda: order.append("complete"))
        clock.play(now=0.0)
        clock.tick(now=100.0)
        assert order == ["event"] * 5 + ["complete"]

    def test_seek_back_allows_another_completion(self, clock, completions):
        """Seeking back lets the replay complete again."""
        clock.play(now=0.0)
        clock.tick(now=20.0)
        clock.seek(0.0)
        clock.play(now=100.0)
        clock.tick(now=120.0)
        assert completions == [True, True]

    def test_seek_to_end_then_play_completes(self, clock, completions):
        """Playing from the end reveals everything and completes."""
        clock.seek(1.0)
        clock.play(now=0.0)
        revealed = clock.tick(now=0.0)
        assert len(revealed) == 5
        assert completions == [True]

    def test_single_event_stream_completes_on_play(self):
        """A zero-length timeline completes as soon as it plays."""
        index = EventIndex({"T": [{"timestamp": at(0), "event_type": "trip_started"}]})
        clock = ReplayClock(index, time_source=never_called)
        seen, done = [], []
        clock.on_event(seen.append)
        clock.on_complete(lambda: done.append(True))

        clock.play(now=0.0)

        assert len(seen) == 1
        assert done == [True]
        assert clock.progress() == 0.0
        assert not clock.is_playing

    def test_empty_stream(self):
        """An empty timeline completes on play with no current time."""
        clock = ReplayClock(EventIndex({}), time_source=never_called)
        done = []
        clock.on_complete(lambda: done.append(True))
        clock.play(now=0.0)
        assert done == [True]
        assert clock.statistics().current_time is None


class TestListeners:
    """Tests for observer handling."""

    def test_failing_listener_is_isolated(self, clock, caplog):
        """A raising listener is logged and others still run."""
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        clock.on_event(broken)
        clock.on_event(seen.append)
        clock.play(now=0.0)
        revealed = clock.tick(now=20.0)

        assert len(revealed) == 5
        assert seen == revealed
        assert clock.state is ReplayState.PAUSED
        assert "boom" in caplog.text

    def test_failing_completion_listener(self, clock):
        """A raising completion listener does not stop the rest."""
        done = []
        clock.on_complete(lambda: 1 / 0)
        clock.on_complete(lambda: done.append(True))
        clock.play(now=0.0)
        clock.tick(now=20.0)
        assert done == [True]

    def test_unsubscribe(self, clock):
        """Unsubscribing stops delivery and is idempotent."""
        seen = []
        unsubscribe = clock.on_event(seen.append)
        clock.play(now=0.0)
        clock.tick(now=5.0)
        unsubscribe()
        unsubscribe()
        clock.tick(now=20.0)
        assert len(seen) == 2

    def test_clocks_do_not_share_listeners(self, index):
        """Listeners belong to one clock."""
        first = ReplayClock(index, time_source=never_called)
        second = ReplayClock(index, time_source=never_called)
        seen = []
        first.on_event(seen.append)

        second.play(now=0.0)
        second.tick(now=20.0)
        assert seen == []


class TestResetAndStatistics:
    """Tests for reset and status reporting."""

    def test_reset(self, clock, completions):
        """Reset returns to idle and re-arms completion."""
        clock.play(now=0.0)
        clock.tick(now=20.0)
        clock.reset()

        assert clock.state is ReplayState.IDLE
        assert clock.simulated_elapsed == 0.0
        assert clock.last_revealed_timestamp == NOTHING_REVEALED

        clock.play(now=0.0)
        clock.tick(now=20.0)
        assert completions == [True, True]

    def test_statistics(self, clock, index):
        """Statistics describe the current position."""
        clock.play(now=0.0)
        clock.tick(now=10.0)
        stats = clock.statistics()

        assert stats.progress == pytest.approx(0.5)
        assert stats.relative_time == pytest.approx(10.0)
        assert stats.total_duration == pytest.approx(20.0)
        assert stats.event_count == 5
        assert stats.trip_count == 2
        assert stats.revealed_count == 3
        assert stats.is_playing
        assert stats.state is ReplayState.PLAYING
        assert stats.current_time.timestamp() == pytest.approx(index.min_timestamp + 10.0)
