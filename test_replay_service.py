"""
Tests for the replay clock and replay sessions.

Frames are driven by hand through the FakeFrameScheduler fixture, so every
test controls exactly when a frame fires and with which timestamp.
"""

import asyncio
import math

import pytest

from services.replay_service import (
    ReplayClock, AsyncioFrameScheduler, ShotReplaySession, ComparisonReplaySession,
)


class TestReplayClockPlayback:
    """Tests for advancing and clamping the playhead."""

    def test_first_frame_does_not_advance(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()

        frame_scheduler.fire(100.0)

        assert clock.current_time == 0.0
        assert clock.is_playing is True
        assert len(frame_scheduler.live) == 1

    def test_advances_by_elapsed_time(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()

        frame_scheduler.fire(100.0)
        frame_scheduler.fire(100.5)
        frame_scheduler.fire(103.0)

        assert clock.current_time == pytest.approx(3.0)

    def test_clamps_and_stops_at_end(self, frame_scheduler):
        """10 wall seconds at 1x: ends exactly at max_time and stops requesting frames."""
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()

        frame_scheduler.fire(0.0)
        frame_scheduler.fire(4.0)
        frame_scheduler.fire(12.0)

        assert clock.current_time == 10
        assert clock.is_playing is False
        assert frame_scheduler.live == []
        assert clock.has_pending_frame is False

    def test_speed_scales_elapsed_time(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=30, speed_multiplier=2)
        clock.play()

        frame_scheduler.fire(0.0)
        frame_scheduler.fire(1.5)

        assert clock.current_time == pytest.approx(3.0)

    def test_backwards_timestamp_does_not_rewind(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()

        frame_scheduler.fire(5.0)
        frame_scheduler.fire(7.0)
        frame_scheduler.fire(6.0)

        assert clock.current_time == pytest.approx(2.0)

    def test_on_frame_called_every_frame(self, frame_scheduler):
        seen = []
        clock = ReplayClock(frame_scheduler, max_time=2, on_frame=lambda c: seen.append(c.current_time))
        clock.play()

        frame_scheduler.fire(0.0)
        frame_scheduler.fire(1.0)
        frame_scheduler.fire(5.0)

        assert seen == [0.0, 1.0, 2.0]

    def test_nothing_to_replay(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=0)

        clock.play()

        assert clock.is_playing is False
        assert frame_scheduler.requests == 0

    def test_play_twice_requests_one_frame(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)

        clock.play()
        clock.play()

        assert len(frame_scheduler.live) == 1


class TestReplayClockControls:
    """Tests for pause, restart, seek, speed and load."""

    @pytest.fixture
    def playing_clock(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=20)
        clock.play()
        frame_scheduler.fire(0.0)
        frame_scheduler.fire(5.0)
        return clock

    def test_pause_keeps_position(self, playing_clock, frame_scheduler):
        playing_clock.pause()

        assert playing_clock.is_playing is False
        assert playing_clock.current_time == pytest.approx(5.0)
        assert frame_scheduler.live == []

    def test_resume_does_not_count_paused_time(self, playing_clock, frame_scheduler):
        playing_clock.pause()
        playing_clock.play()

        frame_scheduler.fire(60.0)
        frame_scheduler.fire(61.0)

        assert playing_clock.current_time == pytest.approx(6.0)

    def test_toggle(self, playing_clock):
        playing_clock.toggle()
        assert playing_clock.is_playing is False

        playing_clock.toggle()
        assert playing_clock.is_playing is True

    def test_restart_rewinds_without_playing(self, playing_clock, frame_scheduler):
        playing_clock.restart()

        assert playing_clock.current_time == 0.0
        assert playing_clock.is_playing is False
        assert frame_scheduler.live == []

    def test_play_at_end_starts_over(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=5)
        clock.play()
        frame_scheduler.fire(0.0)
        frame_scheduler.fire(10.0)
        assert clock.current_time == 5

        clock.play()

        assert clock.current_time == 0.0
        assert clock.is_playing is True

    @pytest.mark.parametrize("fraction,expected", [
        (0.25, 5.0),
        (0, 0.0),
        (1, 20.0),
        (1.5, 20.0),
        (-0.2, 0.0),
    ])
    def test_seek_clamps_fraction(self, playing_clock, fraction, expected):
        playing_clock.seek(fraction)

        assert playing_clock.current_time == pytest.approx(expected)
        assert playing_clock.is_playing is True

    @pytest.mark.parametrize("fraction", ["nan", math.nan, math.inf, "halfway", None])
    def test_seek_rejects_non_finite_fraction(self, playing_clock, fraction):
        with pytest.raises(ValueError):
            playing_clock.seek(fraction)

        assert playing_clock.current_time == pytest.approx(5.0)

    def test_rejected_seek_still_stops_at_end(self, playing_clock, frame_scheduler):
        with pytest.raises(ValueError):
            playing_clock.seek("nan")

        frame_scheduler.fire(30.0)

        assert playing_clock.current_time == 20
        assert playing_clock.is_playing is False
        assert frame_scheduler.live == []

    @pytest.mark.parametrize("max_time", [math.nan, math.inf, "long"])
    def test_non_finite_length_rejected(self, playing_clock, frame_scheduler, max_time):
        with pytest.raises(ValueError):
            playing_clock.load(max_time)
        with pytest.raises(ValueError):
            ReplayClock(frame_scheduler, max_time=max_time)

        assert playing_clock.max_time == 20.0

    def test_seek_while_paused_stays_paused(self, playing_clock):
        playing_clock.pause()

        playing_clock.seek(0.5)

        assert playing_clock.current_time == pytest.approx(10.0)
        assert playing_clock.is_playing is False

    def test_set_speed_applies_to_next_frame(self, playing_clock, frame_scheduler):
        playing_clock.set_speed(3)

        frame_scheduler.fire(6.0)

        assert playing_clock.current_time == pytest.approx(8.0)

    @pytest.mark.parametrize("multiplier", [0, -1, math.nan, math.inf, "fast", None])
    def test_invalid_speed_rejected(self, playing_clock, multiplier):
        with pytest.raises(ValueError):
            playing_clock.set_speed(multiplier)

        assert playing_clock.speed_multiplier == 1.0

    def test_invalid_initial_speed_rejected(self, frame_scheduler):
        with pytest.raises(ValueError):
            ReplayClock(frame_scheduler, max_time=10, speed_multiplier=0)

    def test_load_resets_and_keeps_speed(self, playing_clock, frame_scheduler):
        playing_clock.set_speed(2)

        playing_clock.load(40)

        assert playing_clock.state == {
            "current_time": 0.0,
            "max_time": 40.0,
            "is_playing": False,
            "speed_multiplier": 2.0,
        }
        assert frame_scheduler.live == []

    def test_progress(self, playing_clock):
        assert playing_clock.progress == pytest.approx(0.25)
        playing_clock.load(0)
        assert playing_clock.progress == 0.0


class TestStaleFrames:
    """Frames already dispatched when the clock was stopped must not apply."""

    def test_frame_after_pause_is_ignored(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()
        frame_scheduler.fire(0.0)

        clock.pause()
        frame_scheduler.fire_stale(4.0)

        assert clock.current_time == 0.0
        assert frame_scheduler.live == []

    def test_frame_from_previous_load_is_ignored(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()
        frame_scheduler.fire(0.0)

        clock.load(50)
        clock.play()
        frame_scheduler.fire_stale(8.0)

        # Only the new run's first frame applied, and it never advances
        assert clock.current_time == 0.0
        assert clock.is_playing is True
        assert len(frame_scheduler.live) == 1

    def test_close_cancels_pending_frame(self, frame_scheduler):
        clock = ReplayClock(frame_scheduler, max_time=10)
        clock.play()

        clock.close()

        assert clock.is_playing is False
        assert frame_scheduler.live == []


class TestAsyncioFrameScheduler:
    """Tests for the event-loop backed frame source."""

    def test_replays_to_the_end(self):
        async def run():
            clock = ReplayClock(AsyncioFrameScheduler(interval=0.001), max_time=0.05, speed_multiplier=5)
            clock.play()
            for _ in range(500):
                if not clock.is_playing:
                    break
                await asyncio.sleep(0.01)
            return clock

        clock = asyncio.run(run())

        assert clock.is_playing is False
        assert clock.current_time == 0.05

    def test_pause_cancels_timer(self):
        async def run():
            clock = ReplayClock(AsyncioFrameScheduler(interval=0.01), max_time=10)
            clock.play()
            clock.pause()
            await asyncio.sleep(0.05)
            return clock

        clock = asyncio.run(run())

        assert clock.current_time == 0.0
        assert clock.has_pending_frame is False


class TestReplaySessions:
    """Tests for shot and comparison replay sessions."""

    def test_view_before_selection(self, frame_scheduler):
        view = ShotReplaySession(frame_scheduler).view()

        assert view["kind"] == "shot"
        assert view["chart_data"] == []
        assert view["stage_ranges"] == []
        assert "domains" not in view

    def test_shot_view_reveals_progressively(self, frame_scheduler, nested_shot):
        session = ShotReplaySession(frame_scheduler)
        session.select(nested_shot)

        session.clock.seek(0.5)
        view = session.view()

        assert [p["time"] for p in view["chart_data"]] == [0, 5, 10]
        assert [(r["name"], r["end_time"]) for r in view["stage_ranges"]] == [("Bloom", 10), ("Main", 15)]
        assert view["replay"]["current_time"] == 15
        assert view["progress"] == pytest.approx(0.5)
        assert set(view["domains"]) == {"left", "right"}

    def test_stopped_at_start_shows_everything(self, frame_scheduler, nested_shot):
        session = ShotReplaySession(frame_scheduler)
        session.select(nested_shot)

        assert len(session.view()["chart_data"]) == 5

    def test_new_selection_stops_playback(self, frame_scheduler, nested_shot, log_shot):
        session = ShotReplaySession(frame_scheduler)
        session.select(nested_shot)
        session.clock.play()
        frame_scheduler.fire(0.0)

        session.select(log_shot)

        assert session.clock.is_playing is False
        assert frame_scheduler.live == []
        assert session.view()["stage_ranges"] == []

    def test_sessions_have_independent_clocks(self, frame_scheduler, nested_shot, log_shot):
        shot = ShotReplaySession(frame_scheduler)
        comparison = ComparisonReplaySession(frame_scheduler)
        shot.select(nested_shot)
        comparison.select(nested_shot, log_shot)

        shot.clock.play()
        frame_scheduler.fire(0.0)
        frame_scheduler.fire(4.0)

        assert shot.clock.current_time == pytest.approx(4.0)
        assert comparison.clock.current_time == 0.0
        assert comparison.clock.is_playing is False

    def test_comparison_view_carries_stats(self, frame_scheduler, nested_shot, log_shot):
        session = ComparisonReplaySession(frame_scheduler)
        session.select(nested_shot, log_shot, {"final_weight": 40}, {"final_weight": 36})

        view = session.view()

        assert view["kind"] == "comparison"
        assert view["stats"]["yield_diff"]["diff"] == 4
        assert view["stage_ranges"] == []
        assert view["replay"]["max_time"] == 30

    def test_session_frames_reach_callback(self, frame_scheduler, nested_shot):
        frames = []
        session = ShotReplaySession(frame_scheduler, on_frame=lambda s: frames.append(s.view()["replay"]["current_time"]))
        session.select(nested_shot)
        session.clock.play()

        frame_scheduler.fire(0.0)
        frame_scheduler.fire(10.0)

        assert frames == [0.0, 10.0]
