"""
Replay Service

A replay clock plays a shot back on a simulated timeline. It advances only
when its scheduler fires a frame callback, so the advance-and-clamp logic is
independent of any real frame source:

    scheduler.request_next_tick(callback) -> handle   # handle.cancel()
    callback(timestamp)                               # monotonic seconds

Each frame advances the clock by the wall-clock time since the previous
frame times the speed multiplier, so dropped or late frames only make the
steps larger. Frames of one clock are strictly sequential: the next frame is
requested only after the current one has been handled.

Replay sessions pair a clock with the chart payload it reveals. A shot
replay and a comparison replay each own their own clock.
"""

import asyncio
import math
from typing import Callable, Optional

from config import DEFAULT_SPEED, REPLAY_FRAME_INTERVAL
from logging_config import get_logger
from services.analysis_service import build_shot_chart
from services.chart_service import get_replay_view
from services.comparison_service import compare_shots

logger = get_logger()


class AsyncioFrameScheduler:
    """Frame scheduler backed by the running asyncio event loop."""

    def __init__(self, interval: float = REPLAY_FRAME_INTERVAL, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.interval = interval
        self._loop = loop

    def request_next_tick(self, callback: Callable[[float], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.interval, lambda: callback(loop.time()))


class ReplayClock:
    """Monotonic, speed-scaled playhead over [0, max_time].

    States: stopped at start, playing, paused, stopped at end.
    current_time never leaves [0, max_time]; reaching max_time stops play.
    """

    def __init__(
        self,
        scheduler,
        max_time: float = 0.0,
        speed_multiplier: float = DEFAULT_SPEED,
        on_frame: Optional[Callable[["ReplayClock"], None]] = None,
        name: str = "replay",
    ):
        self._scheduler = scheduler
        self._on_frame = on_frame
        self.name = name
        self.speed_multiplier = self._validate_speed(speed_multiplier)
        self.max_time = max(self._finite(max_time, "Replay length"), 0.0)
        self.current_time = 0.0
        self.is_playing = False

        self._handle = None
        self._run_id = 0
        self._last_frame_time: Optional[float] = None

    @staticmethod
    def _validate_speed(multiplier) -> float:
        try:
            value = float(multiplier)
        except (TypeError, ValueError):
            raise ValueError(f"Playback speed must be a number, got {multiplier!r}")
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"Playback speed must be positive, got {multiplier!r}")
        return value

    @staticmethod
    def _finite(value, what: str) -> float:
        try:
            result = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{what} must be a number, got {value!r}")
        if not math.isfinite(result):
            raise ValueError(f"{what} must be finite, got {value!r}")
        return result

    @property
    def state(self) -> dict:
        return {
            "current_time": self.current_time,
            "max_time": self.max_time,
            "is_playing": self.is_playing,
            "speed_multiplier": self.speed_multiplier,
        }

    @property
    def progress(self) -> float:
        """Fraction of the timeline already played, for scrub bars."""
        return self.current_time / self.max_time if self.max_time > 0 else 0.0

    @property
    def has_pending_frame(self) -> bool:
        return self._handle is not None

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    def _request_frame(self, run_id: int):
        self._handle = self._scheduler.request_next_tick(
            lambda timestamp: self._on_tick(run_id, timestamp)
        )

    def _cancel_pending(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        # Invalidates callbacks a scheduler already dispatched
        self._run_id += 1
        self._last_frame_time = None

    def _on_tick(self, run_id: int, timestamp: float):
        if run_id != self._run_id or not self.is_playing:
            logger.warning(
                "Ignoring stale replay frame",
                extra={"clock": self.name, "run_id": run_id, "current_run_id": self._run_id}
            )
            return

        self._handle = None
        if self._last_frame_time is None:
            self._last_frame_time = timestamp
        delta = max(timestamp - self._last_frame_time, 0.0) * self.speed_multiplier
        self._last_frame_time = timestamp

        next_time = self.current_time + delta
        if next_time >= self.max_time:
            self.current_time = self.max_time
            self.is_playing = False
            self._last_frame_time = None
            logger.debug("Replay reached the end", extra={"clock": self.name, "max_time": self.max_time})
        else:
            self.current_time = next_time
            self._request_frame(run_id)

        if self._on_frame is not None:
            self._on_frame(self)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def play(self):
        """Start or resume playback; from the end it starts over."""
        if self.is_playing:
            return
        if self.max_time <= 0:
            logger.debug("Nothing to replay", extra={"clock": self.name})
            return
        if self.current_time >= self.max_time:
            self.current_time = 0.0
        self.is_playing = True
        self._cancel_pending()
        self._request_frame(self._run_id)

    def pause(self):
        self.is_playing = False
        self._cancel_pending()

    def toggle(self):
        """Play/pause button behavior."""
        if self.is_playing:
            self.pause()
        else:
            self.play()

    def restart(self):
        """Rewind to the start without playing."""
        self._cancel_pending()
        self.is_playing = False
        self.current_time = 0.0

    def seek(self, fraction: float):
        """Jump to a fraction of the timeline, keeping the play state."""
        fraction = min(max(self._finite(fraction, "Seek fraction"), 0.0), 1.0)
        self.current_time = fraction * self.max_time

    def set_speed(self, multiplier: float):
        self.speed_multiplier = self._validate_speed(multiplier)

    def load(self, max_time: float):
        """Switch to a new series: cancel pending frames and rewind, keeping the speed."""
        max_time = max(self._finite(max_time, "Replay length"), 0.0)
        self._cancel_pending()
        self.is_playing = False
        self.current_time = 0.0
        self.max_time = max_time

    def close(self):
        self._cancel_pending()
        self.is_playing = False


# ============================================================================
# Replay Sessions
# ============================================================================

class ReplaySession:
    """A replay clock plus the chart payload it reveals."""

    kind = "replay"

    def __init__(self, scheduler, on_frame: Optional[Callable[["ReplaySession"], None]] = None):
        self._on_frame = on_frame
        self.clock = ReplayClock(
            scheduler,
            on_frame=self._handle_frame if on_frame else None,
            name=self.kind,
        )
        self.payload: Optional[dict] = None

    def _handle_frame(self, clock: ReplayClock):
        self._on_frame(self)

    def _load_payload(self, payload: dict):
        # Cancel first so no frame of the previous selection lands on the new one
        self.clock.load(payload["max_time"])
        self.payload = payload

    def _visible(self) -> tuple[list[dict], list[dict]]:
        if self.payload is None:
            return [], []
        return get_replay_view(
            self.payload["chart_data"],
            self.payload.get("stage_ranges", []),
            self.clock.current_time,
            self.clock.max_time,
        )

    def view(self) -> dict:
        chart_data, stage_ranges = self._visible()
        return {
            "kind": self.kind,
            "chart_data": chart_data,
            "stage_ranges": stage_ranges,
            "replay": self.clock.state,
            "progress": self.clock.progress,
        }

    def close(self):
        self.clock.close()


class ShotReplaySession(ReplaySession):
    """Replay of a single shot with its stage overlays and target curves."""

    kind = "shot"

    def select(self, shot_data, target_curves: Optional[list[dict]] = None, profile: Optional[dict] = None) -> dict:
        payload = build_shot_chart(shot_data, target_curves=target_curves, profile=profile)
        self._load_payload(payload)
        logger.info(
            "Shot replay loaded",
            extra={"sample_count": len(payload["chart_data"]), "max_time": payload["max_time"]}
        )
        return payload

    def view(self) -> dict:
        result = super().view()
        if self.payload is not None:
            result["domains"] = self.payload["domains"]
        return result


class ComparisonReplaySession(ReplaySession):
    """Replay of two shots on one combined timeline."""

    kind = "comparison"

    def select(self, shot_a, shot_b=None, summary_a: Optional[dict] = None, summary_b: Optional[dict] = None) -> dict:
        payload = compare_shots(shot_a, shot_b, summary_a, summary_b)
        self._load_payload(payload)
        logger.info(
            "Comparison replay loaded",
            extra={"point_count": len(payload["chart_data"]), "max_time": payload["max_time"]}
        )
        return payload

    def view(self) -> dict:
        result = super().view()
        if self.payload is not None:
            result["stats"] = self.payload["stats"]
            result["domains"] = self.payload["domains"]
        return result
