"""
Pytest configuration and shared fixtures for the shot replay server tests.

This module MUST be loaded before main.py to set up test environment variables.
"""

import os
import sys
import tempfile
import shutil
import pytest

# Set test environment variables BEFORE config/main are imported
os.environ["TEST_MODE"] = "true"

test_log_dir = tempfile.mkdtemp(prefix="shot_replay_test_logs_")
os.environ["LOG_DIR"] = test_log_dir

# Fast frames keep WebSocket replay tests short
os.environ.setdefault("REPLAY_FRAME_INTERVAL", "0.01")

sys.path.insert(0, os.path.dirname(__file__))


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_logs():
    """Clean up the temporary log directory after all tests complete."""
    yield
    shutil.rmtree(test_log_dir, ignore_errors=True)


class FakeFrameHandle:
    """Cancellable handle returned by FakeFrameScheduler."""

    def __init__(self, scheduler, callback):
        self.scheduler = scheduler
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeFrameScheduler:
    """Hand-driven frame scheduler: tests decide when frames fire."""

    def __init__(self):
        self.pending = []
        self.requests = 0

    def request_next_tick(self, callback):
        handle = FakeFrameHandle(self, callback)
        self.pending.append(handle)
        self.requests += 1
        return handle

    @property
    def live(self):
        return [h for h in self.pending if not h.cancelled]

    def fire(self, timestamp: float) -> int:
        """Run every live callback once at the given timestamp."""
        handles, self.pending = self.live, []
        for handle in handles:
            handle.callback(timestamp)
        return len(handles)

    def fire_stale(self, timestamp: float) -> int:
        """Run callbacks even if cancelled, like a frame already in flight."""
        handles, self.pending = self.pending, []
        for handle in handles:
            handle.callback(timestamp)
        return len(handles)


@pytest.fixture
def frame_scheduler():
    return FakeFrameScheduler()


@pytest.fixture
def nested_shot():
    """Shot log in the machine's nested-reading format (times in ms)."""
    return {
        "profile": {"name": "Test Profile"},
        "data": [
            {"time": 0, "status": "Bloom", "shot": {"pressure": 2.0, "flow": 0.5, "weight": 0.0, "gravimetric_flow": 0.0}},
            {"time": 5000, "status": "Bloom", "shot": {"pressure": 3.0, "flow": 1.0, "weight": 2.0, "gravimetric_flow": 0.4}},
            {"time": 10000, "status": "Main", "shot": {"pressure": 9.0, "flow": 2.0, "weight": 10.0, "gravimetric_flow": 1.6}},
            {"time": 20000, "status": "Main", "shot": {"pressure": 8.5, "flow": 2.2, "weight": 28.0, "gravimetric_flow": 1.8}},
            {"time": 30000, "status": "Decline", "shot": {"pressure": 6.0, "flow": 1.8, "weight": 36.0, "gravimetric_flow": 0.8}},
        ]
    }


@pytest.fixture
def parallel_shot():
    """The same shot as nested_shot, as parallel arrays (times in s)."""
    return {
        "data": {
            "time": [0, 5, 10, 20, 30],
            "pressure": [2.0, 3.0, 9.0, 8.5, 6.0],
            "flow": [0.5, 1.0, 2.0, 2.2, 1.8],
            "weight": [0.0, 2.0, 10.0, 28.0, 36.0],
        }
    }


@pytest.fixture
def log_shot():
    """The same shot as nested_shot, as abbreviated log entries."""
    return {
        "log": [
            {"t": 0, "p": 2.0, "f": 0.5, "w": 0.0},
            {"t": 5, "p": 3.0, "f": 1.0, "w": 2.0},
            {"time": 10, "pressure": 9.0, "flow": 2.0, "weight": 10.0},
            {"t": 20, "p": 8.5, "f": 2.2, "w": 28.0},
            {"t": 30, "p": 6.0, "f": 1.8, "w": 36.0},
        ]
    }
