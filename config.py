"""Configuration management for the shot replay server.

This module centralizes all configuration constants and environment variables
for easier management and testing.

Usage:
    from config import config, REPLAY_FRAME_INTERVAL, SPEED_OPTIONS

    # Access via config object
    log_dir = config.LOG_DIR

    # Or use exported constants
    interval = REPLAY_FRAME_INTERVAL

Attributes:
    TEST_MODE: Boolean flag for test environment
    LOG_DIR: Path to log directory
    LOG_LEVEL: Minimum level for the application logger
    REPLAY_FRAME_INTERVAL: Seconds between replay frames pushed to clients (default: 0.1 = 10 FPS)
    SPEED_OPTIONS: Playback speed multipliers offered to the UI
    DEFAULT_SPEED: Playback speed of a fresh replay clock
    STAGE_COLORS: Background fill palette for stage overlays
    STAGE_BORDER_COLORS: Border palette for stage overlays (same order as STAGE_COLORS)
    CHART_COLORS: Line colors for the telemetry and target curves
    PRESSURE_AXIS_FLOOR / FLOW_AXIS_FLOOR / WEIGHT_AXIS_FLOOR: Minimum chart axis maxima
"""

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, ignoring malformed values."""
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    """Central configuration for the shot replay server."""

    # Test Mode
    TEST_MODE = os.environ.get("TEST_MODE") == "true"

    # Logging
    LOG_DIR = Path(os.environ.get("LOG_DIR", "/app/logs"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Replay Settings
    REPLAY_FRAME_INTERVAL = _env_float("REPLAY_FRAME_INTERVAL", 0.1)
    SPEED_OPTIONS = [0.5, 1, 2, 3, 5]
    DEFAULT_SPEED = 1.0

    # Chart Palettes (stage overlays match the tag colors of the web app)
    STAGE_COLORS = [
        "rgba(239, 68, 68, 0.15)",   # Red
        "rgba(249, 115, 22, 0.15)",  # Orange
        "rgba(234, 179, 8, 0.15)",   # Yellow
        "rgba(34, 197, 94, 0.15)",   # Green
        "rgba(59, 130, 246, 0.15)",  # Blue
        "rgba(168, 85, 247, 0.15)",  # Purple
        "rgba(236, 72, 153, 0.15)",  # Pink
        "rgba(20, 184, 166, 0.15)",  # Teal
    ]
    STAGE_BORDER_COLORS = [
        "rgba(239, 68, 68, 0.4)",
        "rgba(249, 115, 22, 0.4)",
        "rgba(234, 179, 8, 0.4)",
        "rgba(34, 197, 94, 0.4)",
        "rgba(59, 130, 246, 0.4)",
        "rgba(168, 85, 247, 0.4)",
        "rgba(236, 72, 153, 0.4)",
        "rgba(20, 184, 166, 0.4)",
    ]
    CHART_COLORS = {
        "pressure": "#4ade80",
        "flow": "#67e8f9",
        "weight": "#fbbf24",
        "gravimetric_flow": "#c2855a",
        "target_pressure": "#86efac",
        "target_flow": "#a5f3fc",
    }

    # Axis floors keep the chart scale fixed while a replay reveals data
    PRESSURE_AXIS_FLOOR = 12
    FLOW_AXIS_FLOOR = 8
    WEIGHT_AXIS_FLOOR = 50


# Convenience access to config
config = Config()


# Export commonly used constants
TEST_MODE = config.TEST_MODE
LOG_DIR = config.LOG_DIR
LOG_LEVEL = config.LOG_LEVEL
REPLAY_FRAME_INTERVAL = config.REPLAY_FRAME_INTERVAL
SPEED_OPTIONS = config.SPEED_OPTIONS
DEFAULT_SPEED = config.DEFAULT_SPEED
STAGE_COLORS = config.STAGE_COLORS
STAGE_BORDER_COLORS = config.STAGE_BORDER_COLORS
CHART_COLORS = config.CHART_COLORS
PRESSURE_AXIS_FLOOR = config.PRESSURE_AXIS_FLOOR
FLOW_AXIS_FLOOR = config.FLOW_AXIS_FLOOR
WEIGHT_AXIS_FLOOR = config.WEIGHT_AXIS_FLOOR
