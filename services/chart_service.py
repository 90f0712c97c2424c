"""
Chart Data Service

Builds everything a chart consumer needs from a normalized telemetry series:
- Stage ranges for background overlays, with a stable color per stage name
- Profile target curves merged onto the shot timeline (interpolated)
- The progressively revealed "replay view" of the data
- Fixed axis domains so a replay never rescales the chart
"""

import math
from bisect import bisect_right
from typing import Iterable, Optional

from config import (
    STAGE_COLORS, STAGE_BORDER_COLORS,
    PRESSURE_AXIS_FLOOR, FLOW_AXIS_FLOOR, WEIGHT_AXIS_FLOOR,
)

TARGET_AXES = ("target_pressure", "target_flow")


# ============================================================================
# Stage Segmentation
# ============================================================================

def get_stage_ranges(series: list[dict], palette_size: int = len(STAGE_COLORS)) -> list[dict]:
    """Split a series into contiguous stage ranges.

    A range closes at the time of the first sample carrying a different
    label (including no label) and the last range closes at the final
    sample. Unlabelled stretches produce no range. Each stage name gets
    `color_index = distinct names seen so far % palette_size` the first
    time it appears and keeps it if the stage recurs later in the shot.

    Returns:
        [{name, start_time, end_time, color_index}, ...] in time order
    """
    ranges = []
    color_map: dict[str, int] = {}
    current_stage: Optional[str] = None
    stage_start = 0.0

    def close(end_time: float):
        if current_stage is not None:
            ranges.append({
                "name": current_stage,
                "start_time": stage_start,
                "end_time": end_time,
                "color_index": color_map[current_stage],
            })

    for index, sample in enumerate(series):
        stage = sample.get("stage")
        if index == 0 or stage != current_stage:
            close(sample["time"])
            current_stage = stage
            stage_start = sample["time"]
            if stage is not None and stage not in color_map:
                color_map[stage] = len(color_map) % palette_size

        if index == len(series) - 1:
            close(sample["time"])

    return ranges


def attach_stage_colors(ranges: list[dict]) -> list[dict]:
    """Return copies of the ranges with their fill and border colors."""
    return [
        {
            **stage,
            "fill": STAGE_COLORS[stage["color_index"] % len(STAGE_COLORS)],
            "border": STAGE_BORDER_COLORS[stage["color_index"] % len(STAGE_BORDER_COLORS)],
        }
        for stage in ranges
    ]


# ============================================================================
# Target Curve Interpolation
# ============================================================================

def interpolate_clamped(times: list[float], values: list[float], t: float) -> float:
    """Linearly interpolate values at time t, clamping to the edge values.

    `times` must be sorted and non-empty. Two control points sharing a time
    resolve to the earlier point's value.
    """
    i = bisect_right(times, t)
    if i == 0:
        return values[0]
    if i == len(times):
        return values[-1]

    before_time, after_time = times[i - 1], times[i]
    before_value, after_value = values[i - 1], values[i]
    time_diff = after_time - before_time
    if time_diff == 0:
        return before_value
    return before_value + (t - before_time) / time_diff * (after_value - before_value)


def _axis_points(target_curves: list[dict], axis: str) -> tuple[list[float], list[float]]:
    points = sorted(
        (point for point in target_curves if point.get(axis) is not None),
        key=lambda point: point["time"],
    )
    return [point["time"] for point in points], [point[axis] for point in points]


def merge_with_target_curves(series: list[dict], target_curves: Optional[list[dict]]) -> list[dict]:
    """Attach interpolated profile targets to every sample of a series.

    Each axis (pressure, flow) is interpolated on its own since a profile
    may only target one of them. The timeline is never changed: the result
    has one sample per input sample, in the same order.

    Args:
        series: Normalized telemetry series
        target_curves: Profile target points [{time, target_pressure?, target_flow?, stage_name}]

    Returns:
        The input series when there are no target points, otherwise new
        sample dicts with "target_pressure" and "target_flow" added
    """
    if not target_curves:
        return series

    axes = {axis: _axis_points(target_curves, axis) for axis in TARGET_AXES}

    merged = []
    for sample in series:
        point = dict(sample)
        for axis, (times, values) in axes.items():
            point[axis] = interpolate_clamped(times, values, sample["time"]) if times else None
        merged.append(point)
    return merged


# ============================================================================
# Replay View
# ============================================================================

def is_replay_in_progress(current_time: float, max_time: float) -> bool:
    """A replay only hides data strictly between the start and the end."""
    return 0 < current_time < max_time


def get_replay_view(
    chart_data: list[dict],
    stage_ranges: list[dict],
    current_time: float,
    max_time: float,
) -> tuple[list[dict], list[dict]]:
    """Return the part of the chart revealed at current_time.

    Stages that have not started yet are hidden and the running stage is
    cut at current_time. At either end of the timeline everything shows.
    """
    if not is_replay_in_progress(current_time, max_time):
        return chart_data, stage_ranges

    visible_points = [point for point in chart_data if point["time"] <= current_time]
    visible_ranges = [
        {**stage, "end_time": min(stage["end_time"], current_time)}
        for stage in stage_ranges
        if stage["start_time"] <= current_time
    ]
    return visible_points, visible_ranges


# ============================================================================
# Axis Domains
# ============================================================================

def _peak(points: Iterable[dict], keys: Iterable[str], floor: float) -> float:
    keys = tuple(keys)
    peak = floor
    for point in points:
        for key in keys:
            value = point.get(key)
            if value is not None and value > peak:
                peak = value
    return peak


def get_axis_domains(
    points: list[dict],
    pressure_keys: Iterable[str] = ("pressure", "target_pressure"),
    flow_keys: Iterable[str] = ("flow", "gravimetric_flow", "target_flow"),
    weight_keys: Iterable[str] = ("weight",),
) -> dict:
    """Compute fixed axis maxima from the full data set.

    Left axis carries pressure and flow, right axis carries weight; both
    get 10% headroom above the peak (or above the floor for quiet shots).
    """
    max_pressure = _peak(points, pressure_keys, PRESSURE_AXIS_FLOOR)
    max_flow = _peak(points, flow_keys, FLOW_AXIS_FLOOR)
    max_weight = _peak(points, weight_keys, WEIGHT_AXIS_FLOOR)
    return {
        "left": math.ceil(max(max_pressure, max_flow) * 1.1),
        "right": math.ceil(max_weight * 1.1),
    }
