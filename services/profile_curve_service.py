"""
Profile Target Curve Service

Places a profile's intended pressure/flow trajectory on the timeline of an
actual shot so it can be overlaid on the shot chart.

Profiles describe each stage with dynamics points, either over time
(seconds since the stage began) or over weight (grams in the cup). The shot
tells us when each stage actually ran, so the points are stretched onto the
executed stage ranges.
"""

from typing import Any, Optional

from logging_config import get_logger
from services.chart_service import interpolate_clamped
from utils.numeric import safe_float

logger = get_logger()

# Machine cleanup after the shot, never part of a profile
STAGE_STATUS_RETRACTING = "retracting"

AXIS_FOR_STAGE_TYPE = {
    "pressure": "target_pressure",
    "flow": "target_flow",
}


def _normalize_name(name) -> str:
    return str(name).lower().strip() if name else ""


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def resolve_variable(value, variables: list) -> tuple[Any, Optional[str]]:
    """Resolve a variable reference like '$flow_hold' to its actual value.

    Returns:
        Tuple of (resolved_value, variable_name or None if not a variable)
    """
    if not isinstance(value, str) or not value.startswith('$'):
        return value, None

    var_key = value[1:]
    for var in variables:
        if isinstance(var, dict) and var.get("key") == var_key:
            return var.get("value", value), var.get("name", var_key)

    return value, var_key


def _point_value(point: list, variables: list) -> float:
    raw = point[1] if len(point) > 1 else point[0]
    resolved, _ = resolve_variable(raw, variables)
    return safe_float(resolved)


def _stage_dynamics(stage: dict) -> tuple[list, str]:
    """Read dynamics points from either the flat or the nested profile format."""
    points = _as_list(stage.get("dynamics_points"))
    over = stage.get("dynamics_over", "time")
    if not points:
        dynamics = stage.get("dynamics")
        if isinstance(dynamics, dict):
            points = _as_list(dynamics.get("points"))
            over = dynamics.get("over", "time")
    return [p for p in points if isinstance(p, (list, tuple)) and p], over


def _executed_range(stage: dict, stage_ranges: list[dict]) -> Optional[dict]:
    identifiers = {_normalize_name(stage.get("name")), _normalize_name(stage.get("key"))} - {""}
    for stage_range in stage_ranges:
        if _normalize_name(stage_range["name"]) in identifiers:
            return stage_range
    return None


def _weight_time_pairs(series: list[dict], stage_name: str) -> tuple[list[float], list[float]]:
    """(weights, times) of one stage's samples, sorted by weight."""
    pairs = sorted(
        (sample.get("weight") or 0.0, sample["time"])
        for sample in series
        if _normalize_name(sample.get("stage")) == stage_name
    )
    return [w for w, _ in pairs], [t for _, t in pairs]


def generate_profile_target_curves(
    profile: dict,
    series: list[dict],
    stage_ranges: list[dict],
) -> list[dict]:
    """Generate target curve points for a profile overlay on a shot chart.

    Args:
        profile: Profile dict with "stages" (and optional "variables")
        series: Normalized telemetry series of the shot
        stage_ranges: Stage ranges of that series (see chart_service.get_stage_ranges)

    Returns:
        Points sorted by time: [{time, target_pressure | target_flow, stage_name}, ...]
    """
    variables = _as_list(profile.get("variables"))
    executed = [
        r for r in stage_ranges
        if _normalize_name(r["name"]) != STAGE_STATUS_RETRACTING
    ]
    data_points = []

    for stage in _as_list(profile.get("stages")):
        if not isinstance(stage, dict):
            continue
        stage_type = stage.get("type")
        axis = AXIS_FOR_STAGE_TYPE.get(stage_type) if isinstance(stage_type, str) else None
        points, over = _stage_dynamics(stage)
        if axis is None or not points:
            continue

        stage_range = _executed_range(stage, executed)
        if stage_range is None:
            continue
        stage_start, stage_end = stage_range["start_time"], stage_range["end_time"]
        if stage_end - stage_start <= 0:
            continue

        stage_name = stage.get("name", "")

        def add_point(time: float, value: float):
            data_points.append({
                "time": round(time, 2),
                axis: round(value, 1),
                "stage_name": stage_name,
            })

        if len(points) == 1:
            # Constant target held for the whole stage
            value = _point_value(points[0], variables)
            add_point(stage_start, value)
            add_point(stage_end, value)
            continue

        if over == "time":
            max_point_time = max(safe_float(p[0]) for p in points)
            scale = (stage_end - stage_start) / max_point_time if max_point_time > 0 else 1
            for p in points:
                add_point(stage_start + safe_float(p[0]) * scale, _point_value(p, variables))

        elif over == "weight":
            weights, times = _weight_time_pairs(series, _normalize_name(stage_range["name"]))
            if not weights:
                continue
            for p in points:
                add_point(interpolate_clamped(weights, times, safe_float(p[0])), _point_value(p, variables))

        else:
            logger.debug(
                "Skipping stage with unsupported dynamics",
                extra={"stage_name": stage_name, "dynamics_over": over}
            )

    data_points.sort(key=lambda point: point["time"])
    return data_points
