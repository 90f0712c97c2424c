"""
Shot Comparison Service

Aligns two independently sampled shots on one timeline and scores their
differences:
- Resampling: the shot with more samples is the base, the other one is
  interpolated at the base timestamps (gaps where it has no data)
- Scoring: signed difference and percentage for duration, yield and peak
  pressure/flow (A relative to B)

Whether a positive difference is good news is a presentation concern; the
stored numbers carry no direction.
"""

from typing import Optional

from logging_config import get_logger
from services.chart_service import interpolate_clamped, get_axis_domains
from services.telemetry_service import normalize_shot_data, series_max_time, summarize_series

logger = get_logger()

COMPARISON_CHANNELS = ("pressure", "flow", "weight")

# Presentation hint per metric: does a larger A beat B?
METRIC_HIGHER_IS_BETTER = {
    "duration_diff": False,
    "yield_diff": True,
    "max_pressure_diff": False,
    "max_flow_diff": False,
}

# Differences under this many percent read as "equal"
EQUAL_THRESHOLD_PERCENT = 1


def to_comparison_points(series: list[dict]) -> list[dict]:
    """Reduce a series to the channels plotted in a comparison, absent as 0."""
    return [
        {"time": sample["time"], **{ch: sample.get(ch) or 0.0 for ch in COMPARISON_CHANNELS}}
        for sample in series
    ]


def build_combined_chart_data(series_a: list[dict], series_b: Optional[list[dict]] = None) -> list[dict]:
    """Merge two shots into dual-line chart points.

    The other shot is interpolated at each base timestamp. Outside its own
    time range its values stay None, so the chart shows a gap instead of a
    flat line.

    Args:
        series_a: Primary shot series
        series_b: Comparison shot series (None or empty for A only)

    Returns:
        [{time, pressure_a, flow_a, weight_a, pressure_b, flow_b, weight_b}, ...]
    """
    points_a = to_comparison_points(series_a)
    points_b = to_comparison_points(series_b or [])

    # The longer series is the base; ties go to A
    a_is_base = len(points_a) >= len(points_b)
    base, other = (points_a, points_b) if a_is_base else (points_b, points_a)
    base_side, other_side = ("a", "b") if a_is_base else ("b", "a")

    other_times = [p["time"] for p in other]
    other_columns = {ch: [p[ch] for p in other] for ch in COMPARISON_CHANNELS}

    combined = []
    for base_point in base:
        t = base_point["time"]
        inside = bool(other_times) and other_times[0] <= t <= other_times[-1]
        point = {"time": t, **{f"{ch}_{side}": None for side in "ab" for ch in COMPARISON_CHANNELS}}
        for ch in COMPARISON_CHANNELS:
            point[f"{ch}_{base_side}"] = base_point[ch]
            if inside:
                point[f"{ch}_{other_side}"] = interpolate_clamped(other_times, other_columns[ch], t)
        combined.append(point)
    return combined


def calc_diff(a: float, b: float) -> dict:
    """Signed difference of A against B, in units and in percent of B."""
    diff = a - b
    return {
        "a": a,
        "b": b,
        "diff": diff,
        "diff_percent": (diff / b) * 100 if b != 0 else 0,
    }


def _summary_value(summary: Optional[dict], key: str, fallback: float) -> float:
    if summary and summary.get(key) is not None:
        return float(summary[key])
    return fallback


def get_comparison_stats(
    series_a: list[dict],
    series_b: list[dict],
    summary_a: Optional[dict] = None,
    summary_b: Optional[dict] = None,
) -> dict:
    """Score shot A against shot B.

    Duration and yield come from the shot-level summaries ("total_time",
    "final_weight") when given, otherwise from the telemetry itself. Peak
    pressure and flow always come from the telemetry.
    """
    computed_a = summarize_series(series_a)
    computed_b = summarize_series(series_b)

    def peak(series: list[dict], channel: str) -> float:
        return max((sample.get(channel) or 0.0 for sample in series), default=0.0)

    return {
        "duration_diff": calc_diff(
            _summary_value(summary_a, "total_time", computed_a["total_time"]),
            _summary_value(summary_b, "total_time", computed_b["total_time"]),
        ),
        "yield_diff": calc_diff(
            _summary_value(summary_a, "final_weight", computed_a["final_weight"]),
            _summary_value(summary_b, "final_weight", computed_b["final_weight"]),
        ),
        "max_pressure_diff": calc_diff(peak(series_a, "pressure"), peak(series_b, "pressure")),
        "max_flow_diff": calc_diff(peak(series_a, "flow"), peak(series_b, "flow")),
    }


def describe_metric(result: dict, higher_is_better: bool = True) -> str:
    """Classify a scored metric for display: "equal", "better" or "worse"."""
    if abs(result["diff_percent"]) < EQUAL_THRESHOLD_PERCENT:
        return "equal"
    is_positive = result["diff"] > 0
    return "better" if is_positive == higher_is_better else "worse"


def compare_shots(
    raw_a,
    raw_b=None,
    summary_a: Optional[dict] = None,
    summary_b: Optional[dict] = None,
) -> dict:
    """Normalize two raw shot logs and build the full comparison payload.

    Returns:
        {"stats": ComparisonResult or None without a B shot,
         "chart_data": combined points,
         "max_time": longest of the two shots,
         "domains": fixed chart axis maxima}
    """
    series_a = normalize_shot_data(raw_a)
    series_b = normalize_shot_data(raw_b) if raw_b is not None else []

    chart_data = build_combined_chart_data(series_a, series_b)
    stats = get_comparison_stats(series_a, series_b, summary_a, summary_b) if raw_b is not None else None

    logger.debug(
        "Built shot comparison",
        extra={
            "points_a": len(series_a),
            "points_b": len(series_b),
            "combined_points": len(chart_data),
        }
    )

    return {
        "stats": stats,
        "chart_data": chart_data,
        "max_time": max(series_max_time(series_a), series_max_time(series_b)),
        "domains": get_axis_domains(
            chart_data,
            pressure_keys=("pressure_a", "pressure_b"),
            flow_keys=("flow_a", "flow_b"),
            weight_keys=("weight_a", "weight_b"),
        ),
    }
