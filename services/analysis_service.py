"""
Shot Chart Analysis Service

Runs the single-shot pipeline that feeds the shot chart:
raw shot log -> telemetry series -> stage ranges -> target curves ->
merged chart data, plus the summary figures and fixed axis domains.
"""

from typing import Optional

from logging_config import get_logger
from services.chart_service import (
    get_stage_ranges, attach_stage_colors, merge_with_target_curves, get_axis_domains,
)
from services.profile_curve_service import generate_profile_target_curves
from services.telemetry_service import (
    normalize_shot_data, detect_shot_log_format, series_max_time, summarize_series,
)

logger = get_logger()


def build_shot_chart(
    shot_data,
    target_curves: Optional[list[dict]] = None,
    profile: Optional[dict] = None,
) -> dict:
    """Build the complete chart payload for one shot.

    Explicit target curves win over a profile; a profile only supplies
    curves when none were given.

    Args:
        shot_data: Raw shot log in any supported format
        target_curves: Optional precomputed profile target points
        profile: Optional profile dict to derive target points from

    Returns:
        {"chart_data", "stage_ranges", "target_curves", "max_time",
         "summary", "domains", "format"}
    """
    series = normalize_shot_data(shot_data)
    stage_ranges = attach_stage_colors(get_stage_ranges(series))

    if not target_curves and profile:
        target_curves = generate_profile_target_curves(profile, series, stage_ranges)

    chart_data = merge_with_target_curves(series, target_curves)
    summary = summarize_series(series)

    logger.debug(
        "Built shot chart",
        extra={
            "sample_count": len(series),
            "stage_count": len(stage_ranges),
            "target_point_count": len(target_curves or []),
        }
    )

    return {
        "format": detect_shot_log_format(shot_data),
        "chart_data": chart_data,
        "stage_ranges": stage_ranges,
        "target_curves": target_curves or [],
        "max_time": series_max_time(series),
        "summary": summary,
        "domains": get_axis_domains(chart_data + list(target_curves or [])),
    }
