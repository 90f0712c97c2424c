"""Shot chart and comparison endpoints."""
from fastapi import APIRouter, Request, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Optional

from logging_config import get_logger
from services.analysis_service import build_shot_chart
from services.comparison_service import compare_shots, describe_metric, METRIC_HIGHER_IS_BETTER

router = APIRouter()
logger = get_logger()


class TargetCurvePoint(BaseModel):
    time: float
    target_pressure: Optional[float] = None
    target_flow: Optional[float] = None
    stage_name: str = ""


class ShotSummary(BaseModel):
    total_time: Optional[float] = Field(None, ge=0, description="Shot duration in seconds")
    final_weight: Optional[float] = Field(None, description="Final yield in grams")


class ShotChartRequest(BaseModel):
    shot_data: Any = Field(..., description="Raw shot log as recorded")
    target_curves: Optional[list[TargetCurvePoint]] = None
    profile: Optional[dict] = None


class ShotCompareRequest(BaseModel):
    shot_a: Any = Field(..., description="Raw shot log of the primary shot")
    shot_b: Any = Field(None, description="Raw shot log of the comparison shot")
    summary_a: Optional[ShotSummary] = None
    summary_b: Optional[ShotSummary] = None


def target_curves_to_dicts(points: Optional[list]) -> Optional[list[dict]]:
    """Validate target points and drop undefined axes."""
    if not points:
        return None
    return [
        (p if isinstance(p, TargetCurvePoint) else TargetCurvePoint.model_validate(p)).model_dump(exclude_none=True)
        for p in points
    ]


def summary_to_dict(summary) -> Optional[dict]:
    if summary is None:
        return None
    if not isinstance(summary, ShotSummary):
        summary = ShotSummary.model_validate(summary)
    return summary.model_dump(exclude_none=True)


@router.post("/api/shots/chart-data")
async def get_shot_chart_data(request: Request, body: ShotChartRequest):
    """Build chart data for a single shot.

    Normalizes the raw shot log, segments it into stages and overlays the
    profile target curves (given explicitly or derived from the profile).

    Returns:
        - chart_data: Samples with interpolated targets
        - stage_ranges: Colored stage overlays
        - max_time: Replay duration in seconds
        - summary, domains, target_curves, format
    """
    request_id = request.state.request_id

    try:
        chart = build_shot_chart(
            body.shot_data,
            target_curves=target_curves_to_dicts(body.target_curves),
            profile=body.profile,
        )

        logger.info(
            "Shot chart data built",
            extra={
                "request_id": request_id,
                "format": chart["format"],
                "sample_count": len(chart["chart_data"]),
                "stage_count": len(chart["stage_ranges"])
            }
        )

        return {"status": "success", **chart}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(
            f"Failed to build shot chart data: {str(e)}",
            exc_info=True,
            extra={"request_id": request_id, "error_type": type(e).__name__}
        )
        raise HTTPException(
            status_code=500,
            detail={"status": "error", "error": str(e), "message": "Failed to build shot chart data"}
        )


@router.post("/api/shots/compare")
async def compare_shot_data(request: Request, body: ShotCompareRequest):
    """Compare two shots on one timeline.

    The shot with more samples is the base timeline; the other shot is
    interpolated onto it. Stats are signed differences of A against B.

    Returns:
        - comparison.stats: duration/yield/max pressure/max flow differences
        - comparison.chart_data: Combined dual-line points
        - comparison.higher_is_better / assessment: Presentation hints
    """
    request_id = request.state.request_id

    try:
        comparison = compare_shots(
            body.shot_a,
            body.shot_b,
            summary_to_dict(body.summary_a),
            summary_to_dict(body.summary_b),
        )

        stats = comparison["stats"]
        assessment = None
        if stats is not None:
            assessment = {
                metric: describe_metric(stats[metric], higher_is_better)
                for metric, higher_is_better in METRIC_HIGHER_IS_BETTER.items()
            }

        logger.info(
            "Shot comparison built",
            extra={
                "request_id": request_id,
                "combined_points": len(comparison["chart_data"]),
                "has_comparison_shot": stats is not None
            }
        )

        return {
            "status": "success",
            "comparison": {
                **comparison,
                "higher_is_better": METRIC_HIGHER_IS_BETTER,
                "assessment": assessment,
            }
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(
            f"Shot comparison failed: {str(e)}",
            exc_info=True,
            extra={"request_id": request_id, "error_type": type(e).__name__}
        )
        raise HTTPException(
            status_code=500,
            detail={"status": "error", "error": str(e), "message": "Shot comparison failed"}
        )
