"""
Telemetry Normalization Service

Turns a raw shot log of unknown shape into a uniform telemetry series that
the chart, replay and comparison services can consume.

A telemetry series is a list of sample dicts ordered by time:

    {"time": 12.3,            # seconds from shot start
     "pressure": 8.9,         # bar, or None
     "flow": 2.1,             # ml/s, or None
     "weight": 18.4,          # g, or None
     "gravimetric_flow": 1.9, # g/s, or None
     "stage": "Main"}         # stage label, or None

Three raw shapes are recognised, tried in order (first match wins):

1. Nested readings, as recorded by the machine:
   {"data": [{"time": 1200, "status": "Bloom", "shot": {"pressure": ..., ...}}, ...]}
2. Parallel arrays:
   {"data": {"time": [...], "pressure": [...], "flow": [...], "weight": [...]}}
   (the arrays may also sit at the top level)
3. Log entries with long or short field names:
   {"log": [{"t": 1.2, "p": 8.9, "f": 2.1, "w": 18.4}, ...]}

Anything else normalizes to an empty series.
"""

from typing import Optional

from logging_config import get_logger
from utils.numeric import optional_float, first_present, safe_float

logger = get_logger()

# Shot-log time fields are milliseconds; the series uses seconds
MS_PER_SECOND = 1000


def _make_sample(
    time: float,
    pressure=None,
    flow=None,
    weight=None,
    gravimetric_flow=None,
    stage=None,
) -> dict:
    return {
        "time": time,
        "pressure": optional_float(pressure),
        "flow": optional_float(flow),
        "weight": optional_float(weight),
        "gravimetric_flow": optional_float(gravimetric_flow),
        "stage": stage if isinstance(stage, str) else None,
    }


# ============================================================================
# Format Variants
# ============================================================================

def _match_nested_readings(raw: dict) -> Optional[list]:
    entries = raw.get("data")
    if not isinstance(entries, list) or not entries:
        return None
    first = entries[0]
    if not isinstance(first, dict) or not isinstance(first.get("shot"), dict) or not first["shot"]:
        return None
    return entries


def _parse_nested_readings(entries: list) -> list[dict]:
    series = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        reading = entry.get("shot")
        if not isinstance(reading, dict):
            reading = {}
        # A zero shot time also falls back to the profile clock
        time_ms = safe_float(entry.get("time")) or safe_float(entry.get("profile_time"))
        series.append(_make_sample(
            time_ms / MS_PER_SECOND,
            pressure=reading.get("pressure"),
            flow=reading.get("flow"),
            weight=reading.get("weight"),
            gravimetric_flow=reading.get("gravimetric_flow"),
            stage=entry.get("status"),
        ))
    return series


def _match_parallel_arrays(raw: dict) -> Optional[dict]:
    telemetry = raw.get("data") or raw
    if not isinstance(telemetry, dict):
        return None
    times = telemetry.get("time")
    if not isinstance(times, list) or not times:
        return None
    return telemetry


def _parse_parallel_arrays(telemetry: dict) -> list[dict]:
    def column(name: str) -> list:
        values = telemetry.get(name)
        return values if isinstance(values, list) else []

    pressures, flows, weights = column("pressure"), column("flow"), column("weight")

    def at(values: list, i: int):
        return values[i] if i < len(values) else None

    return [
        _make_sample(
            safe_float(t),
            pressure=at(pressures, i),
            flow=at(flows, i),
            weight=at(weights, i),
        )
        for i, t in enumerate(column("time"))
    ]


def _match_log_entries(raw: dict) -> Optional[list]:
    entries = raw.get("log")
    if not isinstance(entries, list) or not entries:
        return None
    return entries


def _parse_log_entries(entries: list) -> list[dict]:
    series = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        series.append(_make_sample(
            safe_float(first_present(entry, "time", "t")),
            pressure=first_present(entry, "pressure", "p"),
            flow=first_present(entry, "flow", "f"),
            weight=first_present(entry, "weight", "w"),
        ))
    return series


# Closed set of raw shapes: (name, structural predicate, parser)
SHOT_LOG_FORMATS = (
    ("nested_readings", _match_nested_readings, _parse_nested_readings),
    ("parallel_arrays", _match_parallel_arrays, _parse_parallel_arrays),
    ("log_entries", _match_log_entries, _parse_log_entries),
)


def detect_shot_log_format(raw) -> Optional[str]:
    """Return the name of the first raw shape that matches, or None."""
    if not isinstance(raw, dict):
        return None
    for name, match, _ in SHOT_LOG_FORMATS:
        if match(raw) is not None:
            return name
    return None


def normalize_shot_data(raw) -> list[dict]:
    """Convert a raw shot log into a telemetry series.

    Never raises for unrecognised or absent data: an empty list means
    "nothing to chart".

    Args:
        raw: The shot log as loaded from JSON (usually a dict)

    Returns:
        List of sample dicts with non-decreasing "time"
    """
    if not isinstance(raw, dict):
        logger.debug(
            "Shot data is not a mapping, returning empty series",
            extra={"raw_type": type(raw).__name__}
        )
        return []

    for name, match, parse in SHOT_LOG_FORMATS:
        matched = match(raw)
        if matched is None:
            continue
        series = parse(matched)
        if any(later["time"] < earlier["time"] for earlier, later in zip(series, series[1:])):
            logger.debug(f"Shot data in {name} format is out of time order, sorting")
            series.sort(key=lambda sample: sample["time"])
        return series

    logger.debug(
        "Unrecognized shot data format, returning empty series",
        extra={"raw_keys": sorted(str(k) for k in raw.keys())[:20]}
    )
    return []


# ============================================================================
# Series Summaries
# ============================================================================

def series_max_time(series: list[dict]) -> float:
    """Time of the last sample, or 0 for an empty series."""
    if not series:
        return 0.0
    return max(series[-1]["time"], 0.0)


def summarize_series(series: list[dict]) -> dict:
    """Compute shot-level summary figures from a telemetry series.

    Flow falls back to gravimetric flow for samples without a flow reading.
    Every figure is 0 for an empty series.
    """
    final_weight = 0.0
    max_pressure = 0.0
    max_flow = 0.0

    for sample in series:
        final_weight = max(final_weight, sample.get("weight") or 0.0)
        max_pressure = max(max_pressure, sample.get("pressure") or 0.0)
        flow = sample.get("flow")
        if flow is None:
            flow = sample.get("gravimetric_flow")
        max_flow = max(max_flow, flow or 0.0)

    return {
        "total_time": series_max_time(series),
        "final_weight": final_weight,
        "max_pressure": max_pressure,
        "max_flow": max_flow,
    }
