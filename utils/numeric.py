"""Numeric coercion helpers for loosely-typed telemetry values."""

import math
from typing import Optional


def optional_float(val) -> Optional[float]:
    """Convert a value to a finite float, or None when it is not a number.

    Numeric strings are accepted. Booleans, NaN and infinities are rejected
    so that a malformed reading shows up as a gap instead of a bogus value.
    """
    if val is None or isinstance(val, bool):
        return None
    try:
        result = float(val)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_float(val, default: float = 0.0) -> float:
    """Safely convert a value to float, handling strings and None."""
    result = optional_float(val)
    return default if result is None else result


def first_present(entry: dict, *keys: str):
    """Return the value of the first key present (and not None) in entry."""
    for key in keys:
        value = entry.get(key)
        if value is not None:
            return value
    return None
