"""Shared query parameter parsing utilities for framework adapters.

This module provides utilities for parsing and validating query parameters
that are common across the ASGI app and the FastAPI router.
"""

import math

from telemetripy.core.models import normalize_level


def _parse_since_param(params: dict[str, list[str]]) -> float:
    """Parse and validate the 'since' query parameter.

    Args:
        params: Parsed query string parameters (as returned by urllib.parse.parse_qs).

    Returns:
        Timestamp as float, defaulting to 0.0 if invalid or missing.
        Rejects negative, NaN, and infinite values, returning 0.0 for these cases.
    """
    try:
        value = float(params.get("since", ["0"])[0])
    except ValueError:
        return 0.0
    if value < 0 or math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def _parse_level_param(params: dict[str, list[str]]) -> str | None:
    """Parse and validate the 'level' query parameter.

    Accepts the pipeline levels in any case plus ``warning`` and ``critical``.

    Args:
        params: Parsed query string parameters (as returned by urllib.parse.parse_qs).

    Returns:
        Normalized level or None if invalid/missing.
    """
    level_list = params.get("level", [])
    level_raw = level_list[0] if level_list else None
    if not level_raw:
        return None
    return normalize_level(level_raw, default=None)


def _parse_limit_param(params: dict[str, list[str]], default: int = 100, maximum: int = 1000) -> int:
    """Parse the 'limit' query parameter, clamped to ``1..maximum``."""
    try:
        value = int(params.get("limit", [str(default)])[0])
    except ValueError:
        return default
    return max(1, min(value, maximum))
