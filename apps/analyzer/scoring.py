"""Score mapping helpers: breakpoint interpolation, bands, weighted averages."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

Breakpoints = Sequence[Tuple[float, float]]


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def score_from_breakpoints(value: float, breakpoints: Breakpoints) -> float:
    """Piecewise-linear map from a metric value to a 0-100 score.

    ``breakpoints`` is a list of ``(metric, score)`` pairs sorted by metric.
    Values below the first point take its score; values above the last point
    take the last score.
    """
    if not breakpoints:
        return 0.0
    first_x, first_y = breakpoints[0]
    if value <= first_x:
        return float(first_y)
    for (x0, y0), (x1, y1) in zip(breakpoints, breakpoints[1:]):
        if value <= x1:
            if x1 == x0:
                return float(y1)
            ratio = (value - x0) / (x1 - x0)
            return y0 + (y1 - y0) * ratio
    return float(breakpoints[-1][1])


def weighted_average(components: Iterable[Tuple[Optional[float], float]]) -> float:
    """Average ``(value, weight)`` pairs, skipping missing values and zero weights."""
    numerator = 0.0
    denominator = 0.0
    for value, weight in components:
        if weight <= 0 or value is None:
            continue
        numerator += value * weight
        denominator += weight
    return numerator / denominator if denominator else 0.0


def to_score(value: float) -> int:
    """Round and clamp into the integer 0-100 range."""
    return int(round(clamp(value, 0.0, 100.0)))


def quality_band(score: float) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "adequate"
    return "needs work"


__all__ = ["Breakpoints", "clamp", "quality_band", "score_from_breakpoints", "to_score", "weighted_average"]
