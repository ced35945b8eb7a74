"""
Trend Analysis

Linear trend, simple seasonality and smoothing for a single numeric series.

Approximations (kept deliberately, and labeled in the results):
- Regression runs on the row index (0..n-1), not on real time deltas, so
  unevenly spaced observations are treated as evenly spaced.
- Seasonality buckets rows by ``index mod period``. With daily data this
  only lines up with calendar weekdays if the series starts on a fixed day.
"""
import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Optional

import numpy as np

from export_analysis.core.errors import UnsupportedOptionError
from export_analysis.core.records import (
    Dataset,
    as_number,
    is_number,
    sort_by_date,
    to_number,
)
from export_analysis.transformers.calculator import calculate_moving_average as _trailing_average

logger = logging.getLogger(__name__)


@dataclass
class TrendResult:
    """Result of a linear trend fit."""
    trend: str                     # increasing | decreasing | stable | insufficient_data
    direction: Optional[str]
    slope: Optional[float] = None
    intercept: Optional[float] = None
    r_squared: Optional[float] = None
    strength: float = 0.0          # |R^2|
    observations: int = 0
    method: str = "index_ols"

    def forecast(self, periods: int) -> List[Dict[str, Any]]:
        """
        Project the fitted line past the last observation.

        Returns ``[{"period": 1, "forecast": ...}, ...]``; negative
        projections are clamped to 0.
        """
        if self.slope is None:
            return []
        last_index = self.observations - 1
        return [
            {"period": i, "forecast": max(0.0, self.slope * (last_index + i) + self.intercept)}
            for i in range(1, periods + 1)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend,
            "direction": self.direction,
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared,
            "strength": self.strength,
            "observations": self.observations,
            "method": self.method,
        }


@dataclass
class SeasonalityResult:
    """Result of the bucket-average seasonality check."""
    has_seasonality: bool
    period: int
    pattern: Optional[List[float]] = None
    strength: float = 0.0          # coefficient of variation across buckets
    method: str = "index_modulo"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_seasonality": self.has_seasonality,
            "period": self.period,
            "pattern": self.pattern,
            "strength": self.strength,
            "method": self.method,
        }


def linear_regression(x: np.ndarray, y: np.ndarray) -> Dict[str, float]:
    """Ordinary least squares fit of y on x with R^2."""
    n = len(x)
    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_x2 = (x * x).sum()

    denominator = n * sum_x2 - sum_x * sum_x
    slope = (n * sum_xy - sum_x * sum_y) / denominator if denominator else 0.0
    intercept = (sum_y - slope * sum_x) / n

    predicted = slope * x + intercept
    ss_total = ((y - y.mean()) ** 2).sum()
    ss_residual = ((y - predicted) ** 2).sum()
    if ss_total == 0:
        # Flat series: a flat line explains it fully
        r_squared = 1.0 if ss_residual == 0 else 0.0
    else:
        r_squared = 1 - ss_residual / ss_total

    return {"slope": float(slope), "intercept": float(intercept), "r_squared": float(r_squared)}


def analyze_trend(data: Dataset, value_field: str, date_field: str) -> TrendResult:
    """
    Fit a linear trend to a time series.

    Records are sorted by ``date_field`` and records without a numeric value
    are skipped. The direction is "increasing" for a positive slope,
    "decreasing" for a negative one and "stable" for exactly zero.
    """
    ordered = [r for r in sort_by_date(data, date_field) if is_number(r.get(value_field))]

    if len(ordered) < 2:
        return TrendResult(trend="insufficient_data", direction=None, observations=len(ordered))

    y = np.array([as_number(r[value_field]) for r in ordered], dtype=float)
    x = np.arange(len(y), dtype=float)
    fit = linear_regression(x, y)

    slope = fit["slope"]
    direction = "increasing" if slope > 0 else "decreasing" if slope < 0 else "stable"

    logger.debug(f"Trend on {value_field}: slope={slope:.4f}, r2={fit['r_squared']:.3f}")
    return TrendResult(
        trend=direction,
        direction=direction,
        slope=slope,
        intercept=fit["intercept"],
        r_squared=fit["r_squared"],
        strength=abs(fit["r_squared"]),
        observations=len(y),
    )


def detect_seasonality(
    data: Dataset,
    value_field: str,
    date_field: str,
    period: int = 7,
    threshold: float = 0.15,
) -> SeasonalityResult:
    """
    Check for a repeating pattern of length ``period``.

    Rows are bucketed by position ``index mod period`` after sorting by
    date; the coefficient of variation (std / mean) of the bucket averages
    is compared against ``threshold``. Needs at least two full periods.
    """
    if period < 1:
        raise UnsupportedOptionError("seasonality period", period)

    ordered = sort_by_date(data, date_field)
    if len(ordered) < period * 2:
        return SeasonalityResult(has_seasonality=False, period=period)

    buckets: List[List[float]] = [[] for _ in range(period)]
    for index, record in enumerate(ordered):
        buckets[index % period].append(to_number(record.get(value_field)))

    averages = np.array([np.mean(bucket) for bucket in buckets], dtype=float)
    avg = averages.mean()
    cv = float(averages.std() / avg) if avg else 0.0

    return SeasonalityResult(
        has_seasonality=cv > threshold,
        period=period,
        pattern=[float(v) for v in averages],
        strength=cv,
    )


def calculate_moving_average(data: Dataset, value_field: str, window: int = 7) -> Dataset:
    """Trailing moving average in ``moving_average`` (caller pre-sorts)."""
    return _trailing_average(data, value_field, window, output_field="moving_average")


def calculate_ema(data: Dataset, value_field: str, span: int = 7) -> Dataset:
    """
    Exponential moving average in ``ema`` with ``alpha = 2 / (span + 1)``.

    The first numeric value seeds the average; non-numeric values carry the
    previous EMA forward.
    """
    alpha = 2 / (span + 1)
    ema = None

    result = []
    for record in data:
        value = record.get(value_field)
        if is_number(value):
            value = as_number(value)
            ema = value if ema is None else alpha * value + (1 - alpha) * ema
        result.append({**record, "ema": ema})
    return result
