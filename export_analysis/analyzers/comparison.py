"""
Comparison Analysis

Period-over-period, year-over-year, benchmark, cohort and A/B comparisons
of pre-split record groups.

The default A/B p-value is a coarse bucket ({0.01, 0.05, 0.10, 0.20})
read off fixed normal critical values. It is a rough significance
indicator, not a statistical test; pass ``p_value_method="student_t"`` for
a two-sided p-value from the t distribution.
"""
import math
import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Any, Sequence

import numpy as np
from scipy import stats

from export_analysis.core.errors import unsupported
from export_analysis.core.records import (
    Dataset,
    numeric_values,
    to_number,
    parse_date,
    sort_by_date,
    mean,
)

logger = logging.getLogger(__name__)


class PValueMethod(Enum):
    BUCKETED = "bucketed"
    STUDENT_T = "student_t"


# |t| critical value -> p-value bucket, checked in order
P_VALUE_BUCKETS = [
    (2.576, 0.01),
    (1.96, 0.05),
    (1.645, 0.10),
]
P_VALUE_FLOOR = 0.20


@dataclass
class MetricComparison:
    current: float
    previous: float
    change: float
    change_percent: float
    trend: str  # up | down | stable

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MonthComparison:
    month: int  # 1-12
    metrics: Dict[str, MetricComparison] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"month": self.month, "metrics": {k: v.to_dict() for k, v in self.metrics.items()}}


@dataclass
class BenchmarkResult:
    actual: float
    benchmark: float
    difference: float
    difference_percent: float
    status: str  # above | below

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CohortSummary:
    size: int
    total_value: float
    avg_value: float
    first_date: Any
    last_date: Any

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ABTestResult:
    group_a: float
    group_b: float
    difference: float
    difference_percent: float
    t_statistic: float
    p_value: float
    significant: bool
    winner: str  # A | B | tie
    p_value_method: str = PValueMethod.BUCKETED.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def sum_field(data: Dataset, name: str) -> float:
    """Sum of a field; missing or non-numeric values count as 0."""
    return sum(to_number(record.get(name)) for record in data)


def avg_field(data: Dataset, name: str) -> float:
    """Mean of the numeric values of a field (0 if there are none)."""
    return mean(numeric_values(data, name))


def _percent_change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous > 0 else 0


def _compare(current: float, previous: float) -> MetricComparison:
    change = current - previous
    return MetricComparison(
        current=current,
        previous=previous,
        change=change,
        change_percent=_percent_change(current, previous),
        trend="up" if change > 0 else "down" if change < 0 else "stable",
    )


def period_over_period(
    current: Dataset,
    previous: Dataset,
    metrics: Sequence[str],
) -> Dict[str, MetricComparison]:
    """Compare metric totals between two periods."""
    return {
        metric: _compare(sum_field(current, metric), sum_field(previous, metric))
        for metric in metrics
    }


def _group_by_month(data: Dataset, date_field: str) -> Dict[int, Dataset]:
    by_month: Dict[int, Dataset] = {}
    for record in data:
        parsed = parse_date(record.get(date_field))
        if parsed is None:
            continue
        by_month.setdefault(parsed.month, []).append(record)
    return by_month


def year_over_year(
    current_year: Dataset,
    previous_year: Dataset,
    metrics: Sequence[str],
    date_field: str,
) -> List[MonthComparison]:
    """Month-by-month comparison of two years of records (12 entries)."""
    current_by_month = _group_by_month(current_year, date_field)
    previous_by_month = _group_by_month(previous_year, date_field)

    comparison = []
    for month in range(1, 13):
        current = current_by_month.get(month, [])
        previous = previous_by_month.get(month, [])
        comparison.append(MonthComparison(
            month=month,
            metrics={
                metric: _compare(sum_field(current, metric), sum_field(previous, metric))
                for metric in metrics
            },
        ))
    return comparison


def benchmark_comparison(
    data: Dataset,
    benchmarks: Dict[str, float],
    metrics: Sequence[str],
) -> Dict[str, BenchmarkResult]:
    """Compare metric totals against targets; metrics without a target are skipped."""
    comparison = {}
    for metric in metrics:
        if metric not in benchmarks or benchmarks[metric] is None:
            continue
        actual = sum_field(data, metric)
        benchmark = benchmarks[metric]
        difference = actual - benchmark
        comparison[metric] = BenchmarkResult(
            actual=actual,
            benchmark=benchmark,
            difference=difference,
            difference_percent=difference / benchmark * 100 if benchmark > 0 else 0,
            status="above" if actual >= benchmark else "below",
        )
    return comparison


def cohort_analysis(
    data: Dataset,
    cohort_field: str,
    date_field: str,
    value_field: str,
) -> Dict[Any, CohortSummary]:
    """Size, totals and date span for each cohort value."""
    cohorts: Dict[Any, Dataset] = {}
    for record in data:
        cohorts.setdefault(record.get(cohort_field), []).append(record)

    analysis = {}
    for cohort, records in cohorts.items():
        ordered = sort_by_date(records, date_field)
        analysis[cohort] = CohortSummary(
            size=len(records),
            total_value=sum_field(records, value_field),
            avg_value=avg_field(records, value_field),
            first_date=ordered[0].get(date_field),
            last_date=ordered[-1].get(date_field),
        )
    return analysis


def t_statistic(a: List[float], b: List[float]) -> float:
    """
    Two-sample t statistic with pooled (n-1) variance, B relative to A.

    Returns 0 when either group has fewer than two values or the pooled
    standard error is 0.
    """
    if len(a) < 2 or len(b) < 2:
        return 0.0

    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.var(ddof=1) == 0 and b.var(ddof=1) == 0:
        return 0.0

    result = stats.ttest_ind(b, a, equal_var=True)
    t_stat = float(result.statistic)
    return t_stat if math.isfinite(t_stat) else 0.0


def bucketed_p_value(t_stat: float) -> float:
    """Coarse p-value bucket from fixed critical values (heuristic only)."""
    abs_t = abs(t_stat)
    for critical, p_value in P_VALUE_BUCKETS:
        if abs_t > critical:
            return p_value
    return P_VALUE_FLOOR


def student_t_p_value(t_stat: float, degrees_of_freedom: int) -> float:
    """Two-sided p-value from the t distribution."""
    if degrees_of_freedom < 1:
        return 1.0
    return float(2 * stats.t.sf(abs(t_stat), degrees_of_freedom))


def ab_test_comparison(
    group_a: Dataset,
    group_b: Dataset,
    metrics: Sequence[str],
    p_value_method: str = "bucketed",
) -> Dict[str, ABTestResult]:
    """
    Compare metric means between two variants.

    Args:
        group_a: Control records
        group_b: Variant records
        metrics: Numeric fields to compare
        p_value_method: "bucketed" (default heuristic) or "student_t"
    """
    try:
        method = p_value_method if isinstance(p_value_method, PValueMethod) else PValueMethod(p_value_method)
    except ValueError:
        raise unsupported("p-value method", p_value_method, PValueMethod) from None

    comparison = {}
    for metric in metrics:
        a_values = numeric_values(group_a, metric)
        b_values = numeric_values(group_b, metric)
        a_mean, b_mean = mean(a_values), mean(b_values)
        difference = b_mean - a_mean

        t_stat = t_statistic(a_values, b_values)
        if method == PValueMethod.STUDENT_T:
            p_value = student_t_p_value(t_stat, len(a_values) + len(b_values) - 2)
        else:
            p_value = bucketed_p_value(t_stat)

        comparison[metric] = ABTestResult(
            group_a=a_mean,
            group_b=b_mean,
            difference=difference,
            difference_percent=difference / a_mean * 100 if a_mean > 0 else 0,
            t_statistic=t_stat,
            p_value=p_value,
            significant=p_value < 0.05,
            winner="B" if difference > 0 else "A" if difference < 0 else "tie",
            p_value_method=method.value,
        )
    return comparison


def comparison_to_dict(result: Any) -> Any:
    """Convert comparison dataclasses (or containers of them) to plain data."""
    if isinstance(result, dict):
        return {key: comparison_to_dict(value) for key, value in result.items()}
    if isinstance(result, list):
        return [comparison_to_dict(item) for item in result]
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result
