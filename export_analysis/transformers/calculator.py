"""
Derived Fields and KPI Calculations

Every function appends fields to copies of the input records and never
removes existing ones. Divisions by zero yield 0 instead of raising.

Calculations can be chained with apply_calculations(), which takes a list
of typed calculation objects (one dataclass per kind). Order matters: a
later calculation may read a field produced by an earlier one.
"""
import math
import logging
from dataclasses import MISSING, dataclass, fields as dataclass_fields
from typing import List, Dict, Any, Optional, Callable, Union

from export_analysis.core.errors import DataError, UnsupportedOptionError
from export_analysis.core.records import (
    Dataset,
    Record,
    is_number,
    to_number,
    numeric_values,
    sort_by_date,
)

logger = logging.getLogger(__name__)


def _safe_divide(numerator: float, denominator: float) -> float:
    """Division that returns 0 for a zero denominator."""
    if denominator == 0:
        return 0
    return numerator / denominator


def add_calculated_field(
    data: Dataset,
    field_name: str,
    formula: Callable[[Record], Any],
) -> Dataset:
    """Append a field computed by ``formula(record)``."""
    return [{**record, field_name: formula(record)} for record in data]


# ==================== TIME SERIES ====================

def calculate_growth(data: Dataset, value_field: str, date_field: str) -> Dataset:
    """
    Period-over-period growth.

    Sorts by ``date_field`` first (unlike the other calculations, which use
    the order they are given). The first record gets ``growth_rate = 0`` and
    no absolute change; later records get
    ``growth_rate = (current - previous) / previous * 100`` (0 when previous
    is 0) and ``growth_absolute = current - previous``.
    """
    ordered = sort_by_date(data, date_field)

    result = []
    for index, record in enumerate(ordered):
        if index == 0:
            result.append({**record, "growth_rate": 0})
            continue

        current = to_number(record.get(value_field))
        previous = to_number(ordered[index - 1].get(value_field))

        result.append({
            **record,
            "growth_rate": _safe_divide((current - previous) * 100, previous),
            "growth_absolute": current - previous,
        })
    return result


def calculate_moving_average(
    data: Dataset,
    value_field: str,
    window: int = 7,
    output_field: Optional[str] = None,
) -> Dataset:
    """
    Trailing moving average over the current row and up to ``window - 1``
    preceding rows, in the order given (pre-sort by date).

    Non-numeric values are skipped inside the window; a window with no
    numeric values yields None.
    """
    if window < 1:
        raise UnsupportedOptionError("moving-average window", window)

    output_field = output_field or f"{value_field}_ma{window}"

    result = []
    for index, record in enumerate(data):
        start = max(0, index - window + 1)
        values = numeric_values(data[start:index + 1], value_field)
        avg = sum(values) / len(values) if values else None
        result.append({**record, output_field: avg})
    return result


def calculate_cumulative_sum(data: Dataset, value_field: str) -> Dataset:
    """Running total in ``<field>_cumsum``; missing values count as 0."""
    running = 0
    result = []
    for record in data:
        running += to_number(record.get(value_field))
        result.append({**record, f"{value_field}_cumsum": running})
    return result


def calculate_percentage_of_total(data: Dataset, value_field: str) -> Dataset:
    """Share of the column total in ``<field>_pct`` (0 when the total is 0)."""
    total = sum(to_number(record.get(value_field)) for record in data)
    return [
        {
            **record,
            f"{value_field}_pct": _safe_divide(to_number(record.get(value_field)) * 100, total),
        }
        for record in data
    ]


# ==================== KPIs ====================

def calculate_roi(data: Dataset, revenue_field: str, cost_field: str) -> Dataset:
    """ROI % in ``roi`` and ``profit = revenue - cost``."""
    result = []
    for record in data:
        revenue = to_number(record.get(revenue_field))
        cost = to_number(record.get(cost_field))
        roi = (revenue - cost) / cost * 100 if cost > 0 else 0
        result.append({**record, "roi": roi, "profit": revenue - cost})
    return result


def calculate_cac(data: Dataset, marketing_spend_field: str, new_customers_field: str) -> Dataset:
    """Customer acquisition cost: spend / new customers."""
    result = []
    for record in data:
        spend = to_number(record.get(marketing_spend_field))
        customers = to_number(record.get(new_customers_field))
        result.append({**record, "cac": spend / customers if customers > 0 else 0})
    return result


def calculate_ltv(
    data: Dataset,
    avg_revenue_field: str,
    churn_rate_field: str,
    default_churn_rate: float = 0.1,
) -> Dataset:
    """
    Lifetime value: average revenue / churn rate.

    A missing or zero churn rate falls back to ``default_churn_rate``.
    """
    result = []
    for record in data:
        avg_revenue = to_number(record.get(avg_revenue_field))
        churn_rate = to_number(record.get(churn_rate_field)) or default_churn_rate
        ltv = avg_revenue / churn_rate if churn_rate > 0 else 0
        result.append({**record, "ltv": ltv})
    return result


def calculate_churn_rate(
    data: Dataset,
    customers_start_field: str,
    customers_lost_field: str,
) -> Dataset:
    """Churn % in ``churn_rate``: lost / customers at period start."""
    result = []
    for record in data:
        start = to_number(record.get(customers_start_field))
        lost = to_number(record.get(customers_lost_field))
        result.append({**record, "churn_rate": lost / start * 100 if start > 0 else 0})
    return result


def calculate_conversion_rate(data: Dataset, conversions_field: str, visits_field: str) -> Dataset:
    """Conversion % in ``conversion_rate``."""
    result = []
    for record in data:
        conversions = to_number(record.get(conversions_field))
        visits = to_number(record.get(visits_field))
        rate = conversions / visits * 100 if visits > 0 else 0
        result.append({**record, "conversion_rate": rate})
    return result


def calculate_aov(data: Dataset, revenue_field: str, orders_field: str) -> Dataset:
    """Average order value in ``aov``."""
    result = []
    for record in data:
        revenue = to_number(record.get(revenue_field))
        orders = to_number(record.get(orders_field))
        result.append({**record, "aov": revenue / orders if orders > 0 else 0})
    return result


# ==================== RANKING ====================

def rank_records(data: Dataset, value_field: str, ascending: bool = False) -> Dataset:
    """
    Sort by a field (descending unless ``ascending``) and add a 1-based ``rank``.

    The sort is stable; records without a numeric value rank last.
    """
    numeric = [r for r in data if is_number(r.get(value_field))]
    other = [r for r in data if not is_number(r.get(value_field))]
    ordered = sorted(numeric, key=lambda r: r[value_field], reverse=not ascending) + other
    return [{**record, "rank": index + 1} for index, record in enumerate(ordered)]


def calculate_percentile(data: Dataset, value_field: str, percentile: float) -> Optional[float]:
    """Nearest-rank percentile: sorted[ceil(p/100 * n) - 1], clamped at 0."""
    values = sorted(numeric_values(data, value_field))
    if not values:
        return None
    index = math.ceil(percentile / 100 * len(values)) - 1
    return values[min(max(0, index), len(values) - 1)]


# ==================== CALCULATION PIPELINE ====================

@dataclass(frozen=True)
class GrowthCalculation:
    value_field: str
    date_field: str


@dataclass(frozen=True)
class MovingAverageCalculation:
    value_field: str
    window: int = 7


@dataclass(frozen=True)
class CumulativeSumCalculation:
    value_field: str


@dataclass(frozen=True)
class PercentageCalculation:
    value_field: str


@dataclass(frozen=True)
class ROICalculation:
    revenue_field: str
    cost_field: str


@dataclass(frozen=True)
class CACCalculation:
    marketing_spend_field: str
    new_customers_field: str


@dataclass(frozen=True)
class LTVCalculation:
    avg_revenue_field: str
    churn_rate_field: str
    default_churn_rate: float = 0.1


@dataclass(frozen=True)
class ChurnRateCalculation:
    customers_start_field: str
    customers_lost_field: str


@dataclass(frozen=True)
class ConversionRateCalculation:
    conversions_field: str
    visits_field: str


@dataclass(frozen=True)
class AOVCalculation:
    revenue_field: str
    orders_field: str


@dataclass(frozen=True)
class RankCalculation:
    value_field: str
    ascending: bool = False


@dataclass(frozen=True)
class CustomCalculation:
    field_name: str
    formula: Callable[[Record], Any]


Calculation = Union[
    GrowthCalculation,
    MovingAverageCalculation,
    CumulativeSumCalculation,
    PercentageCalculation,
    ROICalculation,
    CACCalculation,
    LTVCalculation,
    ChurnRateCalculation,
    ConversionRateCalculation,
    AOVCalculation,
    RankCalculation,
    CustomCalculation,
]

# Type tag used in YAML/JSON calculation specs
CALCULATION_TYPES: Dict[str, type] = {
    "growth": GrowthCalculation,
    "moving-average": MovingAverageCalculation,
    "cumsum": CumulativeSumCalculation,
    "percentage": PercentageCalculation,
    "roi": ROICalculation,
    "cac": CACCalculation,
    "ltv": LTVCalculation,
    "churn": ChurnRateCalculation,
    "conversion": ConversionRateCalculation,
    "aov": AOVCalculation,
    "rank": RankCalculation,
    "custom": CustomCalculation,
}


def calculation_from_dict(spec: Dict[str, Any]) -> Calculation:
    """
    Build a calculation from a ``{"type": ..., **params}`` mapping.

    Parameter names are the dataclass field names, e.g.
    ``{"type": "moving-average", "value_field": "revenue", "window": 3}``.

    Raises:
        UnsupportedOptionError: unknown type or parameter
        DataError: a required parameter is missing, or a custom formula is
            not callable
    """
    kind = spec.get("type")
    cls = CALCULATION_TYPES.get(kind)
    if cls is None:
        raise UnsupportedOptionError("calculation type", kind, list(CALCULATION_TYPES))

    allowed = {f.name for f in dataclass_fields(cls)}
    params = {key: value for key, value in spec.items() if key != "type"}
    unknown = set(params) - allowed
    if unknown:
        raise UnsupportedOptionError(f"{kind} parameter", sorted(unknown)[0], sorted(allowed))

    missing = [
        f.name for f in dataclass_fields(cls)
        if f.default is MISSING and f.default_factory is MISSING and f.name not in params
    ]
    if missing:
        raise DataError(
            f"{kind} calculation is missing required parameter(s): {', '.join(missing)}",
            {"type": kind, "missing": missing},
        )
    if cls is CustomCalculation and not callable(params["formula"]):
        raise DataError(
            f"custom calculation formula for '{params['field_name']}' is not callable",
            {"type": kind, "field_name": params["field_name"]},
        )
    return cls(**params)


def apply_calculation(data: Dataset, calc: Calculation) -> Dataset:
    """Apply a single calculation."""
    if isinstance(calc, GrowthCalculation):
        return calculate_growth(data, calc.value_field, calc.date_field)
    if isinstance(calc, MovingAverageCalculation):
        return calculate_moving_average(data, calc.value_field, calc.window)
    if isinstance(calc, CumulativeSumCalculation):
        return calculate_cumulative_sum(data, calc.value_field)
    if isinstance(calc, PercentageCalculation):
        return calculate_percentage_of_total(data, calc.value_field)
    if isinstance(calc, ROICalculation):
        return calculate_roi(data, calc.revenue_field, calc.cost_field)
    if isinstance(calc, CACCalculation):
        return calculate_cac(data, calc.marketing_spend_field, calc.new_customers_field)
    if isinstance(calc, LTVCalculation):
        return calculate_ltv(data, calc.avg_revenue_field, calc.churn_rate_field, calc.default_churn_rate)
    if isinstance(calc, ChurnRateCalculation):
        return calculate_churn_rate(data, calc.customers_start_field, calc.customers_lost_field)
    if isinstance(calc, ConversionRateCalculation):
        return calculate_conversion_rate(data, calc.conversions_field, calc.visits_field)
    if isinstance(calc, AOVCalculation):
        return calculate_aov(data, calc.revenue_field, calc.orders_field)
    if isinstance(calc, RankCalculation):
        return rank_records(data, calc.value_field, calc.ascending)
    if isinstance(calc, CustomCalculation):
        return add_calculated_field(data, calc.field_name, calc.formula)
    raise UnsupportedOptionError("calculation", type(calc).__name__, list(CALCULATION_TYPES))


def apply_calculations(
    data: Dataset,
    calculations: List[Union[Calculation, Dict[str, Any]]],
) -> Dataset:
    """
    Apply calculations in list order.

    Accepts calculation objects or ``{"type": ...}`` mappings.
    """
    result = [dict(record) for record in data]
    for calc in calculations:
        if isinstance(calc, dict):
            calc = calculation_from_dict(calc)
        result = apply_calculation(result, calc)
        logger.debug(f"Applied {type(calc).__name__}")
    return result
