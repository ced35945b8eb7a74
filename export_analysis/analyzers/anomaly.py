"""
Anomaly Detection

Statistical outliers (z-score, IQR), fixed thresholds, abrupt level changes
and deviations from a weekday pattern. Every flagged record is reported
with its position in the input dataset, which is also its identity when
results from several methods are combined.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Optional, Sequence

import numpy as np

from export_analysis.core.errors import unsupported
from export_analysis.core.records import (
    Dataset,
    Record,
    as_number,
    is_number,
    numeric_array,
    parse_date,
    mean,
    quartiles,
)

logger = logging.getLogger(__name__)


class DetectionMethod(Enum):
    ZSCORE = "zscore"
    IQR = "iqr"


class ExpectedPattern(Enum):
    WEEKLY = "weekly"


@dataclass
class AnomalyRecord:
    """A flagged record and the value that flagged it."""
    index: int
    record: Record
    value: float
    score: Optional[float] = None  # |z| for zscore, None otherwise

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "record": self.record,
            "value": self.value,
            "score": self.score,
        }


@dataclass
class AnomalyReport:
    """Output of a single detection method."""
    method: str
    outliers: List[AnomalyRecord] = field(default_factory=list)
    anomaly_rate: float = 0.0  # % of all records
    statistics: Dict[str, Any] = field(default_factory=dict)

    @property
    def indices(self) -> List[int]:
        return [outlier.index for outlier in self.outliers]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "outliers": [outlier.to_dict() for outlier in self.outliers],
            "count": len(self.outliers),
            "anomaly_rate": self.anomaly_rate,
            "statistics": self.statistics,
        }


@dataclass
class ChangePoint:
    index: int
    record: Record
    magnitude: float
    direction: str  # increase | decrease

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "record": self.record,
            "magnitude": self.magnitude,
            "direction": self.direction,
        }


@dataclass
class PatternAnomaly:
    index: int
    record: Record
    expected: float
    actual: float
    deviation: float  # percent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "record": self.record,
            "expected": self.expected,
            "actual": self.actual,
            "deviation": self.deviation,
        }


@dataclass
class AnomalyDetectionResult:
    """Combined result of detect_anomalies()."""
    anomalies: List[AnomalyRecord]
    by_method: Dict[str, AnomalyReport]
    anomaly_rate: float

    @property
    def total_anomalies(self) -> int:
        return len(self.anomalies)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anomalies": [anomaly.to_dict() for anomaly in self.anomalies],
            "total_anomalies": self.total_anomalies,
            "anomaly_rate": self.anomaly_rate,
            "by_method": {name: report.to_dict() for name, report in self.by_method.items()},
        }


def _rate(count: int, total: int) -> float:
    return count / total * 100 if total else 0.0


def detect_outliers_zscore(data: Dataset, field: str, threshold: float = 3) -> AnomalyReport:
    """
    Flag values with |z| > threshold, using the population std-dev.

    A constant series (std-dev 0) has no outliers.
    """
    indices, values = numeric_array(data, field)
    if values.size == 0:
        return AnomalyReport(method=DetectionMethod.ZSCORE.value)

    avg = float(values.mean())
    std_dev = float(values.std(ddof=0))

    outliers = []
    if std_dev > 0:
        z_scores = np.abs((values - avg) / std_dev)
        mask = z_scores > threshold
        outliers = [
            AnomalyRecord(int(index), data[index], float(value), float(z_score))
            for index, value, z_score in zip(indices[mask], values[mask], z_scores[mask])
        ]

    return AnomalyReport(
        method=DetectionMethod.ZSCORE.value,
        outliers=outliers,
        anomaly_rate=_rate(len(outliers), len(data)),
        statistics={"mean": avg, "std_dev": std_dev, "threshold": threshold},
    )


def detect_outliers_iqr(data: Dataset, field: str, multiplier: float = 1.5) -> AnomalyReport:
    """Flag values outside [Q1 - m*IQR, Q3 + m*IQR]."""
    indices, values = numeric_array(data, field)
    if values.size == 0:
        return AnomalyReport(method=DetectionMethod.IQR.value)

    q1, q3 = quartiles(values)
    iqr = q3 - q1
    lower_bound = q1 - multiplier * iqr
    upper_bound = q3 + multiplier * iqr

    mask = (values < lower_bound) | (values > upper_bound)
    outliers = [
        AnomalyRecord(int(index), data[index], float(value))
        for index, value in zip(indices[mask], values[mask])
    ]

    return AnomalyReport(
        method=DetectionMethod.IQR.value,
        outliers=outliers,
        anomaly_rate=_rate(len(outliers), len(data)),
        statistics={
            "q1": q1,
            "q3": q3,
            "iqr": iqr,
            "lower_bound": lower_bound,
            "upper_bound": upper_bound,
        },
    )


def detect_threshold_anomalies(
    data: Dataset,
    field: str,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> AnomalyReport:
    """Flag values below ``minimum`` or above ``maximum`` (either bound optional)."""
    outliers = []
    for index, record in enumerate(data):
        value = record.get(field)
        if not is_number(value):
            continue
        value = as_number(value)
        if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
            outliers.append(AnomalyRecord(index, record, value))

    return AnomalyReport(
        method="threshold",
        outliers=outliers,
        anomaly_rate=_rate(len(outliers), len(data)),
        statistics={"minimum": minimum, "maximum": maximum},
    )


def detect_change_points(data: Dataset, field: str, sensitivity: float = 2) -> List[ChangePoint]:
    """
    Flag abrupt level shifts.

    Record ``i`` is a change point when ``|x[i] - x[i-1]|`` exceeds
    ``sensitivity`` times the mean absolute step of the whole series.
    Steps touching a non-numeric value are ignored. Input order is used
    as-is (pre-sort by date).
    """
    steps = []
    for index in range(1, len(data)):
        prev = data[index - 1].get(field)
        curr = data[index].get(field)
        if is_number(prev) and is_number(curr):
            steps.append((index, as_number(curr) - as_number(prev)))

    if len(steps) < 2:
        return []

    mean_step = mean([abs(delta) for _, delta in steps])
    if mean_step == 0:
        return []

    cutoff = mean_step * sensitivity
    return [
        ChangePoint(
            index=index,
            record=data[index],
            magnitude=abs(delta),
            direction="increase" if delta > 0 else "decrease",
        )
        for index, delta in steps
        if abs(delta) > cutoff
    ]


def detect_pattern_anomalies(
    data: Dataset,
    field: str,
    date_field: str,
    expected_pattern: str = "weekly",
    deviation_threshold: float = 0.5,
) -> List[PatternAnomaly]:
    """
    Flag values far from the average of their calendar weekday.

    A record is anomalous when ``|actual - expected| / expected`` exceeds
    ``deviation_threshold``; weekdays whose average is 0 are skipped, as
    are records without a parseable date.
    """
    try:
        ExpectedPattern(expected_pattern)
    except ValueError:
        raise unsupported("expected pattern", expected_pattern, ExpectedPattern) from None

    weekdays: Dict[int, List[float]] = {}
    dated = []
    for index, record in enumerate(data):
        parsed = parse_date(record.get(date_field))
        value = record.get(field)
        if parsed is None or not is_number(value):
            continue
        value = as_number(value)
        weekdays.setdefault(parsed.weekday(), []).append(value)
        dated.append((index, record, parsed.weekday(), value))

    averages = {day: mean(values) for day, values in weekdays.items()}

    anomalies = []
    for index, record, weekday, actual in dated:
        expected = averages[weekday]
        if not expected:
            continue
        deviation = abs(actual - expected) / abs(expected)
        if deviation > deviation_threshold:
            anomalies.append(PatternAnomaly(
                index=index,
                record=record,
                expected=expected,
                actual=actual,
                deviation=deviation * 100,
            ))
    return anomalies


def detect_anomalies(
    data: Dataset,
    field: str,
    methods: Sequence[str] = ("zscore", "iqr"),
    threshold: float = 3,
    multiplier: float = 1.5,
) -> AnomalyDetectionResult:
    """
    Run several detectors and combine their flags.

    A record flagged by more than one method is reported once, keyed on
    its index; anomalies are returned in dataset order.
    """
    resolved = []
    for method in methods:
        try:
            resolved.append(method if isinstance(method, DetectionMethod) else DetectionMethod(method))
        except ValueError:
            raise unsupported("anomaly method", method, DetectionMethod) from None

    by_method: Dict[str, AnomalyReport] = {}
    flagged: Dict[int, AnomalyRecord] = {}

    for method in resolved:
        if method == DetectionMethod.ZSCORE:
            report = detect_outliers_zscore(data, field, threshold)
        else:
            report = detect_outliers_iqr(data, field, multiplier)
        by_method[method.value] = report
        for outlier in report.outliers:
            flagged.setdefault(outlier.index, outlier)

    anomalies = [flagged[index] for index in sorted(flagged)]
    logger.info(f"Anomaly detection on '{field}': {len(anomalies)} of {len(data)} records flagged")

    return AnomalyDetectionResult(
        anomalies=anomalies,
        by_method=by_method,
        anomaly_rate=_rate(len(anomalies), len(data)),
    )
