"""
Tests for anomaly detection.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from export_analysis.core.errors import UnsupportedOptionError
from export_analysis.analyzers.anomaly import (
    detect_anomalies,
    detect_change_points,
    detect_outliers_iqr,
    detect_outliers_zscore,
    detect_pattern_anomalies,
    detect_threshold_anomalies,
)


@pytest.fixture
def spiky():
    """Ten ordinary values and one spike at index 10."""
    return [{"v": v} for v in [10, 12, 11, 13, 12, 11, 10, 12, 11, 13, 100]]


class TestStatisticalOutliers:
    """Tests for z-score and IQR detection."""

    def test_zscore_flags_spike(self, spiky):
        report = detect_outliers_zscore(spiky, "v", threshold=2)
        assert report.indices == [10]
        assert report.outliers[0].score > 2
        assert report.anomaly_rate == pytest.approx(100 / 11)

    def test_zscore_constant_series(self):
        report = detect_outliers_zscore([{"v": 5}] * 4, "v")
        assert report.outliers == []
        assert report.statistics["std_dev"] == 0

    def test_iqr_flags_spike(self, spiky):
        report = detect_outliers_iqr(spiky, "v")
        assert report.indices == [10]
        assert report.statistics["q1"] == 11
        assert report.statistics["q3"] == 13

    def test_decimal_values_are_numeric(self):
        data = [{"v": Decimal(v)} for v in ["100", "110", "105", "95", "102", "98", "101", "99", "103", "97", "1000"]]
        iqr = detect_outliers_iqr(data, "v")
        assert iqr.indices == [10]
        assert iqr.outliers[0].value == 1000.0
        assert detect_outliers_zscore(data, "v", threshold=2).indices == [10]

    def test_statistics_are_plain_floats(self, spiky):
        report = detect_outliers_zscore(spiky, "v")
        assert type(report.statistics["mean"]) is float
        assert type(report.statistics["std_dev"]) is float
        assert type(detect_outliers_iqr(spiky, "v").outliers[0].index) is int

    def test_empty_data(self):
        assert detect_outliers_iqr([], "v").anomaly_rate == 0
        assert detect_outliers_zscore([{"v": "x"}], "v").outliers == []


class TestThresholds:
    """Tests for fixed-bound detection."""

    def test_min_and_max(self):
        data = [{"v": 1}, {"v": 5}, {"v": 20}, {"v": None}]
        report = detect_threshold_anomalies(data, "v", minimum=2, maximum=10)
        assert report.indices == [0, 2]
        assert report.anomaly_rate == 50

    def test_single_bound(self):
        data = [{"v": 1}, {"v": 50}]
        assert detect_threshold_anomalies(data, "v", maximum=10).indices == [1]


class TestChangePoints:
    """Tests for level-shift detection."""

    def test_level_shift(self):
        data = [{"v": v} for v in [10, 11, 10, 11, 10, 50, 51, 50]]
        points = detect_change_points(data, "v", sensitivity=2)
        assert [p.index for p in points] == [5]
        assert points[0].direction == "increase"
        assert points[0].magnitude == 40

    def test_steady_series_has_none(self):
        data = [{"v": v} for v in [1, 2, 3, 4, 5]]
        assert detect_change_points(data, "v") == []

    def test_short_series(self):
        assert detect_change_points([{"v": 1}, {"v": 9}], "v") == []


class TestPatternAnomalies:
    """Tests for weekday-pattern deviations."""

    def test_flags_unusual_monday(self):
        # 2024-01-01 is a Monday
        start = date(2024, 1, 1)
        data = [
            {"date": (start + timedelta(days=i)).isoformat(), "v": 100}
            for i in range(21)
        ]
        data[7]["v"] = 400
        anomalies = detect_pattern_anomalies(data, "v", "date")
        assert [a.index for a in anomalies] == [7]
        assert anomalies[0].expected == pytest.approx(200)
        assert anomalies[0].deviation == pytest.approx(100)

    def test_unknown_pattern_raises(self):
        with pytest.raises(UnsupportedOptionError):
            detect_pattern_anomalies([], "v", "date", expected_pattern="monthly")


class TestDetectAnomalies:
    """Tests for combined detection."""

    def test_deduplicates_by_index(self, spiky):
        result = detect_anomalies(spiky, "v", threshold=2)
        assert result.total_anomalies == 1
        assert result.anomalies[0].index == 10
        assert set(result.by_method) == {"zscore", "iqr"}

    def test_equal_records_are_distinct(self):
        data = [{"v": 1}] * 8 + [{"v": 100}, {"v": 100}]
        result = detect_anomalies(data, "v", methods=["iqr"])
        assert [a.index for a in result.anomalies] == [8, 9]
        assert result.anomaly_rate == 20

    def test_unknown_method_raises(self, spiky):
        with pytest.raises(UnsupportedOptionError):
            detect_anomalies(spiky, "v", methods=["zscore", "isolation-forest"])

    def test_to_dict(self, spiky):
        data = detect_anomalies(spiky, "v", threshold=2).to_dict()
        assert data["total_anomalies"] == 1
        assert data["by_method"]["iqr"]["count"] == 1
