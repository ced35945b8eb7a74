"""
Tests for period, benchmark, cohort and A/B comparisons.
"""
import pytest

from export_analysis.core.errors import UnsupportedOptionError
from export_analysis.analyzers.comparison import (
    ab_test_comparison,
    benchmark_comparison,
    bucketed_p_value,
    cohort_analysis,
    period_over_period,
    t_statistic,
    year_over_year,
)


class TestPeriodOverPeriod:
    """Tests for two-period metric comparison."""

    def test_change_and_trend(self):
        previous = [{"revenue": 100, "orders": 5}]
        current = [{"revenue": 60}, {"revenue": 90, "orders": 5}]
        result = period_over_period(current, previous, ["revenue", "orders"])

        assert result["revenue"].current == 150
        assert result["revenue"].change == 50
        assert result["revenue"].change_percent == 50
        assert result["revenue"].trend == "up"
        assert result["orders"].trend == "stable"

    def test_zero_previous_gives_zero_percent(self):
        result = period_over_period([{"v": 10}], [{"v": 0}], ["v"])
        assert result["v"].change_percent == 0
        assert result["v"].trend == "up"


class TestYearOverYear:
    """Tests for month-by-month comparison."""

    def test_twelve_months(self):
        this_year = [{"d": "2024-01-15", "v": 30}, {"d": "2024-03-01", "v": 10}]
        last_year = [{"d": "2023-01-10", "v": 20}, {"d": "bad", "v": 999}]
        result = year_over_year(this_year, last_year, ["v"], "d")

        assert len(result) == 12
        assert result[0].month == 1
        assert result[0].metrics["v"].change_percent == 50
        assert result[1].metrics["v"].current == 0
        assert result[2].metrics["v"].trend == "up"
        assert result[0].to_dict()["metrics"]["v"]["previous"] == 20


class TestBenchmarkComparison:
    """Tests for target comparisons."""

    def test_above_and_below(self):
        data = [{"revenue": 120, "leads": 40}]
        result = benchmark_comparison(data, {"revenue": 100, "leads": 50}, ["revenue", "leads", "other"])
        assert result["revenue"].status == "above"
        assert result["revenue"].difference_percent == 20
        assert result["leads"].status == "below"
        assert "other" not in result


class TestCohortAnalysis:
    """Tests for cohort summaries."""

    def test_summary_per_cohort(self):
        data = [
            {"cohort": "2024-01", "date": "2024-02-01", "value": 30},
            {"cohort": "2024-01", "date": "2024-01-05", "value": 10},
            {"cohort": "2024-02", "date": "2024-02-10", "value": 5},
        ]
        result = cohort_analysis(data, "cohort", "date", "value")
        jan = result["2024-01"]
        assert jan.size == 2
        assert jan.total_value == 40
        assert jan.avg_value == 20
        assert jan.first_date == "2024-01-05"
        assert jan.last_date == "2024-02-01"
        assert result["2024-02"].size == 1


class TestABTest:
    """Tests for A/B comparisons."""

    def test_t_statistic_needs_two_values_per_group(self):
        assert t_statistic([1.0], [2.0, 3.0]) == 0.0
        assert t_statistic([1.0, 1.0], [1.0, 1.0]) == 0.0

    def test_t_statistic_pooled_variance(self):
        t_stat = t_statistic([1.0, 2.0, 3.0, 4.0], [1.5, 2.5, 3.5, 4.5])
        assert t_stat == pytest.approx(0.5477, abs=1e-4)
        assert t_statistic([1.5, 2.5, 3.5, 4.5], [1.0, 2.0, 3.0, 4.0]) == pytest.approx(-t_stat)
        assert type(t_stat) is float

    def test_bucketed_p_values(self):
        assert bucketed_p_value(3.0) == 0.01
        assert bucketed_p_value(-2.0) == 0.05
        assert bucketed_p_value(1.7) == 0.10
        assert bucketed_p_value(0.5) == 0.20

    def test_clear_winner(self):
        group_a = [{"conv": v} for v in [1.0, 1.1, 0.9, 1.0, 1.05, 0.95]]
        group_b = [{"conv": v} for v in [2.0, 2.1, 1.9, 2.0, 2.05, 1.95]]
        result = ab_test_comparison(group_a, group_b, ["conv"])["conv"]

        assert result.winner == "B"
        assert result.difference == pytest.approx(1.0)
        assert result.difference_percent == pytest.approx(100.0)
        assert result.t_statistic > 2.576
        assert result.p_value == 0.01
        assert result.significant is True
        assert result.p_value_method == "bucketed"

    def test_student_t_p_value(self):
        group_a = [{"v": v} for v in [1.0, 2.0, 3.0, 4.0]]
        group_b = [{"v": v} for v in [1.5, 2.5, 3.5, 4.5]]
        result = ab_test_comparison(group_a, group_b, ["v"], p_value_method="student_t")["v"]

        assert result.p_value_method == "student_t"
        assert 0.5 < result.p_value < 1.0
        assert result.significant is False

    def test_identical_groups_tie(self):
        group = [{"v": 1}, {"v": 2}]
        result = ab_test_comparison(group, group, ["v"])["v"]
        assert result.winner == "tie"
        assert result.p_value == 0.20

    def test_unknown_p_value_method_raises(self):
        with pytest.raises(UnsupportedOptionError):
            ab_test_comparison([{"v": 1}], [{"v": 2}], ["v"], p_value_method="bayesian")
