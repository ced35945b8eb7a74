"""
Analyzers for trends, period comparisons and anomalies.
"""
from export_analysis.analyzers.trends import (
    TrendResult,
    SeasonalityResult,
    analyze_trend,
    detect_seasonality,
    calculate_ema,
)
from export_analysis.analyzers.comparison import (
    MetricComparison,
    ABTestResult,
    period_over_period,
    year_over_year,
    benchmark_comparison,
    cohort_analysis,
    ab_test_comparison,
)
from export_analysis.analyzers.anomaly import (
    AnomalyRecord,
    AnomalyReport,
    AnomalyDetectionResult,
    detect_outliers_zscore,
    detect_outliers_iqr,
    detect_threshold_anomalies,
    detect_change_points,
    detect_pattern_anomalies,
    detect_anomalies,
)

__all__ = [
    # Trends
    "TrendResult",
    "SeasonalityResult",
    "analyze_trend",
    "detect_seasonality",
    "calculate_ema",
    # Comparison
    "MetricComparison",
    "ABTestResult",
    "period_over_period",
    "year_over_year",
    "benchmark_comparison",
    "cohort_analysis",
    "ab_test_comparison",
    # Anomalies
    "AnomalyRecord",
    "AnomalyReport",
    "AnomalyDetectionResult",
    "detect_outliers_zscore",
    "detect_outliers_iqr",
    "detect_threshold_anomalies",
    "detect_change_points",
    "detect_pattern_anomalies",
    "detect_anomalies",
]
