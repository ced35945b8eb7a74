"""
Record transformers: cleaning, merging and derived calculations.
"""
from export_analysis.transformers.cleaner import (
    CleaningOptions,
    clean_data,
    remove_duplicates,
    handle_missing_values,
    normalize_dates,
    normalize_currency,
    trim_strings,
    convert_types,
    remove_outliers,
    standardize,
)
from export_analysis.transformers.merger import (
    JoinPrefix,
    CommonKey,
    merge_data,
    detect_common_key,
    union_data,
    group_by,
    pivot,
)
from export_analysis.transformers.calculator import (
    calculation_from_dict,
    apply_calculation,
    apply_calculations,
    calculate_growth,
    calculate_moving_average,
    calculate_cumulative_sum,
    calculate_percentage_of_total,
    rank_records,
    calculate_percentile,
)

__all__ = [
    # Cleaning
    "CleaningOptions",
    "clean_data",
    "remove_duplicates",
    "handle_missing_values",
    "normalize_dates",
    "normalize_currency",
    "trim_strings",
    "convert_types",
    "remove_outliers",
    "standardize",
    # Merging
    "JoinPrefix",
    "CommonKey",
    "merge_data",
    "detect_common_key",
    "union_data",
    "group_by",
    "pivot",
    # Calculations
    "calculation_from_dict",
    "apply_calculation",
    "apply_calculations",
    "calculate_growth",
    "calculate_moving_average",
    "calculate_cumulative_sum",
    "calculate_percentage_of_total",
    "rank_records",
    "calculate_percentile",
]
