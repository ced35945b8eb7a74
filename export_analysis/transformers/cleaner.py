"""
Data Cleaning and Normalization

Pure Dataset -> Dataset functions. Each returns new record dicts and never
touches the caller's records.

Unrecognized options (missing-value strategy, date format, target type)
raise UnsupportedOptionError instead of passing the data through.
"""
import math
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional

from export_analysis.core.errors import unsupported
from export_analysis.core.records import (
    Dataset,
    INVALID_DATE,
    hashable_key,
    is_missing,
    is_number,
    as_number,
    numeric_values,
    field_names,
    parse_date,
    population_std,
    mean,
    quartiles,
)

logger = logging.getLogger(__name__)


class MissingValueStrategy(Enum):
    DROP = "drop"
    FILL = "fill"
    FORWARD_FILL = "forward-fill"


class DateFormat(Enum):
    ISO = "iso"              # 2026-01-01T00:00:00.000Z
    DATE = "date"            # 2026-01-01
    TIMESTAMP = "timestamp"  # epoch milliseconds


class TargetType(Enum):
    NUMBER = "number"
    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"


def _coerce(enum_cls, value, option: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise unsupported(option, value, enum_cls) from None


def remove_duplicates(data: Dataset, key_field: str = "id") -> Dataset:
    """
    Keep the first record seen for each key value, in original order.

    Unhashable key values (lists, dicts) are compared by their repr.
    """
    seen = set()
    result = []
    for record in data:
        key = hashable_key(record.get(key_field))
        if key in seen:
            continue
        seen.add(key)
        result.append(dict(record))
    return result


def handle_missing_values(
    data: Dataset,
    strategy: str = "drop",
    fill_value: Any = None,
) -> Dataset:
    """
    Handle missing (absent, None or empty-string) fields.

    Args:
        data: Records to clean
        strategy: "drop", "fill" or "forward-fill"
        fill_value: Replacement for "fill", and the fallback for
            "forward-fill" before a field has been seen

    Raises:
        UnsupportedOptionError: for any other strategy
    """
    strategy = _coerce(MissingValueStrategy, strategy, "missing-value strategy")
    fields = field_names(data)

    def keys_of(record):
        return fields + [k for k in record if k not in fields]

    if strategy == MissingValueStrategy.DROP:
        return [
            dict(record) for record in data
            if not any(is_missing(record.get(key)) for key in keys_of(record))
        ]

    if strategy == MissingValueStrategy.FILL:
        result = []
        for record in data:
            cleaned = {}
            for key in keys_of(record):
                value = record.get(key)
                cleaned[key] = fill_value if is_missing(value) else value
            result.append(cleaned)
        return result

    # Forward fill: last non-missing value per field
    result = []
    last_values: Dict[str, Any] = {}
    for record in data:
        cleaned = {}
        for key in keys_of(record):
            value = record.get(key)
            if is_missing(value):
                cleaned[key] = last_values.get(key, fill_value)
            else:
                cleaned[key] = value
                last_values[key] = value
        result.append(cleaned)
    return result


def _format_iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def normalize_dates(data: Dataset, date_fields: List[str], fmt: str = "iso") -> Dataset:
    """
    Rewrite date fields to one representation.

    Values that fail to parse are not validated: they become "Invalid Date"
    (iso/date) or NaN (timestamp). Empty values are left untouched.
    """
    fmt = _coerce(DateFormat, fmt, "date format")

    result = []
    for record in data:
        normalized = dict(record)
        for name in date_fields:
            value = normalized.get(name)
            if is_missing(value):
                continue
            parsed = parse_date(value)

            if fmt == DateFormat.TIMESTAMP:
                normalized[name] = int(parsed.timestamp() * 1000) if parsed else math.nan
            elif parsed is None:
                normalized[name] = INVALID_DATE
            elif fmt == DateFormat.ISO:
                normalized[name] = _format_iso(parsed)
            else:
                normalized[name] = parsed.strftime("%Y-%m-%d")
        result.append(normalized)
    return result


def normalize_currency(
    data: Dataset,
    currency_fields: List[str],
    target_currency: str = "USD",
    rates: Optional[Dict[str, float]] = None,
) -> Dataset:
    """
    Convert amounts into the target currency.

    The source currency of ``<field>`` is read from ``<field>_currency``
    (defaulting to the target). Amounts are multiplied by ``rates[source]``
    and the marker is rewritten. Amounts whose currency has no registered
    rate are left unconverted; a warning is logged once per currency.
    """
    rates = rates or {}
    warned = set()

    result = []
    for record in data:
        normalized = dict(record)
        for name in currency_fields:
            value = normalized.get(name)
            if value is None:
                continue
            currency = normalized.get(f"{name}_currency") or target_currency
            if currency == target_currency:
                continue
            rate = rates.get(currency)
            if not rate:
                if currency not in warned:
                    logger.warning(
                        f"No exchange rate for {currency} -> {target_currency}; "
                        f"leaving '{name}' unconverted"
                    )
                    warned.add(currency)
                continue
            normalized[name] = _to_float(value) * rate
            normalized[f"{name}_currency"] = target_currency
        result.append(normalized)
    return result


def trim_strings(data: Dataset) -> Dataset:
    """Strip surrounding whitespace from every string value."""
    return [
        {key: value.strip() if isinstance(value, str) else value for key, value in record.items()}
        for record in data
    ]


def _to_float(value: Any) -> float:
    if is_number(value):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return math.nan


def _to_int(value: Any):
    number = _to_float(value)
    if math.isnan(number) or math.isinf(number):
        return math.nan
    return int(number)


def convert_types(data: Dataset, type_map: Dict[str, str]) -> Dataset:
    """
    Convert field types.

    Args:
        type_map: field -> "number" | "integer" | "string" | "boolean" | "date"

    Unparseable numbers become NaN, unparseable dates "Invalid Date".
    """
    targets = {name: _coerce(TargetType, kind, "target type") for name, kind in type_map.items()}

    result = []
    for record in data:
        converted = dict(record)
        for name, target in targets.items():
            value = converted.get(name)
            if value is None:
                continue
            if target == TargetType.NUMBER:
                converted[name] = _to_float(value)
            elif target == TargetType.INTEGER:
                converted[name] = _to_int(value)
            elif target == TargetType.STRING:
                converted[name] = str(value)
            elif target == TargetType.BOOLEAN:
                converted[name] = bool(value)
            else:
                converted[name] = parse_date(value) or INVALID_DATE
        result.append(converted)
    return result


def remove_outliers(data: Dataset, field: str, multiplier: float = 1.5) -> Dataset:
    """
    Drop records outside the IQR fence of a numeric field.

    Records whose field is not numeric are dropped as well.
    """
    values = numeric_values(data, field)
    if not values:
        return [dict(record) for record in data]

    q1, q3 = quartiles(values)
    iqr = q3 - q1
    lower_bound = q1 - multiplier * iqr
    upper_bound = q3 + multiplier * iqr

    return [
        dict(record) for record in data
        if is_number(record.get(field)) and lower_bound <= record[field] <= upper_bound
    ]


def standardize(data: Dataset, field: str) -> Dataset:
    """Append ``<field>_standardized`` holding the population z-score."""
    values = numeric_values(data, field)
    if not values:
        return [dict(record) for record in data]

    avg = mean(values)
    std_dev = population_std(values)

    def z_score(value):
        if not is_number(value):
            return None
        return (as_number(value) - avg) / std_dev if std_dev else 0.0

    return [{**record, f"{field}_standardized": z_score(record.get(field))} for record in data]


@dataclass
class CleaningOptions:
    """Which cleaning steps clean_data runs, and how."""
    remove_duplicates: bool = False
    key_field: str = "id"
    trim_strings: bool = True
    missing_value_strategy: Optional[str] = None
    fill_value: Any = None
    date_fields: List[str] = field(default_factory=list)
    date_format: str = "iso"
    currency_fields: List[str] = field(default_factory=list)
    target_currency: Optional[str] = None  # USD when unset
    currency_rates: Optional[Dict[str, float]] = None
    type_map: Dict[str, str] = field(default_factory=dict)
    remove_outliers: bool = False
    outlier_field: Optional[str] = None
    outlier_multiplier: float = 1.5


def clean_data(data: Dataset, options: Optional[CleaningOptions] = None) -> Dataset:
    """
    Run the cleaning steps in a fixed order.

    dedup -> trim strings -> missing values -> dates -> currency ->
    type conversion -> outlier removal. Each step runs only when its option
    is set.
    """
    options = options or CleaningOptions()
    cleaned = [dict(record) for record in data]

    if options.remove_duplicates:
        cleaned = remove_duplicates(cleaned, options.key_field)

    if options.trim_strings:
        cleaned = trim_strings(cleaned)

    if options.missing_value_strategy:
        cleaned = handle_missing_values(cleaned, options.missing_value_strategy, options.fill_value)

    if options.date_fields:
        cleaned = normalize_dates(cleaned, options.date_fields, options.date_format)

    if options.currency_fields:
        cleaned = normalize_currency(
            cleaned, options.currency_fields, options.target_currency or "USD", options.currency_rates
        )

    if options.type_map:
        cleaned = convert_types(cleaned, options.type_map)

    if options.remove_outliers and options.outlier_field:
        cleaned = remove_outliers(cleaned, options.outlier_field, options.outlier_multiplier)

    logger.debug(f"Cleaned {len(data)} -> {len(cleaned)} records")
    return cleaned
