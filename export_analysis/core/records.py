"""
Record helpers shared by the transformers, analyzers and exporters.

A Record is a flat ``Dict[str, Any]`` and a Dataset is a ``List[Record]``.
The field set of a dataset is inferred from its first record (exporters
write the union of all keys); a key that is absent, ``None`` or ``""``
counts as missing.
"""
import math
import numbers
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Dict, Any, Optional, Iterable

import numpy as np

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Dataset = List[Record]

INVALID_DATE = "Invalid Date"

_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%m/%d/%Y", "%Y/%m/%d", "%Y%m%d"]


def is_number(value: Any) -> bool:
    """True for int/float/Decimal values (bool excluded)."""
    return isinstance(value, (numbers.Real, Decimal)) and not isinstance(value, bool)


def as_number(value: Any) -> Any:
    """Decimal as float (SQL DECIMAL/NUMERIC columns); other values unchanged."""
    if isinstance(value, Decimal):
        return float(value)
    return value


def is_missing(value: Any) -> bool:
    """True for None and empty strings."""
    return value is None or (isinstance(value, str) and value == "")


def hashable_key(value: Any) -> Any:
    """
    Value usable as a dict/set key.

    Lists, dicts and other unhashable values are keyed on their ``repr``,
    so two equal lists land in the same group.
    """
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def to_number(value: Any) -> float:
    """Numeric value, or 0 when missing/non-numeric/NaN."""
    if is_number(value) and not math.isnan(value):
        return as_number(value)
    return 0


def numeric_values(data: Iterable[Record], field: str) -> List[float]:
    """Numeric values of a field, skipping everything else."""
    return [as_number(record.get(field)) for record in data if is_number(record.get(field))]


def field_names(data: Dataset) -> List[str]:
    """Field names of a dataset (the first record's keys)."""
    if not data:
        return []
    return list(data[0].keys())


def all_field_names(data: Dataset) -> List[str]:
    """Every key of every record, in first-seen order."""
    names: Dict[str, None] = {}
    for record in data:
        for name in record:
            names.setdefault(name)
    return list(names)


def first_numeric_field(data: Dataset) -> Optional[str]:
    """First field whose value in the first record is numeric."""
    for name in field_names(data):
        if is_number(data[0].get(name)):
            return name
    return None


def first_date_field(data: Dataset) -> Optional[str]:
    """First field whose name looks like a date/time column."""
    for name in field_names(data):
        lowered = name.lower()
        if "date" in lowered or "time" in lowered:
            return name
    return None


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date-like value into a timezone-aware UTC datetime.

    Accepts datetime, date, ISO-8601 strings (with or without a trailing Z),
    common day formats and epoch milliseconds. Naive values are read as UTC.
    Returns None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif is_number(value):
        if math.isnan(value):
            return None
        try:
            return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def date_sort_key(value: Any):
    """Sort key placing unparseable dates after every valid one."""
    parsed = parse_date(value)
    if parsed is None:
        return (1, 0.0)
    return (0, parsed.timestamp())


def sort_by_date(data: Dataset, date_field: str) -> Dataset:
    """Stable ascending sort on a date field; returns a new list."""
    return sorted(data, key=lambda record: date_sort_key(record.get(date_field)))


def numeric_array(data: Dataset, field: str):
    """
    Numeric values of a field as a float array, with their record indices.

    Returns ``(indices, values)``; non-numeric records are left out.
    """
    indices = [index for index, record in enumerate(data) if is_number(record.get(field))]
    values = np.asarray([as_number(data[index][field]) for index in indices], dtype=float)
    return np.asarray(indices, dtype=int), values


def mean(values) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def population_std(values) -> float:
    """Standard deviation dividing by n."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def quartiles(values):
    """
    Q1 and Q3 by sorted position: index floor(n*0.25) and floor(n*0.75).

    No interpolation. Used by both outlier removal and IQR anomaly detection
    so they agree on the same bounds.
    """
    ordered = np.sort(np.asarray(values, dtype=float))
    n = len(ordered)
    return float(ordered[math.floor(n * 0.25)]), float(ordered[math.floor(n * 0.75)])
