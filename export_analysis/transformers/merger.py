"""
Data Merging and Joining

Relational joins, vertical unions, group-by aggregation and pivots over
record lists.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Any, Optional, Sequence

from export_analysis.core.errors import unsupported
from export_analysis.core.records import Dataset, Record, as_number, hashable_key, is_number, field_names
from export_analysis.transformers.cleaner import remove_duplicates as _dedupe

logger = logging.getLogger(__name__)


class JoinType(Enum):
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    OUTER = "outer"


class Aggregation(Enum):
    SUM = "sum"
    AVG = "avg"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


class PivotAggregation(Enum):
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"


@dataclass(frozen=True)
class JoinPrefix:
    """Prefixes applied to each side's field names in a merged record."""
    left: str = ""
    right: str = "right_"


@dataclass(frozen=True)
class CommonKey:
    """Suggested join key pair (advisory, see detect_common_key)."""
    left: str
    right: str


def _combine_records(left: Record, right: Record, prefix: JoinPrefix) -> Record:
    combined = {f"{prefix.left}{key}": value for key, value in left.items()}

    for key, value in right.items():
        new_key = f"{prefix.right}{key}"
        if new_key in combined:
            combined[f"{new_key}_conflict"] = value
        else:
            combined[new_key] = value

    return combined


def _first_match(records: Dataset, key: str, value: Any) -> Optional[Record]:
    if value is None:
        return None
    return next((record for record in records if record.get(key) == value), None)


def merge_data(
    left: Dataset,
    right: Dataset,
    left_key: str = "id",
    right_key: str = "id",
    join_type: str = "inner",
    prefix: JoinPrefix = JoinPrefix(),
) -> Dataset:
    """
    Join two datasets on a key.

    Each record is paired with the FIRST matching record on the other side
    (one-to-one assumption), so duplicate keys on the lookup side are ignored.

    Args:
        left: Left-hand records
        right: Right-hand records
        left_key: Join field on the left
        right_key: Join field on the right
        join_type: "inner", "left", "right" or "outer"
        prefix: Field prefixes for each side; a right field whose prefixed
            name is already taken gets a "_conflict" suffix

    Returns:
        New merged records
    """
    if not isinstance(join_type, JoinType):
        try:
            join_type = JoinType(join_type)
        except ValueError:
            raise unsupported("join type", join_type, JoinType) from None

    merged = []

    if join_type in (JoinType.INNER, JoinType.LEFT, JoinType.OUTER):
        for left_record in left:
            right_record = _first_match(right, right_key, left_record.get(left_key))
            if right_record is not None:
                merged.append(_combine_records(left_record, right_record, prefix))
            elif join_type != JoinType.INNER:
                merged.append(_combine_records(left_record, {}, prefix))

    if join_type == JoinType.RIGHT:
        for right_record in right:
            left_record = _first_match(left, left_key, right_record.get(right_key))
            merged.append(_combine_records(left_record or {}, right_record, prefix))

    elif join_type == JoinType.OUTER:
        # Matched pairs were emitted by the left pass; add right-only records
        for right_record in right:
            if _first_match(left, left_key, right_record.get(right_key)) is None:
                merged.append(_combine_records({}, right_record, prefix))

    logger.debug(f"{join_type.value} join: {len(left)} x {len(right)} -> {len(merged)} records")
    return merged


def detect_common_key(left: Dataset, right: Dataset) -> Optional[CommonKey]:
    """
    Guess a join key from field names.

    Prefers an exact "id" match, then any exact name match, then the first
    pair where one name contains the other (e.g. "customer_id" / "id").
    This is a heuristic; do not rely on it for correctness-critical joins.
    """
    if not left or not right:
        return None

    left_keys = field_names(left)
    right_keys = field_names(right)

    common = [key for key in left_keys if key in right_keys]
    if common:
        if "id" in common:
            return CommonKey("id", "id")
        return CommonKey(common[0], common[0])

    for left_name in left_keys:
        for right_name in right_keys:
            if left_name in right_name or right_name in left_name:
                return CommonKey(left_name, right_name)

    return None


def union_data(
    datasets: Sequence[Dataset],
    remove_duplicates: bool = False,
    key_field: str = "id",
) -> Dataset:
    """Concatenate datasets in order, optionally keeping the first record per key."""
    combined = [dict(record) for dataset in datasets for record in dataset]

    if remove_duplicates and key_field:
        combined = _dedupe(combined, key_field)

    return combined


def group_by(
    data: Dataset,
    group_fields: List[str],
    aggregations: Dict[str, str],
) -> Dataset:
    """
    Group records and aggregate fields.

    Groups are keyed on the tuple of group-field values, with unhashable
    values keyed by their repr; output rows carry the first record's
    values. sum/avg/min/max use only the numeric values of a field within
    the group; count is the number of records in the group whatever the
    field holds.

    Args:
        data: Records to group
        group_fields: Fields forming the group key
        aggregations: field -> "sum" | "avg" | "average" | "min" | "max" | "count"

    Returns:
        One record per group: the group fields plus ``<field>_<verb>``
    """
    verbs = {}
    for name, verb in aggregations.items():
        try:
            verbs[name] = verb if isinstance(verb, Aggregation) else Aggregation(verb)
        except ValueError:
            raise unsupported("aggregation", verb, Aggregation) from None

    groups: "OrderedDict[tuple, List[Record]]" = OrderedDict()
    for record in data:
        key = tuple(hashable_key(record.get(name)) for name in group_fields)
        groups.setdefault(key, []).append(record)

    result = []
    for records in groups.values():
        aggregated = {name: records[0].get(name) for name in group_fields}

        for name, verb in verbs.items():
            values = [as_number(r.get(name)) for r in records if is_number(r.get(name))]

            if verb == Aggregation.SUM:
                aggregated[f"{name}_sum"] = sum(values)
            elif verb in (Aggregation.AVG, Aggregation.AVERAGE):
                aggregated[f"{name}_avg"] = sum(values) / len(values) if values else None
            elif verb == Aggregation.MIN:
                aggregated[f"{name}_min"] = min(values) if values else None
            elif verb == Aggregation.MAX:
                aggregated[f"{name}_max"] = max(values) if values else None
            else:
                aggregated[f"{name}_count"] = len(records)

        result.append(aggregated)

    return result


def pivot(
    data: Dataset,
    row_field: str,
    column_field: str,
    value_field: str,
    agg_func: str = "sum",
) -> Dataset:
    """
    Pivot records into a row x column table.

    One output row per distinct ``row_field`` value and one column per
    distinct ``column_field`` value, both in first-seen order. Cells with no
    source rows are 0. Unhashable row values are matched by their repr.
    """
    try:
        agg = agg_func if isinstance(agg_func, PivotAggregation) else PivotAggregation(agg_func)
    except ValueError:
        raise unsupported("pivot aggregation", agg_func, PivotAggregation) from None

    columns: List[str] = []
    cells: "OrderedDict[Any, Dict[str, List[Any]]]" = OrderedDict()
    row_values: Dict[Any, Any] = {}

    for record in data:
        column = str(record.get(column_field))
        if column not in columns:
            columns.append(column)
        row_key = hashable_key(record.get(row_field))
        if row_key not in cells:
            row_values[row_key] = record.get(row_field)
        row_cells = cells.setdefault(row_key, {})
        row_cells.setdefault(column, []).append(record.get(value_field))

    pivoted = []
    for row_key, row_cells in cells.items():
        row = {row_field: row_values[row_key]}
        for column in columns:
            values = row_cells.get(column)
            if not values:
                row[column] = 0
                continue
            numbers = [as_number(v) for v in values if is_number(v)]
            if agg == PivotAggregation.SUM:
                row[column] = sum(numbers)
            elif agg == PivotAggregation.AVG:
                row[column] = sum(numbers) / len(numbers) if numbers else 0
            else:
                row[column] = len(values)
        pivoted.append(row)

    return pivoted
