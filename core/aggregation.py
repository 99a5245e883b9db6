"""In-memory aggregation for chart widgets.

Two modes share one entry point (`run_query`):
- chart mode groups records by a dot-path dimension and reduces a measure per group
  into ``{"name", "value"}`` rows, sorted and then truncated to the chart limit;
- table mode slices, projects and optionally sorts raw rows.

Malformed records never raise: a missing dimension lands in the ``(empty)`` group and a
non-numeric measure value is skipped. Nothing is cached between calls.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, localcontext
from functools import cmp_to_key
from itertools import islice
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from core.chart_config import (
    DEFAULT_TABLE_LIMIT,
    TABLE_LIMIT_CAP,
    ChartConfig,
    InvalidConfig,
    Measure,
    validate_chart_config,
)

EMPTY_GROUP = "(empty)"
MISSING = object()

_DIGITS = re.compile(r"([0-9]+)")

Row = Dict[str, Any]


def get_nested_value(obj: object, path: Optional[str], default: object = MISSING) -> object:
    """Resolve ``a.b.0.c`` against nested mappings/lists; ``default`` when any hop is missing."""
    if not path:
        return default
    current = obj
    for key in path.split("."):
        if isinstance(current, Mapping):
            if key not in current:
                return default
            current = current[key]
        elif isinstance(current, (list, tuple)) and key.isdigit():
            idx = int(key)
            if idx >= len(current):
                return default
            current = current[idx]
        else:
            return default
    return current


def is_number(value: object) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    if not isinstance(value, (int, float, np.number)):
        return False
    try:
        return not math.isnan(float(value))
    except OverflowError:
        return False


def as_text(value: object) -> str:
    if value is None or value is MISSING:
        return ""
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    if isinstance(value, (float, np.floating)) and math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    return str(value)


def group_key(value: object) -> str:
    if value is None or value is MISSING:
        return EMPTY_GROUP
    if isinstance(value, float) and math.isnan(value):
        return EMPTY_GROUP
    return as_text(value)


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    if not math.isfinite(float(value)):
        return float(value)
    q = Decimal(10) ** -ndigits
    exact = Decimal(str(value))
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, exact.adjusted() + ndigits + 2)
        return float(exact.quantize(q, rounding=ROUND_HALF_UP))


def natural_sort_key(value: object) -> tuple:
    """Case-insensitive ordering where digit runs compare as integers ("2" < "10")."""
    parts = []
    for idx, chunk in enumerate(_DIGITS.split(as_text(value))):
        if not chunk:
            continue
        if idx % 2:
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, chunk.casefold()))
    return tuple(parts)


def _compare_text(a: object, b: object) -> int:
    ka, kb = natural_sort_key(a), natural_sort_key(b)
    return (ka > kb) - (ka < kb)


def _measure_value(row: Row) -> float:
    value = row.get("value")
    return float(value) if is_number(value) else 0.0


# ---------------- Chart mode ----------------
def apply_sort(result: List[Row], sort_by: Optional[str], sort_order: Optional[str]) -> List[Row]:
    """Stable sort of ``{"name", "value"}`` rows; descending unless ``sort_order == "asc"``."""
    if not result:
        return result
    descending = sort_order != "asc"
    if sort_by == "measure":
        return sorted(result, key=_measure_value, reverse=descending)
    return sorted(result, key=lambda row: natural_sort_key(row.get("name")), reverse=descending)


def aggregate(records: Iterable[object], config: ChartConfig) -> List[Row]:
    measure = config.measure or Measure()
    op = (measure.op or "COUNT").upper()
    collect_values = op != "COUNT" and bool(measure.field)

    names: List[str] = []
    values: List[float] = []
    for record in records or []:
        names.append(group_key(get_nested_value(record, config.dimension)))
        value = get_nested_value(record, measure.field) if collect_values else MISSING
        values.append(float(value) if is_number(value) else np.nan)  # type: ignore[arg-type]

    if not names:
        return []

    frame = pd.DataFrame({"name": pd.Series(names, dtype=object), "value": pd.Series(values, dtype="float64")})
    grouped = frame.groupby("name", sort=False)["value"]
    if op == "SUM":
        reduced = grouped.sum()
    elif op == "AVG":
        reduced = grouped.mean()
    elif op == "MIN":
        reduced = grouped.min()
    elif op == "MAX":
        reduced = grouped.max()
    else:
        reduced = grouped.size()
    reduced = reduced.fillna(0)

    result = [{"name": str(name), "value": round_half_up(float(value), 2)} for name, value in reduced.items()]
    # Sort before truncating; the limit keeps the top groups of the requested order.
    result = apply_sort(result, config.sort_by, config.sort_order)
    return result[: config.limit]


# ---------------- Table mode ----------------
def _project_row(record: object, selected_fields: Sequence[str]) -> Row:
    out: Row = {}
    for key in selected_fields:
        value = get_nested_value(record, key)
        if value is not MISSING:
            out[key] = value
    return out


def _cell(row: Row, key: str) -> object:
    if key in row:
        return row[key]
    return get_nested_value(row, key, None)


def _compare_cells(key: str):
    def _cmp(a: Row, b: Row) -> int:
        va, vb = _cell(a, key), _cell(b, key)
        if is_number(va) and is_number(vb):
            return (va > vb) - (va < vb)  # type: ignore[operator]
        return _compare_text(va, vb)

    return _cmp


def project_table(
    records: Iterable[object],
    selected_fields: Optional[Sequence[str]] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    dimension: Optional[str] = None,
    measure: Optional[Measure] = None,
    limit: Optional[int] = DEFAULT_TABLE_LIMIT,
) -> List[Row]:
    """Raw rows for table widgets.

    The record window is cut to ``min(limit, 10000)`` before projection, so any sort only
    reorders that window, not the whole collection.
    """
    cap = min(limit or DEFAULT_TABLE_LIMIT, TABLE_LIMIT_CAP)
    window = list(islice(records or [], cap))

    if selected_fields:
        rows = [_project_row(record, selected_fields) for record in window]
    else:
        rows = [dict(record) if isinstance(record, Mapping) else {} for record in window]

    if sort_by and sort_order and rows:
        if sort_by == "measure" and measure is not None and measure.field:
            key = measure.field
        else:
            key = dimension or next(iter(rows[0]), None)
        if key:
            rows = sorted(rows, key=cmp_to_key(_compare_cells(key)), reverse=sort_order != "asc")
    return rows


def run_query(records: Iterable[object], config: ChartConfig) -> Union[List[Row], InvalidConfig]:
    error = validate_chart_config(config)
    if error is not None:
        return error
    if config.is_table:
        return project_table(
            records,
            config.selected_fields,
            config.sort_by,
            config.sort_order,
            config.dimension,
            config.measure,
            config.limit,
        )
    return aggregate(records, config)
