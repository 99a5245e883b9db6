from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

AGG_OPS = ["SUM", "AVG", "COUNT", "MIN", "MAX"]
CHART_TYPES = ["bar", "line", "pie", "area", "stackedBar", "donut", "scatter", "table"]
SORT_ORDERS = ["asc", "desc"]
SORT_BY_OPTIONS = ["dimension", "measure"]
FIELD_TYPES = ["string", "number", "boolean"]

DEFAULT_COLLECTION = "users"
DEFAULT_CHART_LIMIT = 10
DEFAULT_TABLE_LIMIT = 100
CHART_LIMIT_CAP = 1000
TABLE_LIMIT_CAP = 10000


@dataclass(frozen=True)
class FieldSchema:
    name: str
    type: str = "string"


@dataclass(frozen=True)
class Measure:
    field: Optional[str] = None
    op: str = "COUNT"


@dataclass(frozen=True)
class ChartConfig:
    id: str
    type: str = "bar"
    collection: str = DEFAULT_COLLECTION
    dimension: Optional[str] = None
    measure: Optional[Measure] = None
    limit: int = DEFAULT_CHART_LIMIT
    selected_fields: List[str] = field(default_factory=list)
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    refreshed_at: Optional[float] = None

    @property
    def is_table(self) -> bool:
        return self.type == "table"


@dataclass(frozen=True)
class InvalidConfig:
    """Error value for a chart config that cannot be queried.

    Returned rather than raised so a caller rendering many widgets can keep going.
    """

    error: str
    field: Optional[str] = None
    chart_id: Optional[str] = None


def _as_limit(value: object, *, is_table: bool) -> int:
    default = DEFAULT_TABLE_LIMIT if is_table else DEFAULT_CHART_LIMIT
    cap = TABLE_LIMIT_CAP if is_table else CHART_LIMIT_CAP
    try:
        limit = int(value)  # type: ignore[arg-type]
    except Exception:
        return default
    if limit <= 0:
        return default
    return min(cap, limit)


def _as_str_list(values: Optional[object]) -> List[str]:
    if not values or not isinstance(values, (list, tuple)):
        return []
    return [str(v) for v in values if v is not None and str(v).strip()]


def normalize_measure(raw: object) -> Optional[Measure]:
    if isinstance(raw, Measure):
        return raw
    if not isinstance(raw, dict):
        return None
    op = str(raw.get("op") or "COUNT").upper()
    if op not in AGG_OPS:
        op = "COUNT"
    measure_field = raw.get("field")
    measure_field = str(measure_field).strip() if measure_field not in (None, "") else None
    return Measure(field=measure_field, op=op)


def normalize_chart_config(raw: dict, *, chart_id: Optional[str] = None) -> ChartConfig:
    """Coerce a JSON chart config (camelCase or snake_case keys) into a ChartConfig.

    Never raises for bad values: unknown chart types fall back to ``bar``, limits to the
    per-mode default, and an unset sort order becomes ``desc`` whenever a sort key is set.
    """
    chart_type = str(raw.get("type") or "bar")
    if chart_type not in CHART_TYPES:
        chart_type = "bar"
    is_table = chart_type == "table"

    dimension = raw.get("dimension")
    dimension = str(dimension).strip() if dimension not in (None, "") else None

    sort_by = raw.get("sortBy", raw.get("sort_by"))
    sort_by = sort_by if sort_by in SORT_BY_OPTIONS else None
    sort_order = raw.get("sortOrder", raw.get("sort_order"))
    sort_order = sort_order if sort_order in SORT_ORDERS else None
    if sort_by and not sort_order:
        sort_order = "desc"

    refreshed_at = raw.get("refreshedAt", raw.get("refreshed_at"))
    try:
        refreshed_at = float(refreshed_at) if refreshed_at is not None else None
    except Exception:
        refreshed_at = None

    return ChartConfig(
        id=str(raw.get("id") or chart_id or ""),
        type=chart_type,
        collection=str(raw.get("collection") or "").strip(),
        dimension=dimension,
        measure=normalize_measure(raw.get("measure")),
        limit=_as_limit(raw.get("limit"), is_table=is_table),
        selected_fields=_as_str_list(raw.get("selectedFields", raw.get("selected_fields"))),
        sort_by=sort_by,
        sort_order=sort_order,
        refreshed_at=refreshed_at,
    )


def validate_chart_config(config: ChartConfig) -> Optional[InvalidConfig]:
    if not config.collection:
        logger.info("chart %s rejected: missing collection", config.id)
        return InvalidConfig(error="Invalid config: requires collection", field="collection", chart_id=config.id)
    if config.is_table:
        return None
    if not config.dimension:
        logger.info("chart %s rejected: missing dimension", config.id)
        return InvalidConfig(
            error="Invalid config: non-table charts require dimension and measure",
            field="dimension",
            chart_id=config.id,
        )
    if config.measure is None:
        logger.info("chart %s rejected: missing measure", config.id)
        return InvalidConfig(
            error="Invalid config: non-table charts require dimension and measure",
            field="measure",
            chart_id=config.id,
        )
    return None


def default_chart_config(chart_id: str, *, collection: str = DEFAULT_COLLECTION) -> ChartConfig:
    return ChartConfig(
        id=chart_id,
        type="bar",
        collection=collection,
        dimension="gender",
        measure=Measure(field="id", op="COUNT"),
        limit=DEFAULT_CHART_LIMIT,
    )


def with_updates(config: ChartConfig, updates: Dict[str, Any]) -> ChartConfig:
    """Merge a partial JSON update into ``config``; the id never changes."""
    merged = chart_config_to_dict(config)
    merged.update({k: v for k, v in updates.items() if k != "id"})
    return normalize_chart_config(merged, chart_id=config.id)


def clone_with_id(config: ChartConfig, chart_id: str) -> ChartConfig:
    return replace(config, id=chart_id)


def chart_config_to_dict(config: ChartConfig) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": config.id,
        "type": config.type,
        "collection": config.collection,
        "dimension": config.dimension,
        "measure": asdict(config.measure) if config.measure is not None else None,
        "limit": config.limit,
        "selectedFields": list(config.selected_fields),
        "sortBy": config.sort_by,
        "sortOrder": config.sort_order,
    }
    if config.refreshed_at is not None:
        out["refreshedAt"] = config.refreshed_at
    return out
