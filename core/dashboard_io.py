from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.canvas import PixelRect, rects_from_snapshot, rects_to_snapshot, resolve_rects
from core.chart_config import ChartConfig, chart_config_to_dict, normalize_chart_config
from core.layout import LayoutEntry, layouts_to_dict, resolve_layouts

DEFAULT_DASHBOARD_NAME = "My Dashboard"


@dataclass(frozen=True)
class DashboardImport:
    name: str
    charts: List[ChartConfig] = field(default_factory=list)
    layouts: Dict[str, List[LayoutEntry]] = field(default_factory=dict)
    rects: Dict[str, PixelRect] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "charts": [chart_config_to_dict(chart) for chart in self.charts],
            "layouts": {**layouts_to_dict(self.layouts), **rects_to_snapshot(self.rects)},
        }


def is_dashboard_payload(data: object) -> bool:
    return isinstance(data, Mapping) and isinstance(data.get("charts"), list)


def export_dashboard(
    charts: Sequence[ChartConfig],
    layouts: Mapping[str, Sequence[LayoutEntry]],
    rects: Optional[Mapping[str, PixelRect]] = None,
    *,
    name: str = DEFAULT_DASHBOARD_NAME,
    exported_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "name": name,
        "charts": [chart_config_to_dict(chart) for chart in charts],
        "layouts": {**layouts_to_dict(layouts), **rects_to_snapshot(rects or {})},
        "exportedAt": exported_at.isoformat(),
    }


def import_dashboard(payload: Mapping[str, Any], id_provider: Callable[[], str]) -> DashboardImport:
    """Rehydrate an exported or saved dashboard.

    Charts without an id get a fresh one. The saved layouts are only reused when their id
    set matches the imported charts; otherwise the default arrangement is generated.
    """
    raw_charts = [c for c in (payload.get("charts") or []) if isinstance(c, Mapping)]
    charts = []
    for raw in raw_charts:
        chart_id = str(raw.get("id") or id_provider())
        charts.append(normalize_chart_config({**raw, "id": chart_id}))
    ids = [chart.id for chart in charts]

    saved_layouts = payload.get("layouts")

    return DashboardImport(
        name=str(payload.get("name") or DEFAULT_DASHBOARD_NAME),
        charts=charts,
        layouts=resolve_layouts(saved_layouts, ids),
        rects=resolve_rects(ids, rects_from_snapshot(saved_layouts)),
    )


def latest_saved_dashboard(saved: Sequence[object]) -> Optional[Dict[str, Any]]:
    """Pick the most recent entry of a backend dashboard list.

    Older saves stored the bare chart list instead of ``{charts, layouts}``.
    """
    if not saved:
        return None
    latest = saved[-1]
    if isinstance(latest, list):
        return {"charts": latest, "layouts": {}}
    if is_dashboard_payload(latest):
        return dict(latest)  # type: ignore[arg-type]
    return None
