"""Session-scoped dashboard state.

`DashboardSession` owns the chart configs, the grid layouts and the pixel rects for one
user session. It never computes geometry itself: each mutation hands the current slice to
a pure function in `core.layout` / `core.canvas` and stores the slice it gets back.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.canvas import (
    CanvasBounds,
    PixelRect,
    recompute_canvas_bounds,
    rects_from_snapshot,
    rects_to_snapshot,
    resolve_rects,
)
from core.chart_config import (
    DEFAULT_COLLECTION,
    ChartConfig,
    chart_config_to_dict,
    clone_with_id,
    default_chart_config,
    normalize_chart_config,
    with_updates,
)
from core.dashboard_io import DEFAULT_DASHBOARD_NAME, DashboardImport, export_dashboard
from core.interaction import IDLE, InteractionError, WidgetInteraction
from core.layout import (
    LayoutEntry,
    constrain_layouts,
    layouts_from_dict,
    layouts_to_dict,
    resolve_layouts,
    update_size,
)

logger = logging.getLogger(__name__)


class ChartIdProvider:
    """``chart-<epoch ms>-<7 hex>``: unique, roughly time-ordered, readable in logs."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def __call__(self) -> str:
        return f"chart-{int(self._clock() * 1000)}-{uuid.uuid4().hex[:7]}"


class DashboardSession:
    def __init__(self, id_provider: Optional[Callable[[], str]] = None, collection: str = DEFAULT_COLLECTION) -> None:
        self.id_provider: Callable[[], str] = id_provider or ChartIdProvider()
        self.reset(collection)

    # ---------------- Charts ----------------
    @property
    def chart_ids(self) -> List[str]:
        return [chart.id for chart in self.charts]

    def get_chart(self, chart_id: str) -> Optional[ChartConfig]:
        return next((chart for chart in self.charts if chart.id == chart_id), None)

    def set_collection(self, collection: Optional[str]) -> None:
        self.collection = (collection or "").strip() or DEFAULT_COLLECTION

    def add_chart(self, raw: Optional[Mapping[str, Any]] = None) -> ChartConfig:
        chart_id = (raw or {}).get("id") or self.id_provider()
        if raw:
            config = normalize_chart_config({"collection": self.collection, **raw}, chart_id=str(chart_id))
        else:
            config = default_chart_config(str(chart_id), collection=self.collection)
        self.charts = [*self.charts, config]
        self.selected_chart_id = config.id
        self._sync_geometry()
        return config

    def update_chart(self, chart_id: str, updates: Mapping[str, Any]) -> Optional[ChartConfig]:
        updated: Optional[ChartConfig] = None
        charts = []
        for chart in self.charts:
            if chart.id == chart_id:
                chart = updated = with_updates(chart, dict(updates))
            charts.append(chart)
        self.charts = charts
        return updated

    def refresh_chart(self, chart_id: str, now: Optional[float] = None) -> Optional[ChartConfig]:
        return self.update_chart(chart_id, {"refreshedAt": now if now is not None else time.time() * 1000})

    def remove_chart(self, chart_id: str) -> None:
        self.charts = [chart for chart in self.charts if chart.id != chart_id]
        self.layouts = {bp: [e for e in entries if e.id != chart_id] for bp, entries in self.layouts.items()}
        self.rects = {k: v for k, v in self.rects.items() if k != chart_id}
        self._interactions.pop(chart_id, None)
        if self.selected_chart_id == chart_id:
            self.selected_chart_id = self.charts[0].id if self.charts else None
        self._sync_geometry()

    def duplicate_chart(self, chart_id: str) -> Optional[ChartConfig]:
        source = self.get_chart(chart_id)
        if source is None:
            return None
        duplicated = clone_with_id(source, self.id_provider())
        self.charts = [*self.charts, duplicated]
        self.selected_chart_id = duplicated.id
        self._sync_geometry()
        return duplicated

    def select_chart(self, chart_id: Optional[str]) -> None:
        self.selected_chart_id = chart_id

    # ---------------- Grid layouts ----------------
    def set_layouts(self, layouts: Mapping[str, Any]) -> Dict[str, List[LayoutEntry]]:
        """Store a layout change event from the grid, clamped inside each breakpoint."""
        self.layouts = {**self.layouts, **constrain_layouts(layouts_from_dict(layouts))}
        return self.layouts

    def update_chart_layout(self, chart_id: str, w: Optional[int] = None, h: Optional[int] = None) -> None:
        self.layouts = update_size(self.layouts, chart_id, w, h)

    # ---------------- Pixel canvas ----------------
    def set_rect(self, chart_id: str, rect: PixelRect) -> CanvasBounds:
        self.rects = {**self.rects, chart_id: rect}
        self.canvas = recompute_canvas_bounds(self.rects.values())
        return self.canvas

    def pointer_down(self, chart_id: str, x: float, y: float, handle: Optional[str] = None) -> str:
        rect = self.rects.get(chart_id)
        if rect is None:
            raise InteractionError(f"unknown widget {chart_id}")
        interaction = self._interactions.setdefault(chart_id, WidgetInteraction(chart_id, rect))
        if interaction.state == IDLE:
            interaction.rect = rect
        state = interaction.pointer_down(x, y, handle)
        self.selected_chart_id = chart_id
        return state

    def pointer_move(self, chart_id: str, x: float, y: float) -> PixelRect:
        rect = self._interaction(chart_id).pointer_move(x, y, self.canvas)
        self.set_rect(chart_id, rect)
        return rect

    def pointer_up(self, chart_id: str) -> PixelRect:
        return self._interaction(chart_id).pointer_up()

    def _interaction(self, chart_id: str) -> WidgetInteraction:
        interaction = self._interactions.get(chart_id)
        if interaction is None:
            raise InteractionError(f"widget {chart_id} has no active pointer session")
        return interaction

    def interaction_state(self, chart_id: str) -> str:
        interaction = self._interactions.get(chart_id)
        return interaction.state if interaction else IDLE

    # ---------------- Whole dashboard ----------------
    def load_dashboard(self, charts: Optional[List[Mapping[str, Any]]] = None, layouts: Optional[Mapping[str, Any]] = None) -> None:
        if isinstance(charts, list):
            loaded = []
            for raw in charts:
                if not isinstance(raw, Mapping):
                    continue
                chart_id = str(raw.get("id") or self.id_provider())
                base = chart_config_to_dict(default_chart_config(chart_id, collection=self.collection))
                loaded.append(normalize_chart_config({**base, **raw, "id": chart_id}))
            self.charts = loaded
            self.selected_chart_id = loaded[0].id if loaded else None
            logger.debug("loaded dashboard with %d charts", len(loaded))
        if isinstance(layouts, Mapping):
            self.layouts = layouts_from_dict(layouts)
            self.rects = rects_from_snapshot(layouts)
        self._interactions = {}
        self._sync_geometry()

    def apply_import(self, imported: DashboardImport) -> None:
        self.charts = list(imported.charts)
        self.layouts = {bp: list(entries) for bp, entries in imported.layouts.items()}
        self.rects = dict(imported.rects)
        self.selected_chart_id = self.charts[0].id if self.charts else None
        self.canvas = recompute_canvas_bounds(self.rects.values())
        self._interactions = {}

    def export(self, name: str = DEFAULT_DASHBOARD_NAME, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
        return export_dashboard(self.charts, self.layouts, self.rects, name=name, exported_at=exported_at)

    def reset(self, collection: str = DEFAULT_COLLECTION) -> None:
        self.collection = collection
        self.charts: List[ChartConfig] = []
        self.selected_chart_id: Optional[str] = None
        self.layouts: Dict[str, List[LayoutEntry]] = {}
        self.rects: Dict[str, PixelRect] = {}
        self.canvas: CanvasBounds = recompute_canvas_bounds([])
        self._interactions: Dict[str, WidgetInteraction] = {}

    def _sync_geometry(self) -> None:
        ids = self.chart_ids
        self.layouts = resolve_layouts(layouts_to_dict(self.layouts), ids)
        self.rects = resolve_rects(ids, self.rects)
        self.canvas = recompute_canvas_bounds(self.rects.values())

    def snapshot(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "charts": [chart_config_to_dict(chart) for chart in self.charts],
            "selectedChartId": self.selected_chart_id,
            "layouts": {**layouts_to_dict(self.layouts), **rects_to_snapshot(self.rects)},
            "canvas": asdict(self.canvas),
        }
