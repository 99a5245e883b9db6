"""Pixel-rect widget placement on a free-form, auto-growing canvas.

Persisted as ``{"rects": {chart_id: {"x", "y", "w", "h"}}}`` in pixels. The canvas is
never smaller than ``DEFAULT_CANVAS`` and always spans every rect plus ``CANVAS_MARGIN``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace
from typing import Dict, Iterable, Mapping, Optional, Sequence

from core.layout import DEFAULT_MIN_H, DEFAULT_MIN_W, LayoutEntry

MIN_W = 220
MIN_H = 160

CANVAS_MARGIN = 80
AUTO_COL_WIDTH = 500
AUTO_ROW_HEIGHT = 340
AUTO_MARGIN = 24
DEFAULT_RECT_W = 460
DEFAULT_RECT_H = 300

# One grid unit in pixels (lg breakpoint at 1200px with a 100px row height).
GRID_COL_PX = 100
GRID_ROW_PX = 100

RESIZE_DIRECTIONS = ["n", "ne", "e", "se", "s", "sw", "w", "nw"]


@dataclass(frozen=True)
class PixelRect:
    x: float
    y: float
    w: float
    h: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class CanvasBounds:
    width: float
    height: float


DEFAULT_CANVAS = CanvasBounds(width=2400, height=1600)


def rect_from_dict(raw: object) -> Optional[PixelRect]:
    if not isinstance(raw, Mapping):
        return None
    try:
        x, y, w, h = (float(raw[k]) for k in ("x", "y", "w", "h"))
    except Exception:
        return None
    if not all(math.isfinite(v) for v in (x, y, w, h)):
        return None
    return PixelRect(x=x, y=y, w=w, h=h)


def rects_from_snapshot(raw: object) -> Dict[str, PixelRect]:
    """Read ``{"rects": {...}}``; shape mismatches yield an empty mapping."""
    rects = raw.get("rects") if isinstance(raw, Mapping) else None
    if not isinstance(rects, Mapping):
        return {}
    out: Dict[str, PixelRect] = {}
    for chart_id, value in rects.items():
        rect = rect_from_dict(value)
        if rect is not None:
            out[str(chart_id)] = rect
    return out


def rects_to_snapshot(rects: Mapping[str, PixelRect]) -> Dict[str, Dict[str, Dict[str, float]]]:
    return {"rects": {chart_id: rect.to_dict() for chart_id, rect in rects.items()}}


def get_or_create_rect(chart_id: str, index: int, saved_rects: Optional[Mapping[str, PixelRect]] = None) -> PixelRect:
    saved = (saved_rects or {}).get(chart_id)
    if saved is not None:
        return saved
    return PixelRect(
        x=(index % 2) * AUTO_COL_WIDTH + AUTO_MARGIN,
        y=(index // 2) * AUTO_ROW_HEIGHT + AUTO_MARGIN,
        w=DEFAULT_RECT_W,
        h=DEFAULT_RECT_H,
    )


def resolve_rects(ids: Sequence[str], saved_rects: Optional[Mapping[str, PixelRect]] = None) -> Dict[str, PixelRect]:
    """One rect per live widget, in ``ids`` order; saved rects of removed widgets are dropped."""
    return {chart_id: get_or_create_rect(chart_id, idx, saved_rects) for idx, chart_id in enumerate(ids)}


def recompute_canvas_bounds(rects: Iterable[PixelRect]) -> CanvasBounds:
    width, height = DEFAULT_CANVAS.width, DEFAULT_CANVAS.height
    for rect in rects:
        width = max(width, rect.x + rect.w + CANVAS_MARGIN)
        height = max(height, rect.y + rect.h + CANVAS_MARGIN)
    return CanvasBounds(width=width, height=height)


def on_drag(rect: PixelRect, dx: float, dy: float, canvas: CanvasBounds) -> PixelRect:
    """Move ``rect`` (the rect at drag start) by the pointer delta.

    The upper clamp uses the larger of the canvas size and the rect's own far edge, so a
    widget already past the canvas edge can still be moved without being pulled back.
    """
    max_x = max(canvas.width, rect.x + rect.w) - rect.w
    max_y = max(canvas.height, rect.y + rect.h) - rect.h
    return replace(
        rect,
        x=max(0, min(rect.x + dx, max_x)),
        y=max(0, min(rect.y + dy, max_y)),
    )


def on_resize(rect: PixelRect, direction: str, dx: float, dy: float) -> PixelRect:
    """Resize from one of the 8 handles, keeping the opposite edge fixed.

    East/south growth is unbounded since the canvas grows to fit; north/west edges stop at
    the canvas origin. Width and height never drop below ``MIN_W``/``MIN_H``.
    """
    if direction not in RESIZE_DIRECTIONS:
        raise ValueError(f"Unknown resize direction: {direction!r}")
    x, y, w, h = rect.x, rect.y, rect.w, rect.h

    if "e" in direction:
        w = max(MIN_W, rect.w + dx)
    if "w" in direction:
        new_x = max(0, min(rect.x + dx, rect.x + rect.w - MIN_W))
        w = rect.w + (rect.x - new_x)
        x = new_x
    if "s" in direction:
        h = max(MIN_H, rect.h + dy)
    if "n" in direction:
        new_y = max(0, min(rect.y + dy, rect.y + rect.h - MIN_H))
        h = rect.h + (rect.y - new_y)
        y = new_y
    return PixelRect(x=x, y=y, w=w, h=h)


# ---------------- Migration between persisted formats ----------------
def pixel_rect_from_grid_entry(entry: LayoutEntry) -> PixelRect:
    return PixelRect(
        x=entry.x * GRID_COL_PX + AUTO_MARGIN,
        y=entry.y * GRID_ROW_PX + AUTO_MARGIN,
        w=max(MIN_W, entry.w * GRID_COL_PX),
        h=max(MIN_H, entry.h * GRID_ROW_PX),
    )


def grid_entry_from_pixel_rect(chart_id: str, rect: PixelRect, cols: int = 12) -> LayoutEntry:
    w = min(cols, max(1, round(rect.w / GRID_COL_PX)))
    h = max(1, round(rect.h / GRID_ROW_PX))
    x = max(0, min(round((rect.x - AUTO_MARGIN) / GRID_COL_PX), cols - w))
    y = max(0, round((rect.y - AUTO_MARGIN) / GRID_ROW_PX))
    return LayoutEntry(id=chart_id, x=x, y=y, w=w, h=h, min_w=DEFAULT_MIN_W, min_h=DEFAULT_MIN_H)


def rects_from_grid_layout(entries: Iterable[LayoutEntry]) -> Dict[str, PixelRect]:
    return {entry.id: pixel_rect_from_grid_entry(entry) for entry in entries}
