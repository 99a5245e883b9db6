"""Grid-unit widget layout.

Layouts are persisted per breakpoint as ``{"lg": [...], "md": [...], "sm": [...]}``; each
entry is ``{"id", "x", "y", "w", "h"}`` in grid units plus optional min/max sizes.
All functions return new lists and leave their inputs untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

BREAKPOINT_COLS: Dict[str, int] = {"lg": 12, "md": 10, "sm": 6}
BREAKPOINTS = list(BREAKPOINT_COLS)
DEFAULT_COLS = 12

DEFAULT_ITEM_W = 6
DEFAULT_ITEM_H = 2
DEFAULT_MIN_W = 2
DEFAULT_MIN_H = 1

MAX_ITEM_W = 12
MAX_ITEM_H = 10

WIDE_GRID_MIN_COLS = 10


@dataclass(frozen=True)
class LayoutEntry:
    id: str
    x: int = 0
    y: int = 0
    w: int = DEFAULT_ITEM_W
    h: int = DEFAULT_ITEM_H
    min_w: Optional[int] = None
    min_h: Optional[int] = None
    max_w: Optional[int] = None
    max_h: Optional[int] = None

    def to_dict(self) -> Dict[str, int | str]:
        out: Dict[str, int | str] = {"id": self.id, "x": self.x, "y": self.y, "w": self.w, "h": self.h}
        for key, value in (("minW", self.min_w), ("minH", self.min_h), ("maxW", self.max_w), ("maxH", self.max_h)):
            if value is not None:
                out[key] = value
        return out


def _as_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return default


def _as_opt_int(value: object) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return None


def entry_from_dict(raw: Mapping[str, object]) -> Optional[LayoutEntry]:
    """Accepts both ``id`` and the legacy ``i`` key; entries without either are dropped."""
    entry_id = raw.get("id", raw.get("i"))
    if entry_id is None or entry_id == "":
        return None
    return LayoutEntry(
        id=str(entry_id),
        x=_as_int(raw.get("x"), 0),
        y=_as_int(raw.get("y"), 0),
        w=_as_int(raw.get("w"), DEFAULT_ITEM_W),
        h=_as_int(raw.get("h"), DEFAULT_ITEM_H),
        min_w=_as_opt_int(raw.get("minW", raw.get("min_w"))),
        min_h=_as_opt_int(raw.get("minH", raw.get("min_h"))),
        max_w=_as_opt_int(raw.get("maxW", raw.get("max_w"))),
        max_h=_as_opt_int(raw.get("maxH", raw.get("max_h"))),
    )


def entries_from_list(raw: object) -> Optional[List[LayoutEntry]]:
    """None when ``raw`` is not a list; malformed items inside it are skipped."""
    if not isinstance(raw, list):
        return None
    entries = [entry_from_dict(item) for item in raw if isinstance(item, Mapping)]
    return [e for e in entries if e is not None]


def layouts_from_dict(raw: object) -> Dict[str, List[LayoutEntry]]:
    if not isinstance(raw, Mapping):
        return {}
    out: Dict[str, List[LayoutEntry]] = {}
    for breakpoint, items in raw.items():
        entries = entries_from_list(items)
        if entries is not None:
            out[str(breakpoint)] = entries
    return out


def layouts_to_dict(layouts: Mapping[str, Sequence[LayoutEntry]]) -> Dict[str, List[Dict[str, int | str]]]:
    return {bp: [entry.to_dict() for entry in entries] for bp, entries in layouts.items()}


def is_saved_layout_valid(saved: Optional[Sequence[LayoutEntry]], current_ids: Sequence[str]) -> bool:
    if saved is None or len(saved) != len(current_ids):
        return False
    saved_ids = {entry.id for entry in saved}
    return all(chart_id in saved_ids for chart_id in current_ids)


def item_width_for(cols: int) -> int:
    """Half the grid on wide breakpoints (6 of 12, 5 of 10); full width on narrow ones."""
    if cols >= WIDE_GRID_MIN_COLS:
        return max(1, cols // 2)
    return max(1, cols)


def generate_default_layout(ids: Sequence[str], cols: int = DEFAULT_COLS) -> List[LayoutEntry]:
    width = item_width_for(cols)
    per_row = max(1, cols // width)
    return [
        LayoutEntry(
            id=chart_id,
            x=(idx % per_row) * width,
            y=(idx // per_row) * DEFAULT_ITEM_H,
            w=width,
            h=DEFAULT_ITEM_H,
            min_w=DEFAULT_MIN_W,
            min_h=DEFAULT_MIN_H,
        )
        for idx, chart_id in enumerate(ids)
    ]


def generate_default_layouts(ids: Sequence[str]) -> Dict[str, List[LayoutEntry]]:
    return {bp: generate_default_layout(ids, cols) for bp, cols in BREAKPOINT_COLS.items()}


def constrain_to_bounds(entries: Iterable[LayoutEntry], max_cols: int) -> List[LayoutEntry]:
    return [replace(e, x=max(0, min(e.x, max_cols - e.w)), y=max(0, e.y)) for e in entries]


def constrain_layouts(layouts: Mapping[str, Sequence[LayoutEntry]]) -> Dict[str, List[LayoutEntry]]:
    return {bp: constrain_to_bounds(entries, BREAKPOINT_COLS.get(bp, DEFAULT_COLS)) for bp, entries in layouts.items()}


def overlaps(a: LayoutEntry, b: LayoutEntry) -> bool:
    return a.x < b.x + b.w and a.x + a.w > b.x and a.y < b.y + b.h and a.y + a.h > b.y


def compact(entries: Iterable[LayoutEntry], cols: int = DEFAULT_COLS) -> List[LayoutEntry]:
    """Greedy placement into the first free slot, scanning rows top-down and columns left-right.

    Entries are visited in ``(y, x)`` order (stable for ties). Widths wider than the grid are
    clamped to ``cols`` so every entry has at least one candidate column.
    """
    cols = max(1, cols)
    placed: List[LayoutEntry] = []
    for entry in sorted(entries, key=lambda e: (e.y, e.x)):
        w = min(max(1, entry.w or DEFAULT_ITEM_W), cols)
        h = max(1, entry.h or DEFAULT_ITEM_H)
        y = 0
        slot: Optional[LayoutEntry] = None
        while slot is None:
            for x in range(cols - w + 1):
                candidate = replace(entry, x=x, y=y, w=w, h=h)
                if not any(overlaps(candidate, other) for other in placed):
                    slot = candidate
                    break
            y += 1
        placed.append(slot)
    return placed


def update_size(
    layouts: Mapping[str, Sequence[LayoutEntry]],
    chart_id: str,
    w: Optional[int] = None,
    h: Optional[int] = None,
) -> Dict[str, List[LayoutEntry]]:
    """Resize ``chart_id`` on every breakpoint, clamping w to [1, 12] and h to [1, 10]."""
    if w is None and h is None:
        return {bp: list(entries) for bp, entries in layouts.items()}
    out: Dict[str, List[LayoutEntry]] = {}
    for bp, entries in layouts.items():
        resized = []
        for entry in entries:
            if entry.id == chart_id:
                entry = replace(
                    entry,
                    w=entry.w if w is None else min(MAX_ITEM_W, max(1, int(w))),
                    h=entry.h if h is None else min(MAX_ITEM_H, max(1, int(h))),
                )
            resized.append(entry)
        out[bp] = resized
    return out


def resolve_layouts(saved: object, ids: Sequence[str]) -> Dict[str, List[LayoutEntry]]:
    """Trust a persisted snapshot only when its ``lg`` id set matches ``ids`` exactly.

    A stale or malformed snapshot is regenerated in full. ``md``/``sm`` fall back to the
    ``lg`` positions at their default widths when missing or stale themselves, compacted so
    items that sat side by side on ``lg`` never share a cell on a narrower grid.
    """
    layouts = layouts_from_dict(saved)
    lg = layouts.get("lg")
    if not is_saved_layout_valid(lg, ids):
        if saved:
            logger.info("stale layout for %d widgets regenerated", len(ids))
        return generate_default_layouts(ids)

    resolved: Dict[str, List[LayoutEntry]] = {"lg": list(lg or [])}
    for bp in ("md", "sm"):
        entries = layouts.get(bp)
        if is_saved_layout_valid(entries, ids):
            resolved[bp] = list(entries or [])
        else:
            width = item_width_for(BREAKPOINT_COLS[bp])
            derived = constrain_to_bounds((replace(e, w=width) for e in resolved["lg"]), BREAKPOINT_COLS[bp])
            resolved[bp] = compact(derived, BREAKPOINT_COLS[bp])
    return resolved
