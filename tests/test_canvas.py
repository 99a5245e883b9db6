"""
Tests for pixel-rect placement, drag and resize on the free-form canvas.
"""
import pytest

from core.canvas import (
    CANVAS_MARGIN,
    DEFAULT_CANVAS,
    MIN_H,
    MIN_W,
    CanvasBounds,
    PixelRect,
    get_or_create_rect,
    grid_entry_from_pixel_rect,
    on_drag,
    on_resize,
    pixel_rect_from_grid_entry,
    recompute_canvas_bounds,
    rects_from_grid_layout,
    rects_from_snapshot,
    rects_to_snapshot,
    resolve_rects,
)
from core.layout import LayoutEntry


RECT = PixelRect(x=100, y=100, w=460, h=300)


# ---------------- Placement ----------------

def test_auto_rects_flow_two_per_row():
    assert get_or_create_rect("a", 0) == PixelRect(24, 24, 460, 300)
    assert get_or_create_rect("b", 1) == PixelRect(524, 24, 460, 300)
    assert get_or_create_rect("c", 3) == PixelRect(524, 364, 460, 300)


def test_saved_rect_wins_over_auto_placement():
    saved = {"a": PixelRect(900, 40, 300, 200)}
    assert get_or_create_rect("a", 0, saved) == saved["a"]


def test_resolve_rects_drops_removed_widgets():
    saved = {"gone": PixelRect(0, 0, 300, 200), "b": PixelRect(5, 5, 300, 200)}
    rects = resolve_rects(["a", "b"], saved)
    assert list(rects) == ["a", "b"]
    assert rects["b"] == saved["b"]


def test_snapshot_parsing_skips_bad_rects():
    raw = {"rects": {"a": {"x": 1, "y": 2, "w": 300, "h": 200}, "b": {"x": "bad"}, "c": None}}
    assert rects_from_snapshot(raw) == {"a": PixelRect(1, 2, 300, 200)}
    assert rects_from_snapshot({"lg": []}) == {}
    assert rects_from_snapshot("junk") == {}


def test_snapshot_round_trip():
    rects = {"a": PixelRect(1, 2, 300, 200)}
    assert rects_from_snapshot(rects_to_snapshot(rects)) == rects


# ---------------- Canvas bounds ----------------

def test_canvas_never_smaller_than_default():
    assert recompute_canvas_bounds([]) == DEFAULT_CANVAS
    assert recompute_canvas_bounds([RECT]) == DEFAULT_CANVAS


def test_canvas_grows_to_fit_far_rect():
    bounds = recompute_canvas_bounds([RECT, PixelRect(2400, 1500, 460, 300)])
    assert bounds == CanvasBounds(2400 + 460 + CANVAS_MARGIN, 1500 + 300 + CANVAS_MARGIN)


# ---------------- Drag ----------------

def test_drag_moves_by_delta():
    rect = PixelRect(20, 20, 460, 300)
    assert on_drag(rect, 50, 1000, CanvasBounds(2400, 1600)) == PixelRect(70, 1020, 460, 300)


def test_drag_clamps_to_canvas():
    canvas = CanvasBounds(2400, 1600)
    assert on_drag(RECT, -500, -500, canvas) == PixelRect(0, 0, 460, 300)
    assert on_drag(RECT, 5000, 5000, canvas) == PixelRect(2400 - 460, 1600 - 300, 460, 300)


def test_drag_keeps_rect_already_past_edge():
    far = PixelRect(2300, 100, 460, 300)
    moved = on_drag(far, 0, 10, CanvasBounds(2400, 1600))
    assert moved.x == 2300
    assert moved.y == 110


# ---------------- Resize ----------------

def test_resize_south_east_grows_freely():
    assert on_resize(RECT, "se", 100, 50) == PixelRect(100, 100, 560, 350)
    assert on_resize(RECT, "e", 4000, 0).w == 4460


def test_resize_respects_minimum_size():
    assert on_resize(RECT, "e", -1000, 0).w == MIN_W
    assert on_resize(RECT, "s", 0, -1000).h == MIN_H


def test_resize_west_keeps_right_edge_fixed():
    out = on_resize(RECT, "w", 50, 0)
    assert (out.x, out.w) == (150, 410)
    shrunk = on_resize(RECT, "w", 1000, 0)
    assert (shrunk.x, shrunk.w) == (340, MIN_W)
    assert shrunk.x + shrunk.w == RECT.x + RECT.w


def test_resize_north_west_stops_at_origin():
    out = on_resize(RECT, "nw", -500, -500)
    assert out == PixelRect(0, 0, 560, 400)


def test_resize_north_only_touches_vertical():
    out = on_resize(RECT, "n", 999, 40)
    assert out == PixelRect(100, 140, 460, 260)


def test_resize_unknown_direction():
    with pytest.raises(ValueError):
        on_resize(RECT, "up", 1, 1)


# ---------------- Migration ----------------

def test_grid_entry_to_pixel_rect_and_back():
    entry = LayoutEntry("a", x=2, y=1, w=4, h=3)
    rect = pixel_rect_from_grid_entry(entry)
    assert rect == PixelRect(224, 124, 400, 300)
    back = grid_entry_from_pixel_rect("a", rect)
    assert (back.x, back.y, back.w, back.h) == (2, 1, 4, 3)


def test_small_grid_entry_gets_minimum_pixel_size():
    rect = pixel_rect_from_grid_entry(LayoutEntry("a", w=1, h=1))
    assert (rect.w, rect.h) == (MIN_W, MIN_H)


def test_pixel_rect_to_grid_entry_stays_in_columns():
    entry = grid_entry_from_pixel_rect("a", PixelRect(2000, 24, 2000, 300), cols=12)
    assert entry.w == 12
    assert entry.x == 0


def test_rects_from_grid_layout_keys_by_id():
    rects = rects_from_grid_layout([LayoutEntry("a"), LayoutEntry("b", x=6)])
    assert list(rects) == ["a", "b"]
    assert rects["b"].x == 624
