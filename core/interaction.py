from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.canvas import RESIZE_DIRECTIONS, CanvasBounds, PixelRect, on_drag, on_resize

IDLE = "idle"
DRAGGING = "dragging"
RESIZING = "resizing"


class InteractionError(RuntimeError):
    pass


@dataclass(frozen=True)
class PointerSession:
    mode: str
    start_x: float
    start_y: float
    start_rect: PixelRect
    direction: Optional[str] = None


class WidgetInteraction:
    """Pointer session for one widget: idle -> dragging | resizing(direction) -> idle.

    Every pointer move is applied to the rect captured at pointer-down, so deltas never
    accumulate rounding or clamping from earlier moves.
    """

    def __init__(self, chart_id: str, rect: PixelRect) -> None:
        self.chart_id = chart_id
        self.rect = rect
        self._session: Optional[PointerSession] = None

    @property
    def state(self) -> str:
        return self._session.mode if self._session else IDLE

    @property
    def direction(self) -> Optional[str]:
        return self._session.direction if self._session else None

    def pointer_down(self, x: float, y: float, handle: Optional[str] = None) -> str:
        """Start a drag (body) or a resize (``handle`` is one of the 8 directions)."""
        if self._session is not None:
            raise InteractionError(f"widget {self.chart_id} is already {self._session.mode}")
        if handle is None:
            self._session = PointerSession(mode=DRAGGING, start_x=x, start_y=y, start_rect=self.rect)
        elif handle in RESIZE_DIRECTIONS:
            self._session = PointerSession(mode=RESIZING, start_x=x, start_y=y, start_rect=self.rect, direction=handle)
        else:
            raise InteractionError(f"unknown resize handle {handle!r}")
        return self.state

    def pointer_move(self, x: float, y: float, canvas: CanvasBounds) -> PixelRect:
        session = self._require_session()
        dx, dy = x - session.start_x, y - session.start_y
        if session.mode == DRAGGING:
            self.rect = on_drag(session.start_rect, dx, dy, canvas)
        else:
            self.rect = on_resize(session.start_rect, session.direction or "se", dx, dy)
        return self.rect

    def pointer_up(self) -> PixelRect:
        self._require_session()
        self._session = None
        return self.rect

    def _require_session(self) -> PointerSession:
        if self._session is None:
            raise InteractionError(f"widget {self.chart_id} has no active pointer session")
        return self._session
