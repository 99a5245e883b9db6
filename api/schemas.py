from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MeasureModel(BaseModel):
    field: Optional[str] = None
    op: str = "COUNT"


class ChartConfigModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: str = "bar"
    collection: str = ""
    dimension: Optional[str] = None
    measure: Optional[MeasureModel] = None
    limit: Optional[int] = None
    selectedFields: List[str] = Field(default_factory=list)
    sortBy: Optional[str] = None
    sortOrder: Optional[str] = None


class QueryRequest(ChartConfigModel):
    # Inline records skip the backend fetch (uploaded or already-loaded data).
    records: Optional[List[Any]] = None


class BatchQueryRequest(BaseModel):
    charts: List[QueryRequest] = Field(default_factory=list)


class DashboardModel(BaseModel):
    name: str = "My Dashboard"
    charts: List[Dict[str, Any]] = Field(default_factory=list)
    layouts: Dict[str, Any] = Field(default_factory=dict)


class LayoutResolveRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)
    layouts: Optional[Dict[str, Any]] = None


class LayoutCompactRequest(BaseModel):
    entries: List[Dict[str, Any]] = Field(default_factory=list)
    breakpoint: Optional[str] = None
    cols: Optional[int] = None


class LayoutChangeRequest(BaseModel):
    layouts: Dict[str, Any] = Field(default_factory=dict)


class LayoutResizeRequest(BaseModel):
    layouts: Dict[str, Any] = Field(default_factory=dict)
    id: str
    w: Optional[int] = None
    h: Optional[int] = None


class RectModel(BaseModel):
    x: float
    y: float
    w: float
    h: float


class CanvasModel(BaseModel):
    width: float = 2400
    height: float = 1600


class DragRequest(BaseModel):
    rect: RectModel
    dx: float = 0
    dy: float = 0
    canvas: CanvasModel = Field(default_factory=CanvasModel)


class ResizeRequest(BaseModel):
    rect: RectModel
    direction: str
    dx: float = 0
    dy: float = 0


class CanvasBoundsRequest(BaseModel):
    rects: Dict[str, RectModel] = Field(default_factory=dict)
