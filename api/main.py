from __future__ import annotations

from dataclasses import asdict
import logging
import math
import os
from typing import Any, Dict, List

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.schemas import (
    BatchQueryRequest,
    CanvasBoundsRequest,
    ChartConfigModel,
    DashboardModel,
    DragRequest,
    LayoutChangeRequest,
    LayoutCompactRequest,
    LayoutResizeRequest,
    LayoutResolveRequest,
    QueryRequest,
    ResizeRequest,
)
from core.aggregation import run_query
from core.canvas import (
    CanvasBounds,
    PixelRect,
    on_drag,
    on_resize,
    recompute_canvas_bounds,
    rects_from_snapshot,
    resolve_rects,
)
from core.chart_config import ChartConfig, InvalidConfig, normalize_chart_config, validate_chart_config
from core.charts import build_chart_spec
from core.dashboard_io import export_dashboard, import_dashboard, latest_saved_dashboard
from core.data import FETCH_LIMIT, BackendClient, BackendError
from core.layout import (
    BREAKPOINT_COLS,
    DEFAULT_COLS,
    compact,
    constrain_layouts,
    entries_from_list,
    layouts_from_dict,
    layouts_to_dict,
    resolve_layouts,
    update_size,
)
from core.session import ChartIdProvider

CORS_ORIGINS = [
    o.strip()
    for o in (os.getenv("BI_CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

app = FastAPI(title="BI Lite Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_chart_ids = ChartIdProvider()


def get_backend() -> BackendClient:
    return BackendClient()


def get_id_provider() -> ChartIdProvider:
    return _chart_ids


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _backend_error(exc: BackendError) -> JSONResponse:
    status = 404 if exc.status_code == 404 else 502
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__})


def _invalid(err: InvalidConfig) -> Dict[str, Any]:
    return {"error": err.error, "field": err.field, "chartId": err.chart_id}


def _config_from_model(model: ChartConfigModel) -> ChartConfig:
    raw = model.model_dump(exclude={"records"})
    return normalize_chart_config(raw, chart_id=model.id or "")


def _records_for(config: ChartConfig, request: QueryRequest, backend: BackendClient) -> List[Any]:
    if request.records is not None:
        return request.records
    # Tables read only the rows they show; charts aggregate over the full fetch window.
    fetch_limit = config.limit if config.is_table else FETCH_LIMIT
    return backend.fetch_collection(config.collection, fetch_limit).items


def _execute(request: QueryRequest, backend: BackendClient, include_spec: bool) -> Dict[str, Any]:
    config = _config_from_model(request)
    error = validate_chart_config(config)
    if error is not None:
        return _invalid(error)
    result = run_query(_records_for(config, request, backend), config)
    if isinstance(result, InvalidConfig):
        return _invalid(result)
    payload: Dict[str, Any] = {"rows": result}
    if include_spec:
        payload["spec"] = build_chart_spec(config, result)  # type: ignore[arg-type]
    return payload


# ---------------- Collections ----------------
@app.get("/collections")
def collections(backend: BackendClient = Depends(get_backend)):
    try:
        return _json(backend.list_collections())
    except BackendError as exc:
        logger.exception("collections failed")
        return _backend_error(exc)
    except Exception as exc:
        logger.exception("collections failed")
        return _error(exc)


@app.get("/schema")
def schema(collection: str = Query(default=""), backend: BackendClient = Depends(get_backend)):
    if not collection.strip():
        return JSONResponse(status_code=400, content={"error": "Collection name is required"})
    try:
        return _json([asdict(f) for f in backend.fetch_schema(collection.strip())])
    except BackendError as exc:
        logger.exception("schema failed")
        return _backend_error(exc)
    except Exception as exc:
        logger.exception("schema failed")
        return _error(exc)


# ---------------- Queries ----------------
@app.post("/query")
def query(
    request: QueryRequest,
    include_spec: bool = Query(default=False),
    backend: BackendClient = Depends(get_backend),
):
    try:
        payload = _execute(request, backend, include_spec)
        if "error" in payload:
            return _json(payload, status_code=400)
        return _json(payload if include_spec else payload["rows"])
    except BackendError as exc:
        logger.exception("query failed")
        return _backend_error(exc)
    except Exception as exc:
        logger.exception("query failed")
        return _error(exc)


@app.post("/query/batch")
def query_batch(
    request: BatchQueryRequest,
    include_spec: bool = Query(default=False),
    backend: BackendClient = Depends(get_backend),
):
    """Run every widget query; one widget failing never affects the others."""
    results: Dict[str, Any] = {}
    for idx, chart in enumerate(request.charts):
        key = chart.id or str(idx)
        try:
            results[key] = _execute(chart, backend, include_spec)
        except BackendError as exc:
            logger.warning("batch query for %s failed: %s", key, exc)
            results[key] = {"error": str(exc), "type": type(exc).__name__}
        except Exception as exc:
            logger.exception("batch query for %s failed", key)
            results[key] = {"error": str(exc), "type": type(exc).__name__}
    return _json({"results": results})


# ---------------- Dashboards ----------------
@app.get("/dashboards")
def dashboards(backend: BackendClient = Depends(get_backend)):
    return _json(backend.list_dashboards())


@app.get("/dashboards/latest")
def dashboard_latest(
    backend: BackendClient = Depends(get_backend),
    id_provider: ChartIdProvider = Depends(get_id_provider),
):
    try:
        latest = latest_saved_dashboard(backend.list_dashboards())
        if latest is None or not latest.get("charts"):
            return JSONResponse(status_code=404, content={"error": "No saved dashboard"})
        return _json(import_dashboard(latest, id_provider).to_dict())
    except Exception as exc:
        logger.exception("dashboard_latest failed")
        return _error(exc)


@app.get("/dashboards/{dashboard_id}")
def dashboard_by_id(dashboard_id: str, backend: BackendClient = Depends(get_backend)):
    try:
        data = backend.get_dashboard(dashboard_id)
        if data is None:
            return JSONResponse(status_code=404, content={"error": "Dashboard not found"})
        return _json(data)
    except BackendError as exc:
        logger.exception("dashboard_by_id failed")
        return _backend_error(exc)
    except Exception as exc:
        logger.exception("dashboard_by_id failed")
        return _error(exc)


@app.post("/dashboards")
def save_dashboard(dashboard: DashboardModel, backend: BackendClient = Depends(get_backend)):
    try:
        return _json(backend.save_dashboard(dashboard.charts, dashboard.layouts, name=dashboard.name))
    except BackendError as exc:
        logger.exception("save_dashboard failed")
        return _backend_error(exc)
    except Exception as exc:
        logger.exception("save_dashboard failed")
        return _error(exc)


@app.post("/dashboards/export")
def dashboard_export(dashboard: DashboardModel, id_provider: ChartIdProvider = Depends(get_id_provider)):
    try:
        imported = import_dashboard(dashboard.model_dump(), id_provider)
        return _json(export_dashboard(imported.charts, imported.layouts, imported.rects, name=imported.name))
    except Exception as exc:
        logger.exception("dashboard_export failed")
        return _error(exc)


@app.post("/dashboards/import")
def dashboard_import(payload: Dict[str, Any], id_provider: ChartIdProvider = Depends(get_id_provider)):
    if not isinstance(payload.get("charts"), list):
        return JSONResponse(status_code=400, content={"error": "Not a dashboard file: missing charts"})
    try:
        return _json(import_dashboard(payload, id_provider).to_dict())
    except Exception as exc:
        logger.exception("dashboard_import failed")
        return _error(exc)


# ---------------- Layout ----------------
@app.post("/layout/resolve")
def layout_resolve(request: LayoutResolveRequest):
    layouts = resolve_layouts(request.layouts, request.ids)
    rects = resolve_rects(request.ids, rects_from_snapshot(request.layouts))
    return _json(
        {
            "layouts": layouts_to_dict(layouts),
            "rects": {k: asdict(v) for k, v in rects.items()},
            "canvas": asdict(recompute_canvas_bounds(rects.values())),
        }
    )


@app.post("/layout/change")
def layout_change(request: LayoutChangeRequest):
    return _json(layouts_to_dict(constrain_layouts(layouts_from_dict(request.layouts))))


@app.post("/layout/compact")
def layout_compact(request: LayoutCompactRequest):
    cols = request.cols or BREAKPOINT_COLS.get(request.breakpoint or "", DEFAULT_COLS)
    entries = entries_from_list(request.entries) or []
    return _json([entry.to_dict() for entry in compact(entries, cols)])


@app.post("/layout/resize")
def layout_resize(request: LayoutResizeRequest):
    resized = update_size(layouts_from_dict(request.layouts), request.id, request.w, request.h)
    return _json(layouts_to_dict(resized))


@app.post("/canvas/drag")
def canvas_drag(request: DragRequest):
    rect = on_drag(PixelRect(**request.rect.model_dump()), request.dx, request.dy, CanvasBounds(**request.canvas.model_dump()))
    return _json({"rect": asdict(rect)})


@app.post("/canvas/resize")
def canvas_resize(request: ResizeRequest):
    try:
        rect = on_resize(PixelRect(**request.rect.model_dump()), request.direction, request.dx, request.dy)
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    return _json({"rect": asdict(rect)})


@app.post("/canvas/bounds")
def canvas_bounds(request: CanvasBoundsRequest):
    rects = [PixelRect(**r.model_dump()) for r in request.rects.values()]
    return _json(asdict(recompute_canvas_bounds(rects)))
