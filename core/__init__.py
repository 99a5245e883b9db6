"""Core (UI-agnostic) dashboard logic.

This package contains:
- chart config normalization and validation
- the in-memory aggregation / table query engine
- grid-unit and pixel-rect widget layout, plus drag/resize sessions
- the session state container and dashboard import/export
- backend data store access and chart helpers (Altair -> Vega-Lite spec dict)
"""
