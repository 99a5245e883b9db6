"""Backend data store access.

Everything that talks to the document store lives here so the engines only ever see
plain record lists. Responses are normalized to `CollectionPayload` at this boundary.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import requests

from core.chart_config import FieldSchema

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except Exception:
        return default


BACKEND_URL = (os.getenv("BI_BACKEND_URL") or "http://localhost:8000").rstrip("/")
BACKEND_TIMEOUT = _env_float("BI_BACKEND_TIMEOUT", 10.0)
FETCH_LIMIT = _env_int("BI_FETCH_LIMIT", 1000)
SCHEMA_SAMPLE_LIMIT = 10

API_PREFIX = "/api/v1"


class BackendError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CollectionPayload:
    items: List[Any] = field(default_factory=list)


def normalize_collection_response(data: object) -> CollectionPayload:
    """Accept a bare list, ``{data: [...]}``, ``{results: [...]}`` or the first list-valued key."""
    if isinstance(data, list):
        return CollectionPayload(items=data)
    if not isinstance(data, Mapping):
        return CollectionPayload()
    for key in ("data", "results"):
        if isinstance(data.get(key), list) and data[key]:
            return CollectionPayload(items=data[key])
    for key, value in data.items():
        if isinstance(value, list):
            logger.debug("collection response items read from key %r", key)
            return CollectionPayload(items=value)
    return CollectionPayload()


def _field_type(value: object) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def infer_schema(items: List[Any]) -> List[FieldSchema]:
    """Field types from the first record; internal keys other than ``_id`` are skipped."""
    if not items or not isinstance(items[0], Mapping):
        return []
    schema = []
    for key, value in items[0].items():
        key = str(key)
        if key == "__v" or (key.startswith("_") and key != "_id"):
            continue
        schema.append(FieldSchema(name=key, type=_field_type(value)))
    return schema


class BackendClient:
    def __init__(
        self,
        base_url: str = BACKEND_URL,
        *,
        timeout: float = BACKEND_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendError(f"Backend unreachable: {exc}") from exc

    @staticmethod
    def _json(response: requests.Response) -> Any:
        if not response.ok:
            raise BackendError(f"Backend error: {response.status_code}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError("Backend returned invalid JSON", status_code=response.status_code) from exc

    def list_collections(self) -> List[str]:
        data = self._json(self._request("GET", "/collections"))
        return [str(c) for c in data] if isinstance(data, list) else []

    def fetch_collection(self, collection: str, limit: Optional[int] = None) -> CollectionPayload:
        params = {"limit": limit or FETCH_LIMIT}
        response = self._request("GET", f"/collection/{collection}", params=params)
        if response.status_code == 404:
            response = self._request("GET", f"/{collection}", params=params)
        return normalize_collection_response(self._json(response))

    def fetch_schema(self, collection: str) -> List[FieldSchema]:
        try:
            payload = self.fetch_collection(collection, SCHEMA_SAMPLE_LIMIT)
        except BackendError as exc:
            if exc.status_code == 404:
                raise BackendError(f'Collection "{collection}" not found', status_code=404) from exc
            raise
        return infer_schema(payload.items)

    def list_dashboards(self) -> List[Any]:
        """Saved dashboards; an unavailable backend reads as an empty list."""
        try:
            data = self._json(self._request("GET", "/dashboards"))
        except BackendError:
            logger.warning("dashboard list unavailable", exc_info=True)
            return []
        if isinstance(data, list):
            return data
        if isinstance(data, Mapping):
            return data.get("data") or data.get("dashboards") or []
        return []

    def get_dashboard(self, dashboard_id: str) -> Optional[Dict[str, Any]]:
        response = self._request("GET", f"/dashboards/{dashboard_id}")
        if response.status_code == 404:
            return None
        return self._json(response)

    def save_dashboard(
        self,
        charts: List[Dict[str, Any]],
        layouts: Dict[str, Any],
        *,
        name: str = "My Dashboard",
        updated_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        payload = {
            "name": name,
            "charts": charts,
            "layouts": layouts,
            "updatedAt": (updated_at or datetime.now(timezone.utc)).isoformat(),
        }
        return self._json(self._request("POST", "/dashboards", json=payload))
