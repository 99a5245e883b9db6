"""
Pytest configuration and fixtures for the dashboard engine tests.
"""
import pytest
from fastapi.testclient import TestClient

from api.main import app, get_backend, get_id_provider
from core.data import BackendError, CollectionPayload


class SequentialIds:
    """Deterministic chart id provider: chart-1, chart-2, ..."""

    def __init__(self, prefix="chart"):
        self.prefix = prefix
        self.count = 0

    def __call__(self):
        self.count += 1
        return f"{self.prefix}-{self.count}"


class FakeBackend:
    """In-memory stand-in for BackendClient."""

    def __init__(self, collections=None, dashboards=None):
        self.collections = collections or {}
        self.dashboards = dashboards or []
        self.saved = []
        self.fetches = []

    def list_collections(self):
        return list(self.collections)

    def fetch_collection(self, collection, limit=None):
        self.fetches.append((collection, limit))
        if collection not in self.collections:
            raise BackendError("Backend error: 404", status_code=404)
        items = self.collections[collection]
        return CollectionPayload(items=items[:limit] if limit else list(items))

    def fetch_schema(self, collection):
        from core.data import infer_schema

        if collection not in self.collections:
            raise BackendError(f'Collection "{collection}" not found', status_code=404)
        return infer_schema(self.collections[collection])

    def list_dashboards(self):
        return list(self.dashboards)

    def get_dashboard(self, dashboard_id):
        return next((d for d in self.dashboards if isinstance(d, dict) and d.get("id") == dashboard_id), None)

    def save_dashboard(self, charts, layouts, *, name="My Dashboard", updated_at=None):
        doc = {"id": f"dash-{len(self.saved) + 1}", "name": name, "charts": charts, "layouts": layouts}
        self.saved.append(doc)
        return doc


# ============================================================
# Data Fixtures
# ============================================================

@pytest.fixture
def people():
    """Small user collection with nested and malformed values."""
    return [
        {"_id": "a1", "name": "Ann", "gender": "f", "age": 31, "address": {"city": "Oslo"}, "active": True},
        {"_id": "a2", "name": "Bob", "gender": "m", "age": 40, "address": {"city": "Bergen"}, "active": False},
        {"_id": "a3", "name": "Cid", "gender": "m", "age": "n/a", "address": {"city": "Oslo"}, "active": True},
        {"_id": "a4", "name": "Dee", "gender": None, "age": 22, "address": {}, "active": True},
        {"_id": "a5", "name": "Eve", "gender": "f", "age": 29, "active": False},
    ]


@pytest.fixture
def ids():
    return SequentialIds()


# ============================================================
# API Fixtures
# ============================================================

@pytest.fixture
def backend(people):
    return FakeBackend(collections={"users": people})


@pytest.fixture
def client(backend, ids):
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_id_provider] = lambda: ids
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
