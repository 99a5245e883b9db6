"""
Tests for backend response normalization and the HTTP client.
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from core.chart_config import FieldSchema
from core.data import BackendClient, BackendError, infer_schema, normalize_collection_response


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = payload
    return response


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(http):
    return BackendClient("http://backend/", timeout=3, session=http)


def _urls(http):
    return [c.args[1] for c in http.request.call_args_list]


# ---------------- Response normalization ----------------

def test_normalize_bare_list():
    assert normalize_collection_response([{"a": 1}]).items == [{"a": 1}]


def test_normalize_wrapped_lists():
    assert normalize_collection_response({"data": [1, 2]}).items == [1, 2]
    assert normalize_collection_response({"total": 2, "results": [3]}).items == [3]


def test_normalize_first_list_valued_key():
    assert normalize_collection_response({"count": 1, "users": [{"a": 1}]}).items == [{"a": 1}]
    assert normalize_collection_response({"meta": {}, "rows": [5]}).items == [5]


def test_normalize_unrecognized_shapes_are_empty():
    assert normalize_collection_response({"count": 3}).items == []
    assert normalize_collection_response("oops").items == []
    assert normalize_collection_response(None).items == []


# ---------------- Schema inference ----------------

def test_infer_schema_from_first_record(people):
    assert infer_schema(people) == [
        FieldSchema("_id", "string"),
        FieldSchema("name", "string"),
        FieldSchema("gender", "string"),
        FieldSchema("age", "number"),
        FieldSchema("address", "string"),
        FieldSchema("active", "boolean"),
    ]


def test_infer_schema_skips_internal_keys():
    assert infer_schema([{"__v": 0, "_secret": 1, "_id": "x", "n": 2.5}]) == [
        FieldSchema("_id", "string"),
        FieldSchema("n", "number"),
    ]


def test_infer_schema_empty():
    assert infer_schema([]) == []
    assert infer_schema(["not a record"]) == []


# ---------------- Client ----------------

def test_fetch_collection_uses_prefix_and_limit(client, http):
    http.request.return_value = _response(payload={"data": [{"a": 1}]})
    payload = client.fetch_collection("users", 50)
    assert payload.items == [{"a": 1}]
    http.request.assert_called_once_with(
        "GET", "http://backend/api/v1/collection/users", timeout=3, params={"limit": 50}
    )


def test_fetch_collection_falls_back_to_short_path(client, http):
    http.request.side_effect = [_response(404), _response(payload=[{"a": 2}])]
    assert client.fetch_collection("users").items == [{"a": 2}]
    assert _urls(http) == ["http://backend/api/v1/collection/users", "http://backend/api/v1/users"]


def test_fetch_collection_error_status(client, http):
    http.request.return_value = _response(500)
    with pytest.raises(BackendError) as err:
        client.fetch_collection("users")
    assert err.value.status_code == 500


def test_unreachable_backend_raises_backend_error(client, http):
    http.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(BackendError, match="unreachable"):
        client.list_collections()


def test_invalid_json_raises_backend_error(client, http):
    response = _response()
    response.json.side_effect = ValueError("no json")
    http.request.return_value = response
    with pytest.raises(BackendError, match="invalid JSON"):
        client.list_collections()


def test_list_collections(client, http):
    http.request.return_value = _response(payload=["users", "orders"])
    assert client.list_collections() == ["users", "orders"]
    http.request.return_value = _response(payload={"unexpected": True})
    assert client.list_collections() == []


def test_fetch_schema_not_found(client, http):
    http.request.return_value = _response(404)
    with pytest.raises(BackendError, match='Collection "ghosts" not found') as err:
        client.fetch_schema("ghosts")
    assert err.value.status_code == 404


def test_fetch_schema_samples_collection(client, http):
    http.request.return_value = _response(payload=[{"name": "a", "age": 3}])
    assert client.fetch_schema("users") == [FieldSchema("name", "string"), FieldSchema("age", "number")]
    assert http.request.call_args.kwargs["params"] == {"limit": 10}


def test_list_dashboards_degrades_to_empty(client, http):
    http.request.return_value = _response(503)
    assert client.list_dashboards() == []
    http.request.return_value = _response(payload={"data": [{"id": "d1"}]})
    assert client.list_dashboards() == [{"id": "d1"}]


def test_get_dashboard_missing_is_none(client, http):
    http.request.return_value = _response(404)
    assert client.get_dashboard("d9") is None
    http.request.return_value = _response(payload={"id": "d1"})
    assert client.get_dashboard("d1") == {"id": "d1"}


def test_save_dashboard_posts_payload(client, http):
    http.request.return_value = _response(201, {"id": "d1"})
    saved = client.save_dashboard(
        [{"id": "a"}], {"lg": []}, name="Ops", updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc)
    )
    assert saved == {"id": "d1"}
    call = http.request.call_args
    assert call.args == ("POST", "http://backend/api/v1/dashboards")
    assert call.kwargs["json"] == {
        "name": "Ops",
        "charts": [{"id": "a"}],
        "layouts": {"lg": []},
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }
