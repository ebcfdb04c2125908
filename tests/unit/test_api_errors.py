"""Unit tests for tender.api.errors error handlers.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_errors.py

"""

from __future__ import annotations

import falcon.asgi
import falcon.testing
import pytest

from tender.api.errors import InvalidInputError, register_error_handlers
from tender.events import MalformedEventError
from tender.gate import AuthorizationDeniedError
from tender.launcher import CapacityExceededError
from tender.ledger import (
    DispatchRecordNotFoundError,
    DispatchState,
    InvalidTransitionError,
)


class _RaisingResource:
    """Resource raising whatever exception it was built with."""

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def on_get(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response
    ) -> None:
        raise self._exc


ROUTES: dict[str, Exception] = {
    "/invalid": InvalidInputError("must be positive", field="count"),
    "/malformed": MalformedEventError.missing_field("resource_id"),
    "/denied": AuthorizationDeniedError("account_not_allowed", "999988887777"),
    "/missing": DispatchRecordNotFoundError("abc"),
    "/conflict": InvalidTransitionError.state_mismatch(
        "abc", DispatchState.SUCCEEDED, DispatchState.RUNNING, DispatchState.SUCCEEDED
    ),
    "/busy": CapacityExceededError(ceiling=1, in_flight=1, timeout_s=0),
}


@pytest.fixture
def client() -> falcon.testing.TestClient:
    """Build a test client with error handlers registered."""
    app = falcon.asgi.App()
    for path, exc in ROUTES.items():
        app.add_route(path, _RaisingResource(exc))
    register_error_handlers(app)
    return falcon.testing.TestClient(app)


def test_invalid_input_maps_to_400(client: falcon.testing.TestClient) -> None:
    """InvalidInputError carries its field."""
    result = client.simulate_get("/invalid")
    assert result.status == falcon.HTTP_400, "expected HTTP 400"
    assert result.json == {
        "title": "Invalid input",
        "description": "must be positive",
        "field": "count",
    }


def test_malformed_event_maps_to_400(client: falcon.testing.TestClient) -> None:
    """Malformed events are client errors with a category."""
    result = client.simulate_get("/malformed")
    assert result.status == falcon.HTTP_400, "expected HTTP 400"
    assert result.json["category"] == "malformed_input"
    assert result.json["field"] == "resource_id"


def test_denied_maps_to_403(client: falcon.testing.TestClient) -> None:
    """Denials report the gate's reason."""
    result = client.simulate_get("/denied")
    assert result.status == falcon.HTTP_403, "expected HTTP 403"
    assert result.json["reason"] == "account_not_allowed"
    assert result.json["category"] == "authorization"


def test_not_found_maps_to_404(client: falcon.testing.TestClient) -> None:
    """Unknown records are 404s."""
    result = client.simulate_get("/missing")
    assert result.status == falcon.HTTP_404, "expected HTTP 404"
    assert result.json["category"] == "not_found"


def test_invalid_transition_maps_to_409(client: falcon.testing.TestClient) -> None:
    """Rejected transitions report the record's actual state."""
    result = client.simulate_get("/conflict")
    assert result.status == falcon.HTTP_409, "expected HTTP 409"
    assert result.json["state"] == "SUCCEEDED"


def test_capacity_maps_to_503(client: falcon.testing.TestClient) -> None:
    """Capacity exhaustion is retryable."""
    result = client.simulate_get("/busy")
    assert result.status == falcon.HTTP_503, "expected HTTP 503"
    assert result.headers["Retry-After"] == "5"
    assert result.json["category"] == "capacity"
