"""Unit tests for tender.api.app application factory.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_app.py

"""

from __future__ import annotations

import asyncio
import typing as typ
from unittest import mock

import falcon.asgi
import falcon.testing
import pytest
from sqlalchemy.exc import OperationalError

from tender.api.app import AppDependencies, create_app
from tender.api.lifecycle import DispatchLifecycle

if typ.TYPE_CHECKING:
    from tender.api.factory import DispatchComponents


@pytest.fixture
def health_client() -> falcon.testing.TestClient:
    """Build a test client for health-only mode."""
    return falcon.testing.TestClient(create_app())


class TestCreateAppHealthOnly:
    """Tests for create_app() without dispatcher components."""

    def test_returns_falcon_app(self) -> None:
        """create_app() returns a Falcon ASGI App."""
        assert isinstance(create_app(), falcon.asgi.App), "expected Falcon ASGI App"

    def test_has_health_route(self, health_client: falcon.testing.TestClient) -> None:
        """Health-only app responds to /health."""
        result = health_client.simulate_get("/health")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /health"
        assert result.json == {"status": "ok"}, "wrong /health body"

    def test_has_ready_route(self, health_client: falcon.testing.TestClient) -> None:
        """Health-only app is always ready."""
        result = health_client.simulate_get("/ready")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /ready"
        assert result.json == {"status": "ready"}, "wrong /ready body"

    def test_events_endpoint_not_registered(
        self, health_client: falcon.testing.TestClient
    ) -> None:
        """Without components, intake is not served."""
        result = health_client.simulate_post("/events", body=b"{}")
        assert result.status == falcon.HTTP_404, "expected HTTP 404"


class TestCreateAppWithComponents:
    """Tests for create_app() with dispatcher components."""

    @pytest.mark.asyncio
    async def test_ready_when_ledger_reachable(
        self, components: DispatchComponents
    ) -> None:
        """/ready pings the ledger."""
        app = create_app(AppDependencies(components=components, run_loops=False))
        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_get("/ready")
        assert result.status == falcon.HTTP_200, "expected HTTP 200 from /ready"

    @pytest.mark.asyncio
    async def test_not_ready_when_ledger_fails(
        self, components: DispatchComponents, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """/ready answers 503 while the ledger is unreachable."""
        failing = mock.AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("down"))
        )
        monkeypatch.setattr(components.ledger, "count_pending", failing)
        app = create_app(AppDependencies(components=components, run_loops=False))

        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_get("/ready")

        assert result.status == falcon.HTTP_503, "expected HTTP 503 from /ready"
        assert result.json == {"status": "unavailable"}

    @pytest.mark.asyncio
    async def test_ceiling_route(self, components: DispatchComponents) -> None:
        """/ceiling reports bounds and usage."""
        app = create_app(AppDependencies(components=components, run_loops=False))
        async with falcon.testing.ASGIConductor(app) as conductor:
            result = await conductor.simulate_get("/ceiling")
        assert result.json == {
            "ceiling": 2,
            "minimum": 0,
            "maximum": 4,
            "in_flight": 0,
            "latest_sample": None,
        }


class TestDispatchLifecycle:
    """Startup and shutdown of the background loops."""

    @pytest.mark.asyncio
    async def test_starts_and_stops_loops(self, components: DispatchComponents) -> None:
        """Startup spawns three named loops that shutdown cancels."""
        lifecycle = DispatchLifecycle(components)

        await lifecycle.process_startup({}, {})
        tasks = lifecycle.tasks
        await asyncio.sleep(0)
        assert {task.get_name() for task in tasks} == {
            "dispatch-pump",
            "reclaimer",
            "autoscale",
        }
        assert not any(task.done() for task in tasks)

        await lifecycle.process_shutdown({}, {})
        assert all(task.cancelled() for task in tasks)
        assert lifecycle.tasks == ()

    @pytest.mark.asyncio
    async def test_closes_backend_without_loops(
        self, components: DispatchComponents, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Shutdown closes the execution backend even when loops are off."""
        aclose = mock.AsyncMock()
        monkeypatch.setattr(components.backend, "aclose", aclose)
        lifecycle = DispatchLifecycle(components, run_loops=False)

        await lifecycle.process_startup({}, {})
        assert lifecycle.tasks == ()
        await lifecycle.process_shutdown({}, {})

        aclose.assert_awaited_once()
