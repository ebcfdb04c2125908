"""Application factory for the Tender Falcon ASGI application.

This module provides ``create_app()`` which builds the Falcon ASGI
application with health endpoints and, when dispatcher components are
available, the event intake, signal and inspection endpoints.

Usage
-----
Create a health-only app (no database)::

    app = create_app()

Create a full app::

    from tender.api.app import AppDependencies, create_app
    from tender.api.factory import build_dispatch_components

    components = build_dispatch_components(session_factory)
    app = create_app(AppDependencies(components=components, engine=engine))

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi
from sqlalchemy.exc import SQLAlchemyError

from tender.api.errors import register_error_handlers
from tender.api.health.resources import HealthResource, ReadyResource
from tender.logging import get_logger, log_exception

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tender.api.factory import DispatchComponents
    from tender.ledger import DispatchLedger

__all__ = ["AppDependencies", "create_app"]

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    components
        Wired dispatcher components backing the domain endpoints.
    engine
        Engine used to create the ledger schema on startup and disposed on
        shutdown. Optional when the schema is managed elsewhere.
    run_loops
        Start the pump, reclaimer and autoscale loops on startup.

    """

    components: DispatchComponents
    engine: AsyncEngine | None = None
    run_loops: bool = True


def _ledger_ready(ledger: DispatchLedger) -> typ.Callable[[], typ.Awaitable[bool]]:
    async def check() -> bool:
        try:
            await ledger.count_pending()
        except SQLAlchemyError as exc:
            log_exception(logger, "Readiness check failed", exc)
            return False
        return True

    return check


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    When *dependencies* is given, the app includes
    :class:`~tender.api.lifecycle.DispatchLifecycle` middleware, the intake
    and signal endpoints and the record inspection endpoints. Otherwise
    only ``/health`` and ``/ready`` are registered.

    Parameters
    ----------
    dependencies
        Optional application dependencies.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    if dependencies is None:
        app = falcon.asgi.App()
        app.add_route("/health", HealthResource())
        app.add_route("/ready", ReadyResource())
        register_error_handlers(app)
        return app

    from tender.api.dispatch.resources import (
        CancelResource,
        CeilingResource,
        CompletionSignalResource,
        DispatchRecordResource,
        DispatchResourceDependencies,
        EventsResource,
        InterruptionSignalResource,
        UtilizationSignalResource,
    )
    from tender.api.lifecycle import DispatchLifecycle

    components = dependencies.components
    lifecycle = DispatchLifecycle(
        components,
        engine=dependencies.engine,
        run_loops=dependencies.run_loops,
    )
    app = falcon.asgi.App(middleware=[lifecycle])  # type: ignore[no-matching-overload]  # Falcon stubs

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(_ledger_ready(components.ledger)))

    resource_deps = DispatchResourceDependencies(
        dispatcher=components.dispatcher,
        reclaimer=components.reclaimer,
        advisor=components.advisor,
        limiter=components.limiter,
    )
    app.add_route("/events", EventsResource(resource_deps))
    app.add_route("/signals/interruptions", InterruptionSignalResource(resource_deps))
    app.add_route("/signals/completions", CompletionSignalResource(resource_deps))
    app.add_route("/signals/utilization", UtilizationSignalResource(resource_deps))
    app.add_route("/dispatches/{event_id}", DispatchRecordResource(resource_deps))
    app.add_route("/dispatches/{event_id}/cancel", CancelResource(resource_deps))
    app.add_route("/ceiling", CeilingResource(resource_deps))

    register_error_handlers(app)
    return app
