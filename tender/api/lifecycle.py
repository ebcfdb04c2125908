"""ASGI lifespan middleware running the dispatcher's background loops.

On startup the ledger schema is created and the pump, reclaimer and
autoscale loops are started as tasks on the server's event loop. On
shutdown the tasks are cancelled and the execution backend is closed.

Usage
-----
Register the middleware when creating the Falcon app::

    lifecycle = DispatchLifecycle(components, engine=engine)
    app = falcon.asgi.App(middleware=[lifecycle])

"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ

from tender.ledger import init_ledger_storage
from tender.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncEngine

    from tender.api.factory import DispatchComponents

__all__ = ["DispatchLifecycle"]

logger = get_logger(__name__)


class DispatchLifecycle:
    """Falcon middleware owning the background loops of one process.

    Parameters
    ----------
    components
        Wired dispatcher components whose loops are started.
    engine
        Optional engine; when given the ledger schema is created on startup.
    run_loops
        Start the background loops. Disabled in tests that drive the
        components by hand.

    """

    def __init__(
        self,
        components: DispatchComponents,
        *,
        engine: AsyncEngine | None = None,
        run_loops: bool = True,
    ) -> None:
        """Store the components to manage."""
        self._components = components
        self._engine = engine
        self._run_loops = run_loops
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def tasks(self) -> tuple[asyncio.Task[None], ...]:
        """Return the running background tasks."""
        return tuple(self._tasks)

    async def process_startup(
        self, _scope: cabc.Mapping[str, object], _event: cabc.Mapping[str, object]
    ) -> None:
        """Create the schema and start the loops."""
        if self._engine is not None:
            await init_ledger_storage(self._engine)
        if not self._run_loops:
            return
        components = self._components
        self._tasks = [
            asyncio.create_task(components.dispatcher.run(), name="dispatch-pump"),
            asyncio.create_task(components.reclaimer.run(), name="reclaimer"),
            asyncio.create_task(components.advisor.run(), name="autoscale"),
        ]
        log_info(
            logger,
            "Started dispatcher loops (ceiling=%d)",
            components.ceiling.value,
        )

    async def process_shutdown(
        self, _scope: cabc.Mapping[str, object], _event: cabc.Mapping[str, object]
    ) -> None:
        """Cancel the loops and close the execution backend."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        await self._components.backend.aclose()
        if self._engine is not None:
            await self._engine.dispose()
        log_info(logger, "Stopped dispatcher loops")
