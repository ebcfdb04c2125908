"""Liveness and readiness probes.

The liveness probe is stateless. The readiness probe optionally runs a
check callable (typically a ledger ping) and reports 503 until it passes.
"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from falcon.asgi import Request, Response

__all__ = ["HealthResource", "ReadyResource"]

type ReadinessCheck = cabc.Callable[[], cabc.Awaitable[bool]]


class HealthResource:
    """Liveness probe returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe returning ``{"status": "ready"}`` once checks pass.

    Parameters
    ----------
    check
        Optional coroutine function returning True when dependencies are
        reachable. Without one the service is always ready.

    """

    def __init__(self, check: ReadinessCheck | None = None) -> None:
        """Store the readiness check."""
        self._check = check

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready."""
        if self._check is not None and not await self._check():
            resp.media = {"status": "unavailable"}
            resp.status = HTTPStatus.SERVICE_UNAVAILABLE
            return
        resp.media = {"status": "ready"}
        resp.status = HTTPStatus.OK
