"""In-memory execution backend for tests and local runs."""

from __future__ import annotations

import itertools

from tender.launcher.backend import LaunchRequest, TaskHandle
from tender.launcher.errors import LaunchRejectedError


class StubExecutionBackend:
    """Deterministic backend that records launches instead of running them.

    Handles are ``stub-task-<n>`` with ``n`` counting from 1. Queue
    rejections with :meth:`reject_next` to exercise failure paths.

    Examples
    --------
    >>> import asyncio
    >>> backend = StubExecutionBackend()
    >>> request = LaunchRequest(template_reference="tpl:1",
    ...                         identity_to_assume="role/worker",
    ...                         cpu_units=256, memory_mib=512)
    >>> asyncio.run(backend.run_task(request))
    'stub-task-1'

    """

    def __init__(self, *, handle_prefix: str = "stub-task") -> None:
        """Prepare an empty launch log."""
        self._prefix = handle_prefix
        self._counter = itertools.count(1)
        self._pending_rejections: list[LaunchRejectedError] = []
        self.launched: list[tuple[TaskHandle, LaunchRequest]] = []

    def reject_next(self, reason: str, detail: str | None = None) -> None:
        """Fail the next launch with ``reason``."""
        self._pending_rejections.append(LaunchRejectedError(reason, detail=detail))

    async def run_task(self, request: LaunchRequest) -> TaskHandle:
        """Record ``request`` and return a fresh handle."""
        if self._pending_rejections:
            raise self._pending_rejections.pop(0)
        handle = f"{self._prefix}-{next(self._counter)}"
        self.launched.append((handle, request))
        return handle

    async def aclose(self) -> None:
        """Nothing to release."""
