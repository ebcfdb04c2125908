"""Concurrency ceiling and the limiter that enforces it."""

from __future__ import annotations

import asyncio
import threading
import typing as typ

from tender.launcher.errors import CapacityExceededError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

type CeilingListener = cabc.Callable[[int], None]


class ConcurrencyCeiling:
    """Thread-safe holder for the maximum number of in-flight tasks.

    The ceiling is written by the autoscale advisor and read by the
    launcher. Every write is clamped to ``[minimum, maximum]`` and listeners
    are told about effective changes.

    Examples
    --------
    >>> ceiling = ConcurrencyCeiling(5, minimum=1, maximum=4)
    >>> ceiling.value
    4
    >>> ceiling.set(0)
    1

    """

    def __init__(self, initial: int, *, minimum: int = 0, maximum: int) -> None:
        """Validate bounds and store the clamped initial value."""
        if minimum < 0:
            msg = "minimum ceiling must be zero or positive"
            raise ValueError(msg)
        if maximum < minimum:
            msg = f"maximum ceiling {maximum} is below minimum {minimum}"
            raise ValueError(msg)
        self._minimum = minimum
        self._maximum = maximum
        self._lock = threading.Lock()
        self._value = self.clamp(initial)
        self._listeners: list[CeilingListener] = []

    @property
    def minimum(self) -> int:
        """Return the lower bound."""
        return self._minimum

    @property
    def maximum(self) -> int:
        """Return the upper bound."""
        return self._maximum

    @property
    def value(self) -> int:
        """Return the current ceiling."""
        with self._lock:
            return self._value

    def clamp(self, value: int) -> int:
        """Return ``value`` bounded to ``[minimum, maximum]``."""
        return max(self._minimum, min(self._maximum, value))

    def set(self, value: int) -> int:
        """Store ``value`` (clamped) and return the effective ceiling."""
        clamped = self.clamp(value)
        with self._lock:
            changed = clamped != self._value
            self._value = clamped
            listeners = list(self._listeners)
        if changed:
            for listener in listeners:
                listener(clamped)
        return clamped

    def subscribe(self, listener: CeilingListener) -> None:
        """Call ``listener`` with the new value after each effective change."""
        with self._lock:
            self._listeners.append(listener)


class CapacityLimiter:
    """Atomic test-and-acquire of launch slots against a ceiling.

    Lowering the ceiling below the current in-flight count does not stop
    running tasks; it only blocks new acquisitions until enough slots are
    released.

    Parameters
    ----------
    ceiling
        Shared ceiling to enforce.

    """

    def __init__(self, ceiling: ConcurrencyCeiling) -> None:
        """Bind to ``ceiling`` and subscribe to its changes."""
        self._ceiling = ceiling
        self._in_flight = 0
        self._condition = asyncio.Condition()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeups: set[asyncio.Task[None]] = set()
        ceiling.subscribe(self._on_ceiling_change)

    @property
    def ceiling(self) -> ConcurrencyCeiling:
        """Return the enforced ceiling."""
        return self._ceiling

    @property
    def in_flight(self) -> int:
        """Return the number of held slots."""
        return self._in_flight

    def _has_room(self) -> bool:
        return self._in_flight < self._ceiling.value

    async def acquire(self, timeout: float = 0) -> None:
        """Take one slot, waiting up to ``timeout`` seconds for room.

        Raises
        ------
        CapacityExceededError
            If no slot is available in time. ``timeout <= 0`` fails
            immediately when the ceiling is reached.

        """
        async with self._condition:
            self._loop = asyncio.get_running_loop()
            if not self._has_room():
                if timeout <= 0:
                    raise self._exceeded(timeout)
                try:
                    await asyncio.wait_for(
                        self._condition.wait_for(self._has_room), timeout
                    )
                except TimeoutError as exc:
                    raise self._exceeded(timeout) from exc
            self._in_flight += 1

    async def adopt(self) -> None:
        """Take a slot regardless of the ceiling.

        Used on startup for tasks that were already in flight.
        """
        async with self._condition:
            self._loop = asyncio.get_running_loop()
            self._in_flight += 1

    async def release(self) -> None:
        """Return one slot and wake waiters."""
        async with self._condition:
            if self._in_flight > 0:
                self._in_flight -= 1
            self._condition.notify_all()

    def _exceeded(self, timeout: float) -> CapacityExceededError:
        return CapacityExceededError(
            self._ceiling.value, self._in_flight, max(timeout, 0.0)
        )

    def _on_ceiling_change(self, _value: int) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._schedule_wakeup)

    def _schedule_wakeup(self) -> None:
        task = asyncio.ensure_future(self._wake())
        self._wakeups.add(task)
        task.add_done_callback(self._wakeups.discard)

    async def _wake(self) -> None:
        async with self._condition:
            self._condition.notify_all()
