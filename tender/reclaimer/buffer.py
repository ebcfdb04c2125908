"""Hold backend signals that arrive before their task handle is recorded.

The backend acknowledges a launch and may report on the new task before the
ledger has stored the handle. Such signals are parked here and replayed once
the launch is recorded; anything unclaimed within ``ttl_s`` is dropped with a
warning.
"""

from __future__ import annotations

import collections
import time
import typing as typ

from tender.logging import get_logger, log_info, log_warning
from tender.reclaimer.models import CompletionSignal, InterruptionSignal

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from tender.ledger import DispatchLedger, DispatchRecord

logger = get_logger(__name__)

BackendSignal = InterruptionSignal | CompletionSignal

SIGNAL_HELD = "dispatch.signal.held"
SIGNAL_EXPIRED = "dispatch.signal.expired"


def _kind(signal: BackendSignal) -> str:
    return "completion" if isinstance(signal, CompletionSignal) else "interruption"


class EarlySignalBuffer:
    """Bounded, time-limited store of signals keyed by task handle.

    Parameters
    ----------
    ttl_s
        Seconds a signal waits for its handle before it is discarded.
    max_entries
        Capacity; the oldest signal is discarded when it is exceeded.
    clock
        Monotonic time source.

    """

    def __init__(
        self,
        *,
        ttl_s: float = 300.0,
        max_entries: int = 1024,
        clock: cabc.Callable[[], float] = time.monotonic,
    ) -> None:
        """Validate limits and create the store."""
        if ttl_s <= 0:
            msg = f"ttl_s must be positive, got {ttl_s}"
            raise ValueError(msg)
        if max_entries < 1:
            msg = f"max_entries must be at least 1, got {max_entries}"
            raise ValueError(msg)
        self._ttl_s = ttl_s
        self._max_entries = max_entries
        self._clock = clock
        self._held: collections.deque[tuple[float, BackendSignal]] = (
            collections.deque()
        )

    def __len__(self) -> int:
        """Return the number of live held signals."""
        self._prune()
        return len(self._held)

    def hold(self, signal: BackendSignal) -> None:
        """Park ``signal`` until its handle is recorded."""
        self._prune()
        if len(self._held) >= self._max_entries:
            _, dropped = self._held.popleft()
            self._log_expired(dropped)
        self._held.append((self._clock(), signal))
        log_info(
            logger,
            "[%s] task_handle=%s kind=%s",
            SIGNAL_HELD,
            signal.task_handle,
            _kind(signal),
        )

    def take(self, task_handle: str) -> list[BackendSignal]:
        """Remove and return the signals held for ``task_handle``, oldest first."""
        self._prune()
        taken = [
            signal for _, signal in self._held if signal.task_handle == task_handle
        ]
        if taken:
            self._held = collections.deque(
                entry for entry in self._held if entry[1].task_handle != task_handle
            )
        return taken

    def discard(self, signal: BackendSignal) -> bool:
        """Remove ``signal`` itself; False when someone else already took it."""
        for index, (_, held) in enumerate(self._held):
            if held is signal:
                del self._held[index]
                return True
        return False

    async def park(
        self, signal: BackendSignal, ledger: DispatchLedger
    ) -> DispatchRecord | None:
        """Hold ``signal`` unless its handle was recorded in the meantime.

        Returns the record when the handle turned up between the caller's
        lookup and the hold, in which case the caller applies the signal
        itself. ``None`` means the signal is parked, or was already taken
        for replay by the launch that recorded the handle.
        """
        self.hold(signal)
        record = await ledger.find_by_task_handle(signal.task_handle)
        if record is not None and self.discard(signal):
            return record
        return None

    def _prune(self) -> None:
        cutoff = self._clock() - self._ttl_s
        while self._held and self._held[0][0] < cutoff:
            _, expired = self._held.popleft()
            self._log_expired(expired)

    @staticmethod
    def _log_expired(signal: BackendSignal) -> None:
        log_warning(
            logger,
            "[%s] task_handle=%s kind=%s",
            SIGNAL_EXPIRED,
            signal.task_handle,
            _kind(signal),
        )
