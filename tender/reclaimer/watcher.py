"""Background watcher that re-queues work preempted by the backend."""

from __future__ import annotations

import asyncio
import enum
import typing as typ

from tender.ledger import (
    DispatchRecordNotFoundError,
    DispatchState,
    InvalidTransitionError,
)
from tender.logging import get_logger, log_exception, log_info, log_warning
from tender.reclaimer.buffer import EarlySignalBuffer
from tender.reclaimer.models import InterruptionSignal

if typ.TYPE_CHECKING:
    from tender.launcher import TaskLauncher
    from tender.ledger import DispatchLedger, DispatchRecord

logger = get_logger(__name__)

OPERATOR_CANCEL_REASON = "operator_cancelled"


class ReclaimEventType(enum.StrEnum):
    """Reclaimer event identifiers."""

    TASK_PREEMPTED = "dispatch.task.preempted"
    UNKNOWN_HANDLE = "dispatch.reclaim.unknown_handle"
    STALE_SIGNAL = "dispatch.reclaim.stale_signal"
    HANDLER_FAILED = "dispatch.reclaim.failed"


class ReclaimOutcome(enum.StrEnum):
    """Result of handling one interruption signal."""

    REQUEUED = "requeued"
    FAILED = "failed"
    UNKNOWN_HANDLE = "unknown_handle"
    STALE = "stale"


class CapacityReclaimerWatcher:
    """Consume interruption signals and hand preempted work back to the ledger.

    Signals are queued by :meth:`submit` and drained by :meth:`run`, which
    runs as its own task and never waits on the launcher. Each preemption
    costs one attempt from the record's retry budget.

    Parameters
    ----------
    ledger
        Dispatch ledger owning record state.
    launcher
        Launcher whose capacity slot is returned for each preempted task.
    early_signals
        Holds interruptions whose handle is not recorded yet; shared with
        the dispatcher, which replays them after a launch.

    """

    def __init__(
        self,
        ledger: DispatchLedger,
        launcher: TaskLauncher,
        *,
        queue_size: int = 0,
        early_signals: EarlySignalBuffer | None = None,
    ) -> None:
        """Create the signal queue."""
        self._ledger = ledger
        self._launcher = launcher
        self._early_signals = (
            EarlySignalBuffer() if early_signals is None else early_signals
        )
        self._queue: asyncio.Queue[InterruptionSignal] = asyncio.Queue(queue_size)

    @property
    def early_signals(self) -> EarlySignalBuffer:
        """Return the buffer of signals awaiting their task handle."""
        return self._early_signals

    @property
    def backlog(self) -> int:
        """Return the number of queued, unhandled signals."""
        return self._queue.qsize()

    async def submit(self, signal: InterruptionSignal) -> None:
        """Queue ``signal`` for the background loop."""
        await self._queue.put(signal)

    async def handle(self, signal: InterruptionSignal) -> ReclaimOutcome:
        """Apply one interruption.

        Unknown handles are held in :attr:`early_signals` in case the launch
        that issued them has not been recorded yet. Records that already left
        ``Running`` are logged and ignored; interruption notices are commonly
        delivered more than once.
        """
        record = await self._ledger.find_by_task_handle(signal.task_handle)
        if record is None:
            record = await self._early_signals.park(signal, self._ledger)
        if record is None:
            self._log_unknown(signal)
            return ReclaimOutcome.UNKNOWN_HANDLE

        try:
            updated = await self._ledger.record_preemption(
                signal.task_handle, signal.reason
            )
        except DispatchRecordNotFoundError:
            self._log_unknown(signal)
            return ReclaimOutcome.UNKNOWN_HANDLE
        except InvalidTransitionError as exc:
            log_warning(
                logger,
                "[%s] task_handle=%s event_id=%s current=%s",
                ReclaimEventType.STALE_SIGNAL,
                signal.task_handle,
                exc.event_id,
                exc.current.name if exc.current is not None else None,
            )
            return ReclaimOutcome.STALE

        await self._launcher.release(record.event_id)
        outcome = (
            ReclaimOutcome.REQUEUED
            if updated.dispatch_state is DispatchState.PENDING
            else ReclaimOutcome.FAILED
        )
        log_info(
            logger,
            "[%s] event_id=%s task_handle=%s reason=%s attempt_count=%d outcome=%s",
            ReclaimEventType.TASK_PREEMPTED,
            record.event_id,
            signal.task_handle,
            signal.reason,
            updated.attempt_count,
            outcome,
        )
        return outcome

    async def cancel(
        self, event_id: str, reason: str = OPERATOR_CANCEL_REASON
    ) -> DispatchRecord:
        """Abort a Running record; reconciled exactly like a preemption.

        Raises
        ------
        DispatchRecordNotFoundError
            If ``event_id`` is unknown.
        InvalidTransitionError
            If the record is not Running.

        """
        record = await self._ledger.get(event_id)
        if record.dispatch_state is not DispatchState.RUNNING or not record.task_handle:
            raise InvalidTransitionError.state_mismatch(
                event_id,
                record.dispatch_state,
                DispatchState.RUNNING,
                DispatchState.PREEMPTED,
            )
        outcome = await self.handle(
            InterruptionSignal(task_handle=record.task_handle, reason=reason)
        )
        if outcome is ReclaimOutcome.STALE:
            current = await self._ledger.get(event_id)
            raise InvalidTransitionError.state_mismatch(
                event_id,
                current.dispatch_state,
                DispatchState.RUNNING,
                DispatchState.PREEMPTED,
            )
        return await self._ledger.get(event_id)

    async def drain(self) -> int:
        """Handle every queued signal and return how many were processed."""
        handled = 0
        while not self._queue.empty():
            signal = self._queue.get_nowait()
            try:
                await self._handle_logged(signal)
            finally:
                self._queue.task_done()
            handled += 1
        return handled

    async def run(self) -> None:
        """Handle queued signals forever."""
        while True:
            signal = await self._queue.get()
            try:
                await self._handle_logged(signal)
            finally:
                self._queue.task_done()

    async def _handle_logged(self, signal: InterruptionSignal) -> None:
        try:
            await self.handle(signal)
        except Exception as exc:  # noqa: BLE001 - loop must outlive one bad signal
            log_exception(
                logger,
                f"[{ReclaimEventType.HANDLER_FAILED}] task_handle={signal.task_handle}",
                exc,
            )

    def _log_unknown(self, signal: InterruptionSignal) -> None:
        log_warning(
            logger,
            "[%s] task_handle=%s reason=%s",
            ReclaimEventType.UNKNOWN_HANDLE,
            signal.task_handle,
            signal.reason,
        )
