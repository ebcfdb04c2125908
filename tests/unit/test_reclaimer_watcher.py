"""Unit tests for the capacity reclaimer watcher."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest

from tender.launcher import (
    CapacityLimiter,
    ConcurrencyCeiling,
    StubExecutionBackend,
    TaskLauncher,
)
from tender.ledger import (
    DispatchLedger,
    DispatchRecordNotFoundError,
    DispatchState,
    InvalidTransitionError,
)
from tender.reclaimer import (
    OPERATOR_CANCEL_REASON,
    CapacityReclaimerWatcher,
    InterruptionSignal,
    ReclaimOutcome,
)
from tender.templates import TaskTemplate
from tests.helpers.event_builders import canonical_event
from tests.helpers.femtologging_capture import capture_femto_logs

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

TEMPLATE = TaskTemplate(
    name="ingest-csv",
    template_reference="task-def/ingest:3",
    identity_to_assume="role/ingest-worker",
)


class _Harness(typ.NamedTuple):
    ledger: DispatchLedger
    launcher: TaskLauncher
    watcher: CapacityReclaimerWatcher


def _harness(ledger: DispatchLedger) -> _Harness:
    launcher = TaskLauncher(
        ledger,
        StubExecutionBackend(),
        CapacityLimiter(ConcurrencyCeiling(4, maximum=4)),
    )
    return _Harness(ledger, launcher, CapacityReclaimerWatcher(ledger, launcher))


async def _running(harness: _Harness, token: str = "0001") -> tuple[str, str]:
    record = (await harness.ledger.admit(canonical_event(sequence_token=token))).record
    handle = await harness.launcher.launch(record, TEMPLATE)
    return record.event_id, handle


@pytest.mark.asyncio
async def test_preemption_requeues_and_releases(ledger: DispatchLedger) -> None:
    """A reclaimed task goes back to Pending with its slot returned."""
    harness = _harness(ledger)
    event_id, handle = await _running(harness)

    with capture_femto_logs("tender.reclaimer.watcher") as capture:
        outcome = await harness.watcher.handle(InterruptionSignal(task_handle=handle))
        log = capture.wait_for_message("dispatch.task.preempted")

    record = await ledger.get(event_id)
    assert outcome is ReclaimOutcome.REQUEUED
    assert record.dispatch_state is DispatchState.PENDING
    assert record.attempt_count == 1
    assert record.failure_reason == "capacity_reclaimed"
    assert harness.launcher.limiter.in_flight == 0
    assert "outcome=requeued" in log.message


@pytest.mark.asyncio
async def test_preemption_with_spent_budget_fails(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Without retries left a preempted record fails permanently."""
    harness = _harness(DispatchLedger(session_factory, max_retries=0))
    event_id, handle = await _running(harness)

    outcome = await harness.watcher.handle(InterruptionSignal(task_handle=handle))

    assert outcome is ReclaimOutcome.FAILED
    record = await harness.ledger.get(event_id)
    assert record.dispatch_state is DispatchState.FAILED
    assert harness.launcher.limiter.in_flight == 0


@pytest.mark.asyncio
async def test_unknown_handle_is_logged(ledger: DispatchLedger) -> None:
    """Signals for handles the ledger never issued are ignored."""
    harness = _harness(ledger)

    with capture_femto_logs("tender.reclaimer.watcher") as capture:
        outcome = await harness.watcher.handle(InterruptionSignal(task_handle="ghost"))
        log = capture.wait_for_message("dispatch.reclaim.unknown_handle")

    assert outcome is ReclaimOutcome.UNKNOWN_HANDLE
    assert log.level == "WARN"


@pytest.mark.asyncio
async def test_signal_after_completion_is_stale(ledger: DispatchLedger) -> None:
    """A late interruption for a finished task changes nothing."""
    harness = _harness(ledger)
    event_id, handle = await _running(harness)
    await ledger.mark_succeeded(event_id)

    outcome = await harness.watcher.handle(InterruptionSignal(task_handle=handle))

    assert outcome is ReclaimOutcome.STALE
    record = await ledger.get(event_id)
    assert record.dispatch_state is DispatchState.SUCCEEDED


@pytest.mark.asyncio
async def test_duplicate_signal_is_ignored(ledger: DispatchLedger) -> None:
    """Delivering the same interruption twice costs one attempt."""
    harness = _harness(ledger)
    event_id, handle = await _running(harness)
    signal = InterruptionSignal(task_handle=handle)

    await harness.watcher.handle(signal)
    second = await harness.watcher.handle(signal)

    assert second is ReclaimOutcome.UNKNOWN_HANDLE
    assert (await ledger.get(event_id)).attempt_count == 1


@pytest.mark.asyncio
async def test_cancel_running_record(ledger: DispatchLedger) -> None:
    """Operator cancellation is reconciled like a preemption."""
    harness = _harness(ledger)
    event_id, _ = await _running(harness)

    record = await harness.watcher.cancel(event_id)

    assert record.dispatch_state is DispatchState.PENDING
    assert record.failure_reason == OPERATOR_CANCEL_REASON


@pytest.mark.asyncio
async def test_cancel_requires_running_record(ledger: DispatchLedger) -> None:
    """Only Running records can be cancelled."""
    harness = _harness(ledger)
    record = (await ledger.admit(canonical_event())).record

    with pytest.raises(InvalidTransitionError):
        await harness.watcher.cancel(record.event_id)
    with pytest.raises(DispatchRecordNotFoundError):
        await harness.watcher.cancel("f" * 64)


@pytest.mark.asyncio
async def test_drain_processes_queue(ledger: DispatchLedger) -> None:
    """Queued signals are handled in order by drain()."""
    harness = _harness(ledger)
    first_id, first_handle = await _running(harness, "0001")
    second_id, second_handle = await _running(harness, "0002")

    await harness.watcher.submit(InterruptionSignal(task_handle=first_handle))
    await harness.watcher.submit(InterruptionSignal(task_handle="ghost"))
    await harness.watcher.submit(InterruptionSignal(task_handle=second_handle))
    assert harness.watcher.backlog == 3

    assert await harness.watcher.drain() == 3
    assert harness.watcher.backlog == 0
    for event_id in (first_id, second_id):
        record = await ledger.get(event_id)
        assert record.dispatch_state is DispatchState.PENDING


@pytest.mark.asyncio
async def test_run_loop_handles_signals(ledger: DispatchLedger) -> None:
    """The background loop processes submitted signals until cancelled."""
    harness = _harness(ledger)
    event_id, handle = await _running(harness)
    task = asyncio.create_task(harness.watcher.run())
    try:
        await harness.watcher.submit(InterruptionSignal(task_handle=handle))
        for _ in range(100):
            record = await ledger.get(event_id)
            if record.dispatch_state is DispatchState.PENDING:
                break
            await asyncio.sleep(0.01)
        assert record.dispatch_state is DispatchState.PENDING
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
