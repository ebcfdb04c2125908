"""Behavioural coverage for the concurrency ceiling and its advisor."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from tender.autoscale import UtilizationSample
from tender.ledger import DispatchState
from tender.reclaimer import CompletionSignal
from tests.features.steps._dispatch_context import (
    close_dispatch_context,
    open_dispatch_context,
)
from tests.helpers.event_builders import raw_event

if typ.TYPE_CHECKING:
    from pathlib import Path

    from tests.features.steps._dispatch_context import DispatchContext


@scenario(
    "../capacity_ceiling.feature",
    "Launches beyond the ceiling wait for capacity",
)
def test_launches_wait_for_capacity() -> None:
    """Wrap the pytest-bdd scenario for ceiling enforcement."""


@scenario(
    "../capacity_ceiling.feature",
    "A hot fleet lowers the ceiling despite a backlog",
)
def test_hot_fleet_lowers_ceiling() -> None:
    """Wrap the pytest-bdd scenario for the advisor."""


@pytest.fixture
def dispatch_context(tmp_path: Path) -> typ.Iterator[DispatchContext]:
    """Hold the scenario context; the Given step opens it."""
    context: DispatchContext = {}
    try:
        yield context
    finally:
        close_dispatch_context(context)


@given(parsers.parse("a dispatcher with a concurrency ceiling of {ceiling:d}"))
def given_dispatcher(
    dispatch_context: DispatchContext, tmp_path: Path, ceiling: int
) -> None:
    """Wire a dispatcher whose ceiling starts at ``ceiling``."""
    dispatch_context.update(open_dispatch_context(tmp_path, ceiling=ceiling))
    assert dispatch_context["components"].limiter.ceiling.value == ceiling


@given(parsers.parse("{count:d} pending events"))
def given_pending_events(dispatch_context: DispatchContext, count: int) -> None:
    """Admit ``count`` distinct events."""
    dispatcher = dispatch_context["components"].dispatcher

    async def _run() -> None:
        for index in range(count):
            result = await dispatcher.ingest(raw_event(sequence_token=f"{index:04d}"))
            dispatch_context["results"].append(result)

    asyncio.run(_run())


@when("the dispatcher pumps")
def when_pump(dispatch_context: DispatchContext) -> None:
    """Run one pump pass."""
    dispatcher = dispatch_context["components"].dispatcher
    dispatch_context["report"] = asyncio.run(dispatcher.pump())


@when("the running task completes successfully")
def when_task_completes(dispatch_context: DispatchContext) -> None:
    """Report success for the only running task."""
    components = dispatch_context["components"]

    async def _run() -> None:
        (running,) = await components.ledger.list_in_flight()
        assert running.task_handle is not None
        await components.dispatcher.complete(
            CompletionSignal(task_handle=running.task_handle, succeeded=True)
        )

    asyncio.run(_run())


@when(parsers.parse("the fleet reports {cpu:d}% CPU against a {target:d}% target"))
def when_fleet_reports(
    dispatch_context: DispatchContext, cpu: int, target: int
) -> None:
    """Tick the advisor with a CPU-bound sample."""
    advisor = dispatch_context["components"].advisor
    assert advisor.config.target_cpu_pct == target
    sample = UtilizationSample(cpu_pct=float(cpu), mem_pct=40.0)
    dispatch_context["decision"] = asyncio.run(advisor.tick(sample))


def _count(dispatch_context: DispatchContext, state: DispatchState) -> int:
    ledger = dispatch_context["components"].ledger
    return asyncio.run(ledger.count_in_state(state))


@then(parsers.parse("{count:d} task is running"))
def then_running(dispatch_context: DispatchContext, count: int) -> None:
    """Check the running count."""
    assert _count(dispatch_context, DispatchState.RUNNING) == count
    assert dispatch_context["components"].limiter.in_flight == count


@then(parsers.parse("{count:d} record remains pending"))
def then_pending(dispatch_context: DispatchContext, count: int) -> None:
    """Check the backlog."""
    assert _count(dispatch_context, DispatchState.PENDING) == count
    assert dispatch_context["report"].deferred == count


@then(parsers.parse("{count:d} record has succeeded"))
def then_succeeded(dispatch_context: DispatchContext, count: int) -> None:
    """Check finished records."""
    assert _count(dispatch_context, DispatchState.SUCCEEDED) == count


@then(parsers.parse("the ceiling drops to {ceiling:d}"))
def then_ceiling(dispatch_context: DispatchContext, ceiling: int) -> None:
    """The hot sample outweighed the backlog."""
    decision = dispatch_context["decision"]
    assert decision.ceiling == ceiling
    assert decision.backlog > 0
    assert dispatch_context["components"].limiter.ceiling.value == ceiling
