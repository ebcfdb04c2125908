"""Shared context and wiring for dispatcher BDD steps.

Examples
--------
Provision a context from a fixture::

    from tests.features.steps._dispatch_context import open_dispatch_context

    context = open_dispatch_context(tmp_path, ceiling=1)

"""

from __future__ import annotations

import asyncio
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tender.api.factory import DispatchComponents, build_dispatch_components
from tender.autoscale import AutoscaleConfig
from tender.dispatch import DispatcherConfig
from tender.launcher import StubExecutionBackend
from tender.ledger import init_ledger_storage
from tests.helpers.event_builders import write_policy, write_templates

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from tender.autoscale import CeilingDecision
    from tender.dispatch import IngestResult, PumpReport


class DispatchContext(typ.TypedDict, total=False):
    """Mutable state shared between dispatcher BDD steps.

    Attributes
    ----------
    engine
        Ledger engine, disposed when the scenario ends.
    components
        Dispatcher components wired around a stub backend.
    backend
        The stub backend, for inspecting launches.
    results
        Ingest results in delivery order.
    report
        Result of the most recent pump.
    decision
        Result of the most recent autoscale tick.

    """

    engine: AsyncEngine
    components: DispatchComponents
    backend: StubExecutionBackend
    results: list[IngestResult]
    report: PumpReport
    decision: CeilingDecision
    handle: str


def open_dispatch_context(
    tmp_path: Path, *, ceiling: int = 2, max_retries: int = 2
) -> DispatchContext:
    """Create a ledger and dispatcher trusting the test account."""
    # Each step runs its own event loop; pooled connections must not cross them.
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bdd-dispatch.db'}", poolclass=NullPool
    )
    asyncio.run(init_ledger_storage(engine))
    backend = StubExecutionBackend()
    components = build_dispatch_components(
        async_sessionmaker(engine, expire_on_commit=False),
        backend=backend,
        dispatcher_config=DispatcherConfig(
            max_retries=max_retries,
            policy_path=write_policy(tmp_path / "policy.yaml"),
            templates_path=write_templates(tmp_path / "templates.yaml"),
        ),
        autoscale_config=AutoscaleConfig(
            minimum=1, maximum=8, initial=ceiling, target_cpu_pct=70.0
        ),
    )
    return {
        "engine": engine,
        "components": components,
        "backend": backend,
        "results": [],
    }


def close_dispatch_context(context: DispatchContext) -> None:
    """Dispose of the scenario's engine."""
    engine = context.get("engine")
    if engine is not None:
        asyncio.run(engine.dispose())
