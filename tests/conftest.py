"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tender.api.factory import DispatchComponents, build_dispatch_components
from tender.autoscale import AutoscaleConfig
from tender.dispatch import DispatcherConfig
from tender.launcher import StubExecutionBackend
from tender.ledger import DispatchLedger, init_ledger_storage
from tests.helpers.event_builders import write_policy, write_templates

if typ.TYPE_CHECKING:
    from pathlib import Path


async def _setup_sqlite(tmp_path: Path) -> AsyncEngine:
    """Create a SQLite engine with the ledger schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tender_test.db'}")
    try:
        await init_ledger_storage(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield a SQLite engine with ledger tables created."""
    engine = await _setup_sqlite(tmp_path)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the test engine."""
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def ledger(session_factory: async_sessionmaker[AsyncSession]) -> DispatchLedger:
    """Return a ledger with the default retry budget."""
    return DispatchLedger(session_factory)


@pytest.fixture
def stub_backend() -> StubExecutionBackend:
    """Return a fresh in-memory execution backend."""
    return StubExecutionBackend()


@pytest.fixture
def dispatcher_config(tmp_path: Path) -> DispatcherConfig:
    """Return dispatcher settings pointing at generated policy and templates."""
    return DispatcherConfig(
        max_retries=2,
        execution_timeout_s=600.0,
        poll_interval_s=0.1,
        policy_path=write_policy(tmp_path / "policy.yaml"),
        templates_path=write_templates(tmp_path / "templates.yaml"),
    )


@pytest.fixture
def components(
    session_factory: async_sessionmaker[AsyncSession],
    stub_backend: StubExecutionBackend,
    dispatcher_config: DispatcherConfig,
) -> DispatchComponents:
    """Wire a full dispatcher around the stub backend with a ceiling of 2."""
    return build_dispatch_components(
        session_factory,
        backend=stub_backend,
        dispatcher_config=dispatcher_config,
        autoscale_config=AutoscaleConfig(minimum=0, maximum=4, initial=2),
    )
