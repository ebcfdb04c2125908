"""Assemble dispatcher components from environment configuration.

Usage
-----
Build the full component graph for the API layer::

    from tender.api.factory import build_dispatch_components

    components = build_dispatch_components(session_factory)

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from tender.autoscale import AutoscaleAdvisor, AutoscaleConfig
from tender.dispatch import Dispatcher, DispatcherConfig
from tender.gate import AccountPolicy, PolicyGate, load_account_policy
from tender.launcher import (
    CapacityLimiter,
    ConcurrencyCeiling,
    TaskLauncher,
    create_execution_backend,
)
from tender.ledger import DispatchLedger
from tender.reclaimer import CapacityReclaimerWatcher
from tender.templates import TemplateCatalogue, TemplateRouter, load_template_catalogue

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tender.autoscale import UtilizationSampler
    from tender.launcher import ExecutionBackend

__all__ = ["DispatchComponents", "build_dispatch_components"]


@dc.dataclass(frozen=True, slots=True)
class DispatchComponents:
    """Every long-lived collaborator of a running dispatcher."""

    ledger: DispatchLedger
    dispatcher: Dispatcher
    reclaimer: CapacityReclaimerWatcher
    advisor: AutoscaleAdvisor
    ceiling: ConcurrencyCeiling
    limiter: CapacityLimiter
    backend: ExecutionBackend


def build_dispatch_components(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    backend: ExecutionBackend | None = None,
    sampler: UtilizationSampler | None = None,
    dispatcher_config: DispatcherConfig | None = None,
    autoscale_config: AutoscaleConfig | None = None,
) -> DispatchComponents:
    """Wire the gate, ledger, launcher, reclaimer and advisor together.

    Configuration not passed explicitly is read from the environment; see
    :meth:`DispatcherConfig.from_env`, :meth:`AutoscaleConfig.from_env` and
    :func:`create_execution_backend`.

    Raises
    ------
    PolicyValidationError
        If ``TENDER_POLICY_PATH`` names an invalid policy.
    TemplateValidationError
        If ``TENDER_TEMPLATES_PATH`` names an invalid catalogue.
    ExecutionBackendConfigError
        If no backend is passed and the environment does not select one.

    """
    config = dispatcher_config or DispatcherConfig.from_env()
    scaling = autoscale_config or AutoscaleConfig.from_env()

    policy = (
        load_account_policy(config.policy_path)
        if config.policy_path is not None
        else AccountPolicy()
    )
    catalogue = (
        load_template_catalogue(config.templates_path)
        if config.templates_path is not None
        else TemplateCatalogue()
    )

    ledger = DispatchLedger(session_factory, max_retries=config.max_retries)
    ceiling = ConcurrencyCeiling(
        scaling.initial_ceiling, minimum=scaling.minimum, maximum=scaling.maximum
    )
    limiter = CapacityLimiter(ceiling)
    execution_backend = backend or create_execution_backend()
    launcher = TaskLauncher(
        ledger,
        execution_backend,
        limiter,
        launch_timeout_s=config.launch_timeout_s,
    )
    reclaimer = CapacityReclaimerWatcher(ledger, launcher)
    dispatcher = Dispatcher(
        ledger,
        PolicyGate(policy),
        TemplateRouter(catalogue),
        launcher,
        config=config,
        reclaimer=reclaimer,
    )
    return DispatchComponents(
        ledger=ledger,
        dispatcher=dispatcher,
        reclaimer=reclaimer,
        advisor=AutoscaleAdvisor(scaling, ceiling, ledger, sampler=sampler),
        ceiling=ceiling,
        limiter=limiter,
        backend=execution_backend,
    )
