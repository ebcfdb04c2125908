"""Recompute the concurrency ceiling from utilisation and backlog."""

from __future__ import annotations

import asyncio
import enum
import typing as typ

from tender.autoscale.models import (
    IDLE_SAMPLE,
    CeilingDecision,
    ScaleAction,
    UtilizationSample,
)
from tender.logging import get_logger, log_debug, log_exception, log_info

if typ.TYPE_CHECKING:
    from tender.autoscale.config import AutoscaleConfig
    from tender.launcher import ConcurrencyCeiling
    from tender.ledger import DispatchLedger

logger = get_logger(__name__)


class AutoscaleEventType(enum.StrEnum):
    """Autoscale event identifiers."""

    CEILING_CHANGED = "autoscale.ceiling.changed"
    CEILING_HELD = "autoscale.ceiling.held"
    TICK_FAILED = "autoscale.tick.failed"


@typ.runtime_checkable
class UtilizationSampler(typ.Protocol):
    """Pull source of utilisation samples."""

    async def sample(self) -> UtilizationSample | None:
        """Return the latest sample, or None when nothing is known."""
        ...


class AutoscaleAdvisor:
    """Steer the concurrency ceiling towards the utilisation targets.

    Each tick applies the first matching rule:

    1. No backlog and nothing in flight: drop to ``minimum``.
    2. CPU or memory above target: decrease by ``step``.
    3. CPU and memory below target with a backlog: increase by ``step``.
    4. Otherwise hold.

    The result is always clamped to ``[minimum, maximum]``. Samples arrive
    either pushed through :meth:`submit` or pulled from a
    :class:`UtilizationSampler`; with neither, the fleet is treated as idle
    so backlog alone drives scaling.

    Parameters
    ----------
    config
        Bounds, targets and tick interval.
    ceiling
        Shared ceiling the launcher enforces.
    ledger
        Source of backlog and in-flight counts.
    sampler
        Optional pull source consulted when no sample was pushed.

    """

    def __init__(
        self,
        config: AutoscaleConfig,
        ceiling: ConcurrencyCeiling,
        ledger: DispatchLedger,
        *,
        sampler: UtilizationSampler | None = None,
    ) -> None:
        """Store collaborators."""
        self._config = config
        self._ceiling = ceiling
        self._ledger = ledger
        self._sampler = sampler
        self._latest: UtilizationSample | None = None

    @property
    def config(self) -> AutoscaleConfig:
        """Return the advisor configuration."""
        return self._config

    @property
    def latest_sample(self) -> UtilizationSample | None:
        """Return the most recently pushed sample."""
        return self._latest

    def submit(self, sample: UtilizationSample) -> None:
        """Record ``sample`` for the next tick."""
        self._latest = sample

    def recommend(
        self,
        current: int,
        sample: UtilizationSample,
        backlog: int,
        in_flight: int,
    ) -> tuple[int, ScaleAction]:
        """Return the next ceiling and the rule that produced it.

        Pure: reads only the configuration and the arguments.
        """
        cfg = self._config
        if backlog == 0 and in_flight == 0:
            target, action = cfg.minimum, ScaleAction.IDLE
        elif sample.cpu_pct > cfg.target_cpu_pct or sample.mem_pct > cfg.target_mem_pct:
            target, action = current - cfg.step, ScaleAction.DECREASE
        elif (
            sample.cpu_pct < cfg.target_cpu_pct
            and sample.mem_pct < cfg.target_mem_pct
            and backlog > 0
        ):
            target, action = current + cfg.step, ScaleAction.INCREASE
        else:
            target, action = current, ScaleAction.HOLD
        return max(cfg.minimum, min(cfg.maximum, target)), action

    async def tick(self, sample: UtilizationSample | None = None) -> CeilingDecision:
        """Recompute and store the ceiling once."""
        effective = sample or self._latest
        if effective is None and self._sampler is not None:
            effective = await self._sampler.sample()
        if effective is None:
            effective = IDLE_SAMPLE

        backlog = await self._ledger.count_pending()
        in_flight = await self._ledger.count_in_flight()
        previous = self._ceiling.value
        target, action = self.recommend(previous, effective, backlog, in_flight)
        applied = self._ceiling.set(target)

        decision = CeilingDecision(
            previous=previous,
            ceiling=applied,
            action=action,
            backlog=backlog,
            in_flight=in_flight,
            sample=effective,
        )
        self._log(decision)
        return decision

    async def run(self) -> None:
        """Tick every ``interval_s`` seconds forever."""
        while True:
            try:
                await self.tick()
            except Exception as exc:  # noqa: BLE001 - next tick retries
                log_exception(logger, f"[{AutoscaleEventType.TICK_FAILED}]", exc)
            await asyncio.sleep(self._config.interval_s)

    @staticmethod
    def _log(decision: CeilingDecision) -> None:
        emit = log_info if decision.changed else log_debug
        emit(
            logger,
            "[%s] previous=%d ceiling=%d action=%s backlog=%d in_flight=%d "
            "cpu_pct=%.1f mem_pct=%.1f",
            AutoscaleEventType.CEILING_CHANGED
            if decision.changed
            else AutoscaleEventType.CEILING_HELD,
            decision.previous,
            decision.ceiling,
            decision.action,
            decision.backlog,
            decision.in_flight,
            decision.sample.cpu_pct,
            decision.sample.mem_pct,
        )
