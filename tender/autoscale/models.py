"""Inputs and outputs of the autoscale advisor."""

from __future__ import annotations

import dataclasses as dc
import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime
import enum
import typing as typ

import msgspec

Percent = typ.Annotated[float, msgspec.Meta(ge=0.0, le=100.0)]


class UtilizationSample(msgspec.Struct, kw_only=True, frozen=True):
    """Observed resource utilisation of the worker fleet, in percent."""

    cpu_pct: Percent
    mem_pct: Percent
    sampled_at: dt.datetime | None = None


IDLE_SAMPLE = UtilizationSample(cpu_pct=0.0, mem_pct=0.0)


class ScaleAction(enum.StrEnum):
    """Direction chosen for one tick."""

    INCREASE = "increase"
    DECREASE = "decrease"
    IDLE = "idle"
    HOLD = "hold"


@dc.dataclass(frozen=True, slots=True)
class CeilingDecision:
    """Recommendation produced by one advisor tick."""

    previous: int
    ceiling: int
    action: ScaleAction
    backlog: int
    in_flight: int
    sample: UtilizationSample

    @property
    def changed(self) -> bool:
        """Return True when the ceiling moved."""
        return self.previous != self.ceiling
