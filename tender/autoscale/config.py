"""Configuration for the autoscale advisor.

>>> config = AutoscaleConfig(minimum=1, maximum=8)
>>> config.initial_ceiling
1

"""

from __future__ import annotations

import dataclasses as dc

from tender.common.env import env_float, env_int

_MAX_PERCENT = 100.0


@dc.dataclass(frozen=True, slots=True)
class AutoscaleConfig:
    """Bounds and targets for the concurrency ceiling.

    Attributes
    ----------
    minimum
        Lowest ceiling; ``0`` lets the dispatcher go fully idle.
    maximum
        Highest ceiling.
    initial
        Ceiling before the first tick; defaults to ``minimum``.
    target_cpu_pct
        CPU utilisation the advisor steers towards.
    target_mem_pct
        Memory utilisation the advisor steers towards.
    step
        Change applied per tick when scaling up or down.
    interval_s
        Seconds between ticks of :meth:`AutoscaleAdvisor.run`.

    """

    minimum: int = 0
    maximum: int = 10
    initial: int | None = None
    target_cpu_pct: float = 70.0
    target_mem_pct: float = 80.0
    step: int = 1
    interval_s: float = 30.0

    def __post_init__(self) -> None:
        """Reject inconsistent bounds."""
        if self.minimum < 0:
            msg = f"minimum must be >= 0, got: {self.minimum}"
            raise ValueError(msg)
        if self.maximum < self.minimum:
            msg = f"maximum {self.maximum} is below minimum {self.minimum}"
            raise ValueError(msg)
        if self.step < 1:
            msg = f"step must be >= 1, got: {self.step}"
            raise ValueError(msg)
        for name in ("target_cpu_pct", "target_mem_pct"):
            value = getattr(self, name)
            if not 0 < value <= _MAX_PERCENT:
                msg = f"{name} must be in (0, 100], got: {value:g}"
                raise ValueError(msg)
        if self.interval_s <= 0:
            msg = f"interval_s must be positive, got: {self.interval_s:g}"
            raise ValueError(msg)

    @property
    def initial_ceiling(self) -> int:
        """Return ``initial`` clamped to the bounds, or ``minimum``."""
        if self.initial is None:
            return self.minimum
        return max(self.minimum, min(self.maximum, self.initial))

    @classmethod
    def from_env(cls) -> AutoscaleConfig:
        """Create configuration from ``TENDER_CEILING_*`` and target variables.

        Raises
        ------
        ValueError
            If a variable is malformed or the bounds are inconsistent.

        """
        minimum = env_int("TENDER_CEILING_MIN", 0)
        maximum = env_int("TENDER_CEILING_MAX", 10)
        initial = env_int("TENDER_CEILING_INITIAL", minimum)
        return cls(
            minimum=minimum,
            maximum=maximum,
            initial=initial,
            target_cpu_pct=env_float("TENDER_TARGET_CPU_PCT", 70.0),
            target_mem_pct=env_float("TENDER_TARGET_MEM_PCT", 80.0),
            step=env_int("TENDER_CEILING_STEP", 1, minimum=1),
            interval_s=env_float("TENDER_AUTOSCALE_INTERVAL_S", 30.0),
        )
