"""Configuration for the dispatcher service.

>>> import os
>>> os.environ["TENDER_MAX_RETRIES"] = "5"
>>> DispatcherConfig.from_env().max_retries
5

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
from pathlib import Path  # noqa: TC003 - dataclass field type

from tender.common.env import env_float, env_int, env_path


@dc.dataclass(frozen=True, slots=True)
class DispatcherConfig:
    """Settings for :class:`~tender.dispatch.service.Dispatcher`.

    Attributes
    ----------
    max_retries
        Re-queues allowed per record after failures and preemptions.
    execution_timeout_s
        Seconds a task may stay Running before it is failed.
    launch_timeout_s
        Seconds a launch waits for a free slot; ``0`` fails fast.
    poll_interval_s
        Seconds between pump passes of :meth:`Dispatcher.run`.
    pump_batch_size
        Pending records examined per pump pass.
    policy_path
        Account policy YAML document.
    templates_path
        Template catalogue YAML document.

    """

    max_retries: int = 3
    execution_timeout_s: float = 3600.0
    launch_timeout_s: float = 0.0
    poll_interval_s: float = 5.0
    pump_batch_size: int = 100
    policy_path: Path | None = None
    templates_path: Path | None = None

    @property
    def execution_timeout(self) -> dt.timedelta:
        """Return ``execution_timeout_s`` as a timedelta."""
        return dt.timedelta(seconds=self.execution_timeout_s)

    @classmethod
    def from_env(cls) -> DispatcherConfig:
        """Create configuration from ``TENDER_*`` variables.

        Raises
        ------
        ValueError
            If a numeric variable is malformed or out of range.

        """
        return cls(
            max_retries=env_int("TENDER_MAX_RETRIES", 3),
            execution_timeout_s=env_float(
                "TENDER_EXECUTION_TIMEOUT_S", 3600.0, minimum=1.0
            ),
            launch_timeout_s=env_float("TENDER_LAUNCH_TIMEOUT_S", 0.0),
            poll_interval_s=env_float("TENDER_POLL_INTERVAL_S", 5.0, minimum=0.1),
            pump_batch_size=env_int("TENDER_PUMP_BATCH_SIZE", 100, minimum=1),
            policy_path=env_path("TENDER_POLICY_PATH"),
            templates_path=env_path("TENDER_TEMPLATES_PATH"),
        )
