"""Re-dispatch of work interrupted by reclaimed capacity."""

from __future__ import annotations

from .buffer import BackendSignal, EarlySignalBuffer
from .models import DEFAULT_INTERRUPTION_REASON, CompletionSignal, InterruptionSignal
from .watcher import (
    OPERATOR_CANCEL_REASON,
    CapacityReclaimerWatcher,
    ReclaimEventType,
    ReclaimOutcome,
)

__all__ = [
    "DEFAULT_INTERRUPTION_REASON",
    "OPERATOR_CANCEL_REASON",
    "BackendSignal",
    "CapacityReclaimerWatcher",
    "CompletionSignal",
    "EarlySignalBuffer",
    "InterruptionSignal",
    "ReclaimEventType",
    "ReclaimOutcome",
]
