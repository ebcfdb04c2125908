"""Dispatcher service composing gate, ledger, launcher and reclaimer."""

from __future__ import annotations

from .admission import AdmissionService, IngestOutcome, IngestResult
from .config import DispatcherConfig
from .observability import (
    DispatchEventLogger,
    DispatchEventType,
    ErrorCategory,
    classify_error,
)
from .service import (
    EXECUTION_TIMEOUT,
    NO_MATCHING_TEMPLATE,
    TASK_FAILED,
    Dispatcher,
    PumpReport,
)

__all__ = [
    "EXECUTION_TIMEOUT",
    "NO_MATCHING_TEMPLATE",
    "TASK_FAILED",
    "AdmissionService",
    "DispatchEventLogger",
    "DispatchEventType",
    "Dispatcher",
    "DispatcherConfig",
    "ErrorCategory",
    "IngestOutcome",
    "IngestResult",
    "PumpReport",
    "classify_error",
]
