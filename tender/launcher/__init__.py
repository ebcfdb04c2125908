"""Task launching against an execution backend within a concurrency ceiling."""

from __future__ import annotations

from .backend import (
    ExecutionBackend,
    LaunchAcknowledgement,
    LaunchRejection,
    LaunchRequest,
    TaskHandle,
)
from .ceiling import CapacityLimiter, ConcurrencyCeiling
from .config import HttpBackendConfig
from .errors import (
    CapacityExceededError,
    ExecutionBackendConfigError,
    LauncherError,
    LaunchFailedError,
    LaunchRejectedError,
)
from .factory import create_execution_backend
from .http_backend import HttpExecutionBackend
from .observability import LaunchEventLogger, LaunchEventType
from .service import LAUNCH_ERROR, TaskLauncher, build_launch_request
from .stub import StubExecutionBackend

__all__ = [
    "LAUNCH_ERROR",
    "CapacityExceededError",
    "CapacityLimiter",
    "ConcurrencyCeiling",
    "ExecutionBackend",
    "ExecutionBackendConfigError",
    "HttpBackendConfig",
    "HttpExecutionBackend",
    "LaunchAcknowledgement",
    "LaunchEventLogger",
    "LaunchEventType",
    "LaunchFailedError",
    "LaunchRejectedError",
    "LaunchRejection",
    "LaunchRequest",
    "LauncherError",
    "StubExecutionBackend",
    "TaskHandle",
    "TaskLauncher",
    "build_launch_request",
    "create_execution_backend",
]
