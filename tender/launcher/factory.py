"""Factory for execution backends selected through the environment."""

from __future__ import annotations

import os
import typing as typ

from tender.launcher.errors import ExecutionBackendConfigError
from tender.launcher.stub import StubExecutionBackend

if typ.TYPE_CHECKING:
    from tender.launcher.backend import ExecutionBackend

_VALID_BACKENDS = frozenset({"stub", "http"})


def create_execution_backend() -> ExecutionBackend:
    """Create the backend named by ``TENDER_EXECUTION_BACKEND``.

    ``stub`` returns an in-memory backend. ``http`` additionally reads
    ``TENDER_EXECUTION_ENDPOINT``, ``TENDER_EXECUTION_TOKEN`` and
    ``TENDER_EXECUTION_TIMEOUT_HTTP_S``.

    Raises
    ------
    ExecutionBackendConfigError
        If the backend is unset, unknown, or its settings are invalid.

    Examples
    --------
    >>> import os
    >>> os.environ["TENDER_EXECUTION_BACKEND"] = "stub"
    >>> isinstance(create_execution_backend(), StubExecutionBackend)
    True

    """
    raw_backend = os.environ.get("TENDER_EXECUTION_BACKEND")
    if raw_backend is None:
        raise ExecutionBackendConfigError.missing_backend()

    backend = raw_backend.strip().lower()
    if backend not in _VALID_BACKENDS:
        raise ExecutionBackendConfigError.invalid_backend(raw_backend)

    if backend == "stub":
        return StubExecutionBackend()

    from tender.launcher.config import HttpBackendConfig
    from tender.launcher.http_backend import HttpExecutionBackend

    return HttpExecutionBackend(HttpBackendConfig.from_env())
