"""Every exception a Tender caller may need to catch, in one place.

Each failure keeps its home in the package that raises it; this module
only re-exports them together with :func:`classify_error`, which maps an
exception to the alert category operators route on.

    >>> from tender.errors import CapacityExceededError, classify_error
    >>> classify_error(CapacityExceededError(ceiling=1, in_flight=1, timeout_s=0))
    <ErrorCategory.CAPACITY: 'capacity'>

"""

from __future__ import annotations

from tender.dispatch.observability import ErrorCategory, classify_error
from tender.events.errors import MalformedEventError
from tender.gate.errors import (
    AuthorizationDeniedError,
    IdentityVerificationError,
    PolicyValidationError,
)
from tender.launcher.errors import (
    CapacityExceededError,
    ExecutionBackendConfigError,
    LauncherError,
    LaunchFailedError,
    LaunchRejectedError,
)
from tender.ledger.errors import (
    DispatchRecordNotFoundError,
    InvalidTransitionError,
    LedgerError,
    LedgerPersistError,
    NaiveDatetimeError,
)
from tender.templates.router import TemplateValidationError

__all__ = [
    "AuthorizationDeniedError",
    "CapacityExceededError",
    "DispatchRecordNotFoundError",
    "ErrorCategory",
    "ExecutionBackendConfigError",
    "IdentityVerificationError",
    "InvalidTransitionError",
    "LaunchFailedError",
    "LaunchRejectedError",
    "LauncherError",
    "LedgerError",
    "LedgerPersistError",
    "MalformedEventError",
    "NaiveDatetimeError",
    "PolicyValidationError",
    "TemplateValidationError",
    "classify_error",
]
