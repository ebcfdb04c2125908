"""Structured dispatcher events and error categorisation for alerting.

Each event is a single femtologging line in ``[event.type] key=value``
form: INFO for normal flow, WARNING for dropped input, ERROR for denials
and events that need an operator.
"""

from __future__ import annotations

import enum
import typing as typ

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from tender.events.errors import MalformedEventError
from tender.gate.errors import (
    AuthorizationDeniedError,
    IdentityVerificationError,
    PolicyValidationError,
)
from tender.launcher.errors import (
    CapacityExceededError,
    ExecutionBackendConfigError,
    LaunchFailedError,
    LaunchRejectedError,
)
from tender.ledger.errors import DispatchRecordNotFoundError, InvalidTransitionError
from tender.logging import get_logger, log_debug, log_error, log_info, log_warning
from tender.templates.router import TemplateValidationError

if typ.TYPE_CHECKING:
    from tender.gate import AuthorizationDecision
    from tender.ledger import DispatchRecord

logger = get_logger(__name__)


class DispatchEventType(enum.StrEnum):
    """Dispatcher event identifiers."""

    EVENT_ACCEPTED = "dispatch.event.accepted"
    EVENT_DUPLICATE = "dispatch.event.duplicate"
    EVENT_DENIED = "dispatch.event.denied"
    EVENT_MALFORMED = "dispatch.event.malformed"
    TASK_UNROUTABLE = "dispatch.task.unroutable"
    TASK_COMPLETED = "dispatch.task.completed"
    TASK_EXPIRED = "dispatch.task.expired"
    COMPLETION_UNKNOWN = "dispatch.completion.unknown_handle"
    PUMP_COMPLETED = "dispatch.pump.completed"
    PUMP_CLAIM_LOST = "dispatch.pump.claim_lost"
    LOOP_FAILED = "dispatch.loop.failed"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    MALFORMED_INPUT = "malformed_input"
    AUTHORIZATION = "authorization"
    INVALID_TRANSITION = "invalid_transition"
    CAPACITY = "capacity"
    LAUNCH_REJECTED = "launch_rejected"
    LAUNCH_FAILED = "launch_failed"
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (MalformedEventError, ErrorCategory.MALFORMED_INPUT),
    (AuthorizationDeniedError, ErrorCategory.AUTHORIZATION),
    (IdentityVerificationError, ErrorCategory.AUTHORIZATION),
    (InvalidTransitionError, ErrorCategory.INVALID_TRANSITION),
    (CapacityExceededError, ErrorCategory.CAPACITY),
    (LaunchRejectedError, ErrorCategory.LAUNCH_REJECTED),
    (LaunchFailedError, ErrorCategory.LAUNCH_FAILED),
    (DispatchRecordNotFoundError, ErrorCategory.NOT_FOUND),
    (PolicyValidationError, ErrorCategory.CONFIGURATION),
    (TemplateValidationError, ErrorCategory.CONFIGURATION),
    (ExecutionBackendConfigError, ErrorCategory.CONFIGURATION),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def classify_error(exc: BaseException) -> ErrorCategory:
    """Categorise an exception for alert routing.

    Returns
    -------
    ErrorCategory
        First matching category, or ``UNKNOWN``.

    """
    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category
    return ErrorCategory.UNKNOWN


class DispatchEventLogger:
    """Emit dispatcher lifecycle events."""

    def log_accepted(self, record: DispatchRecord) -> None:
        """Log an event admitted into the ledger."""
        log_info(
            logger,
            "[%s] event_id=%s",
            DispatchEventType.EVENT_ACCEPTED,
            record.event_id,
        )

    def log_duplicate(self, record: DispatchRecord) -> None:
        """Log a replayed event; benign."""
        log_info(
            logger,
            "[%s] event_id=%s state=%s",
            DispatchEventType.EVENT_DUPLICATE,
            record.event_id,
            record.dispatch_state.name,
        )

    def log_denied(
        self,
        event_id: str,
        source_account: str,
        decision: AuthorizationDecision,
    ) -> None:
        """Log an event the gate refused."""
        log_error(
            logger,
            "[%s] event_id=%s source_account=%s reason=%s category=%s",
            DispatchEventType.EVENT_DENIED,
            event_id,
            source_account,
            decision.reason,
            ErrorCategory.AUTHORIZATION,
        )

    def log_malformed(self, exc: MalformedEventError) -> None:
        """Log input dropped before it could be identified."""
        log_warning(
            logger,
            "[%s] field=%s error=%s category=%s",
            DispatchEventType.EVENT_MALFORMED,
            exc.field,
            exc,
            ErrorCategory.MALFORMED_INPUT,
        )

    def log_unroutable(self, event_id: str, resource_id: str, kind: str) -> None:
        """Log a record no template can serve."""
        log_error(
            logger,
            "[%s] event_id=%s resource_id=%s event_kind=%s",
            DispatchEventType.TASK_UNROUTABLE,
            event_id,
            resource_id,
            kind,
        )

    def log_completed(self, record: DispatchRecord, task_handle: str) -> None:
        """Log a completion signal applied to a record."""
        log_info(
            logger,
            "[%s] event_id=%s task_handle=%s state=%s attempt_count=%d",
            DispatchEventType.TASK_COMPLETED,
            record.event_id,
            task_handle,
            record.dispatch_state.name,
            record.attempt_count,
        )

    def log_completion_unknown(self, task_handle: str) -> None:
        """Log a completion for a handle no record holds."""
        log_warning(
            logger,
            "[%s] task_handle=%s",
            DispatchEventType.COMPLETION_UNKNOWN,
            task_handle,
        )

    def log_claim_lost(self, event_id: str, exc: InvalidTransitionError) -> None:
        """Log a Pending record another claimant moved before this pump did."""
        log_debug(
            logger,
            "[%s] event_id=%s current=%s",
            DispatchEventType.PUMP_CLAIM_LOST,
            event_id,
            exc.current.name if exc.current is not None else None,
        )

    def log_expired(self, record: DispatchRecord, timeout_s: float) -> None:
        """Log a task failed for running past the execution timeout."""
        log_warning(
            logger,
            "[%s] event_id=%s timeout_s=%.0f state=%s",
            DispatchEventType.TASK_EXPIRED,
            record.event_id,
            timeout_s,
            record.dispatch_state.name,
        )

    def log_pump(self, launched: int, deferred: int, failed: int) -> None:
        """Log the result of one pump pass that did any work."""
        log_info(
            logger,
            "[%s] launched=%d deferred=%d failed=%d",
            DispatchEventType.PUMP_COMPLETED,
            launched,
            deferred,
            failed,
        )
