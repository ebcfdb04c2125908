"""Structured log events for ledger state changes."""

from __future__ import annotations

import enum
import typing as typ

from tender.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from .errors import InvalidTransitionError
    from .states import DispatchState

logger = get_logger(__name__)


class LedgerEventType(enum.StrEnum):
    """Ledger lifecycle event identifiers."""

    TRANSITION = "dispatch.record.transition"
    REQUEUED = "dispatch.record.requeued"
    INVALID_TRANSITION = "dispatch.record.invalid_transition"
    RETRY_EXHAUSTED = "dispatch.retry.exhausted"


class LedgerEventLogger:
    """Emit ledger events; rejected changes warn, retry exhaustion is an error."""

    def log_transition(
        self,
        event_id: str,
        from_state: DispatchState,
        to_state: DispatchState,
    ) -> None:
        """Log an applied state change."""
        log_info(
            logger,
            "[%s] event_id=%s from=%s to=%s",
            LedgerEventType.TRANSITION,
            event_id,
            from_state.name,
            to_state.name,
        )

    def log_requeued(self, event_id: str, attempt_count: int, reason: str) -> None:
        """Log a record returned to Pending for another attempt."""
        log_info(
            logger,
            "[%s] event_id=%s attempt_count=%d reason=%s",
            LedgerEventType.REQUEUED,
            event_id,
            attempt_count,
            reason,
        )

    def log_invalid_transition(self, exc: InvalidTransitionError) -> None:
        """Log a rejected state change; these indicate a bug or a lost race."""
        log_warning(
            logger,
            "[%s] event_id=%s current=%s requested_from=%s requested_to=%s",
            LedgerEventType.INVALID_TRANSITION,
            exc.event_id,
            exc.current.name if exc.current is not None else None,
            exc.requested_from.name,
            exc.requested_to.name,
        )

    def log_retry_exhausted(
        self, event_id: str, attempt_count: int, max_retries: int, reason: str
    ) -> None:
        """Log a record that failed permanently."""
        log_error(
            logger,
            "[%s] event_id=%s attempt_count=%d max_retries=%d reason=%s",
            LedgerEventType.RETRY_EXHAUSTED,
            event_id,
            attempt_count,
            max_retries,
            reason,
        )
