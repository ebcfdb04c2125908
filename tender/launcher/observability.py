"""Structured log events for task launches."""

from __future__ import annotations

import enum

from tender.logging import get_logger, log_error, log_info, log_warning

logger = get_logger(__name__)


class LaunchEventType(enum.StrEnum):
    """Launcher event identifiers."""

    TASK_LAUNCHED = "dispatch.task.launched"
    TASK_REJECTED = "dispatch.task.rejected"
    LAUNCH_FAILED = "dispatch.task.launch_failed"
    CAPACITY_EXHAUSTED = "dispatch.capacity.exhausted"
    SLOT_RELEASED = "dispatch.capacity.released"


class LaunchEventLogger:
    """Emit launcher events via femtologging."""

    def log_launched(
        self,
        event_id: str,
        task_handle: str,
        template_name: str,
        attempt_count: int,
    ) -> None:
        """Log a task the backend acknowledged."""
        log_info(
            logger,
            "[%s] event_id=%s task_handle=%s template=%s attempt_count=%d",
            LaunchEventType.TASK_LAUNCHED,
            event_id,
            task_handle,
            template_name,
            attempt_count,
        )

    def log_rejected(self, event_id: str, reason: str, detail: str | None) -> None:
        """Log a backend refusal."""
        log_error(
            logger,
            "[%s] event_id=%s reason=%s detail=%s",
            LaunchEventType.TASK_REJECTED,
            event_id,
            reason,
            detail,
        )

    def log_launch_failed(
        self, event_id: str, reason: str, exc: BaseException
    ) -> None:
        """Log a claimed launch that broke before the task was recorded."""
        log_error(
            logger,
            "[%s] event_id=%s reason=%s error=%s",
            LaunchEventType.LAUNCH_FAILED,
            event_id,
            reason,
            type(exc).__name__,
            exc_info=exc,
        )

    def log_capacity_exhausted(
        self, event_id: str, ceiling: int, in_flight: int
    ) -> None:
        """Log a launch deferred for lack of capacity."""
        log_warning(
            logger,
            "[%s] event_id=%s ceiling=%d in_flight=%d",
            LaunchEventType.CAPACITY_EXHAUSTED,
            event_id,
            ceiling,
            in_flight,
        )

    def log_released(self, event_id: str, in_flight: int) -> None:
        """Log a slot returned to the limiter."""
        log_info(
            logger,
            "[%s] event_id=%s in_flight=%d",
            LaunchEventType.SLOT_RELEASED,
            event_id,
            in_flight,
        )
