"""Errors raised while launching tasks."""

from __future__ import annotations


class LauncherError(Exception):
    """Base class for launcher errors."""


class CapacityExceededError(LauncherError):
    """Raised when no launch slot frees up before the timeout.

    Transient: callers may retry after a backoff.
    """

    def __init__(self, ceiling: int, in_flight: int, timeout_s: float) -> None:
        """Record the capacity snapshot that caused the refusal."""
        super().__init__(
            f"capacity exhausted: in_flight={in_flight} ceiling={ceiling} "
            f"timeout_s={timeout_s:g}"
        )
        self.ceiling = ceiling
        self.in_flight = in_flight
        self.timeout_s = timeout_s


class LaunchRejectedError(LauncherError):
    """Raised when the execution backend refuses or fails a launch.

    Attributes
    ----------
    reason
        Short machine-readable cause, e.g. ``invalid_template``.
    detail
        Optional free-form text from the backend.
    status_code
        HTTP status when the rejection came over HTTP.

    """

    def __init__(
        self,
        reason: str,
        *,
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Store the structured rejection."""
        message = f"launch rejected: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.reason = reason
        self.detail = detail
        self.status_code = status_code

    @classmethod
    def timeout(cls) -> LaunchRejectedError:
        """Return a rejection for a backend call that timed out."""
        return cls("backend_timeout")

    @classmethod
    def network_error(cls, detail: str) -> LaunchRejectedError:
        """Return a rejection for a transport failure."""
        return cls("backend_unreachable", detail=detail)

    @classmethod
    def http_error(
        cls, status_code: int, detail: str | None = None
    ) -> LaunchRejectedError:
        """Return a rejection for an HTTP error without a structured body."""
        return cls(f"http_{status_code}", detail=detail, status_code=status_code)

    @classmethod
    def invalid_response(cls, detail: str) -> LaunchRejectedError:
        """Return a rejection for an acknowledgement we could not parse."""
        return cls("invalid_backend_response", detail=detail)


class LaunchFailedError(LauncherError):
    """Raised when a claimed launch fails for a reason other than a rejection.

    The record has already been failed with ``reason`` and re-queued within
    its retry budget, and its capacity slot returned. The original error is
    chained as ``__cause__``.
    """

    def __init__(self, event_id: str, reason: str) -> None:
        """Record which launch failed and the reason stored on the record."""
        super().__init__(f"launch failed for {event_id}: {reason}")
        self.event_id = event_id
        self.reason = reason


class ExecutionBackendConfigError(LauncherError, ValueError):
    """Raised when execution backend configuration is missing or invalid."""

    @classmethod
    def missing_backend(cls) -> ExecutionBackendConfigError:
        """Return an error for an unset ``TENDER_EXECUTION_BACKEND``."""
        return cls("TENDER_EXECUTION_BACKEND is required (stub or http)")

    @classmethod
    def invalid_backend(cls, value: str) -> ExecutionBackendConfigError:
        """Return an error for an unrecognised backend name."""
        return cls(f"unknown execution backend {value!r}; expected stub or http")

    @classmethod
    def missing_endpoint(cls) -> ExecutionBackendConfigError:
        """Return an error for an unset ``TENDER_EXECUTION_ENDPOINT``."""
        return cls("TENDER_EXECUTION_ENDPOINT is required for the http backend")

    @classmethod
    def invalid_timeout(cls, value: str) -> ExecutionBackendConfigError:
        """Return an error for a non-positive or non-numeric timeout."""
        return cls(
            "TENDER_EXECUTION_TIMEOUT_HTTP_S must be a positive number, "
            f"got {value!r}"
        )
