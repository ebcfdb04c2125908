"""Signals pushed by the execution backend."""

from __future__ import annotations

import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime

import msgspec

DEFAULT_INTERRUPTION_REASON = "capacity_reclaimed"


class InterruptionSignal(msgspec.Struct, kw_only=True, frozen=True):
    """Notice that the backend reclaimed the capacity a task ran on.

    Attributes
    ----------
    task_handle : str
        Handle returned when the task was launched.
    reason : str
        Backend-supplied cause.
    noticed_at : datetime.datetime, optional
        When the backend raised the interruption.

    """

    task_handle: str
    reason: str = DEFAULT_INTERRUPTION_REASON
    noticed_at: dt.datetime | None = None


class CompletionSignal(msgspec.Struct, kw_only=True, frozen=True):
    """Notice that a task finished on its own."""

    task_handle: str
    succeeded: bool
    reason: str | None = None
