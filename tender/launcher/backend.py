"""Execution backend protocol and launch payloads."""

from __future__ import annotations

import typing as typ

import msgspec

type TaskHandle = str


class LaunchRequest(msgspec.Struct, kw_only=True, frozen=True):
    """Everything the backend needs to start one task.

    Attributes
    ----------
    template_reference
        Backend-specific reference to the task definition.
    environment_bindings
        Environment variables handed to the task, including the event
        coordinates.
    identity_to_assume
        Execution identity the task runs as.
    cpu_units
        CPU reservation.
    memory_mib
        Memory reservation in MiB.

    """

    template_reference: str
    environment_bindings: dict[str, str] = msgspec.field(default_factory=dict)
    identity_to_assume: str
    cpu_units: int
    memory_mib: int


class LaunchAcknowledgement(msgspec.Struct, kw_only=True):
    """Backend reply to a successful launch."""

    task_handle: str


class LaunchRejection(msgspec.Struct, kw_only=True):
    """Structured backend refusal body."""

    reason: str
    detail: str | None = None


@typ.runtime_checkable
class ExecutionBackend(typ.Protocol):
    """Something that can start a task and return its handle.

    Implementations raise :class:`~tender.launcher.errors.LaunchRejectedError`
    for any refusal or transport failure; no other exception type is part of
    the contract.

    Examples
    --------
    >>> from tender.launcher import ExecutionBackend, StubExecutionBackend
    >>> isinstance(StubExecutionBackend(), ExecutionBackend)
    True

    """

    async def run_task(self, request: LaunchRequest) -> TaskHandle:
        """Start a task for ``request`` and return its handle."""
        ...

    async def aclose(self) -> None:
        """Release any resources held by the backend."""
        ...
