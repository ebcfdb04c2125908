"""Turn Pending dispatch records into running tasks."""

from __future__ import annotations

import typing as typ

from tender.launcher.backend import LaunchRequest, TaskHandle
from tender.launcher.errors import (
    CapacityExceededError,
    LaunchFailedError,
    LaunchRejectedError,
)
from tender.launcher.observability import LaunchEventLogger
from tender.ledger import DispatchState, InvalidTransitionError

LAUNCH_ERROR = "launch_error"

if typ.TYPE_CHECKING:
    from tender.launcher.backend import ExecutionBackend
    from tender.launcher.ceiling import CapacityLimiter
    from tender.ledger import DispatchLedger, DispatchRecord
    from tender.templates import TaskTemplate


def build_launch_request(
    record: DispatchRecord, template: TaskTemplate
) -> LaunchRequest:
    """Combine ``template`` with the event coordinates of ``record``.

    Event bindings win over template environment entries of the same name.
    """
    event = record.event
    bindings = dict(template.environment)
    bindings.update(
        {
            "TENDER_EVENT_ID": record.event_id,
            "TENDER_SOURCE_ACCOUNT": event.source_account,
            "TENDER_RESOURCE_ID": event.resource_id,
            "TENDER_EVENT_KIND": event.event_kind,
            "TENDER_SEQUENCE_TOKEN": event.sequence_token,
            "TENDER_ATTEMPT": str(record.attempt_count),
        }
    )
    return LaunchRequest(
        template_reference=template.template_reference,
        environment_bindings=bindings,
        identity_to_assume=template.identity_to_assume,
        cpu_units=template.cpu_units,
        memory_mib=template.memory_mib,
    )


class TaskLauncher:
    """Launch tasks for Pending records within the concurrency ceiling.

    A record is launched at most once per attempt: the ledger's
    compare-and-set on ``Pending -> Launching`` rejects a second claimant,
    and the slot it took is returned before the error propagates.

    Parameters
    ----------
    ledger
        Dispatch ledger owning record state.
    backend
        Execution backend that starts tasks.
    limiter
        Capacity limiter guarding the concurrency ceiling.
    launch_timeout_s
        Default seconds to wait for a free slot; ``0`` fails fast.

    """

    def __init__(
        self,
        ledger: DispatchLedger,
        backend: ExecutionBackend,
        limiter: CapacityLimiter,
        *,
        launch_timeout_s: float = 0,
        event_logger: LaunchEventLogger | None = None,
    ) -> None:
        """Wire collaborators."""
        self._ledger = ledger
        self._backend = backend
        self._limiter = limiter
        self._launch_timeout_s = launch_timeout_s
        self._events = event_logger or LaunchEventLogger()
        self._slots: set[str] = set()

    @property
    def limiter(self) -> CapacityLimiter:
        """Return the capacity limiter."""
        return self._limiter

    @property
    def held_slots(self) -> frozenset[str]:
        """Return event ids currently holding a launch slot."""
        return frozenset(self._slots)

    async def launch(
        self,
        record: DispatchRecord,
        template: TaskTemplate,
        *,
        timeout: float | None = None,
    ) -> TaskHandle:
        """Launch ``record`` with ``template`` and return the task handle.

        Raises
        ------
        InvalidTransitionError
            If the record is not Pending.
        CapacityExceededError
            If no slot frees up in time; the record stays Pending.
        LaunchRejectedError
            If the backend refuses; the record is failed and re-queued
            within its retry budget.
        LaunchFailedError
            If the backend call or recording the handle fails in any other
            way; the record is failed with ``launch_error`` and re-queued
            within its retry budget.

        """
        event_id = record.event_id
        if record.dispatch_state is not DispatchState.PENDING:
            raise InvalidTransitionError.state_mismatch(
                event_id,
                record.dispatch_state,
                DispatchState.PENDING,
                DispatchState.LAUNCHING,
            )

        if event_id in self._slots:
            raise InvalidTransitionError.state_mismatch(
                event_id,
                DispatchState.LAUNCHING,
                DispatchState.PENDING,
                DispatchState.LAUNCHING,
            )

        # Reserve before awaiting so a concurrent call for the same record
        # cannot take a second slot.
        self._slots.add(event_id)
        wait_s = self._launch_timeout_s if timeout is None else timeout
        try:
            await self._limiter.acquire(wait_s)
        except CapacityExceededError as exc:
            self._slots.discard(event_id)
            self._events.log_capacity_exhausted(event_id, exc.ceiling, exc.in_flight)
            raise
        except BaseException:
            self._slots.discard(event_id)
            raise

        try:
            claimed = await self._ledger.mark_launching(event_id)
        except BaseException:
            await self.release(event_id)
            raise

        request = build_launch_request(claimed, template)
        try:
            handle = await self._backend.run_task(request)
            running = await self._ledger.mark_running(event_id, handle, template.name)
        except LaunchRejectedError as exc:
            self._events.log_rejected(event_id, exc.reason, exc.detail)
            await self._abandon(event_id, exc.reason)
            raise
        except Exception as exc:
            self._events.log_launch_failed(event_id, LAUNCH_ERROR, exc)
            await self._abandon(event_id, LAUNCH_ERROR)
            raise LaunchFailedError(event_id, LAUNCH_ERROR) from exc
        except BaseException as exc:
            self._events.log_launch_failed(event_id, LAUNCH_ERROR, exc)
            await self._abandon(event_id, LAUNCH_ERROR)
            raise

        self._events.log_launched(
            event_id, handle, template.name, running.attempt_count
        )
        return handle

    async def _abandon(self, event_id: str, reason: str) -> None:
        """Fail a claimed record and return its slot whatever the ledger says."""
        try:
            await self._ledger.record_failure(event_id, reason)
        finally:
            await self.release(event_id)

    async def adopt(self, event_id: str) -> None:
        """Count an already in-flight record against the ceiling."""
        if event_id in self._slots:
            return
        await self._limiter.adopt()
        self._slots.add(event_id)

    async def release(self, event_id: str) -> bool:
        """Return the slot held for ``event_id``; repeat calls are no-ops."""
        if event_id not in self._slots:
            return False
        self._slots.discard(event_id)
        await self._limiter.release()
        self._events.log_released(event_id, self._limiter.in_flight)
        return True
