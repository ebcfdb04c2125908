"""HTTP resources for event intake, backend signals and record inspection."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon
import msgspec

from tender.api.errors import InvalidInputError
from tender.autoscale import UtilizationSample
from tender.dispatch import IngestOutcome
from tender.reclaimer import (
    OPERATOR_CANCEL_REASON,
    CompletionSignal,
    InterruptionSignal,
)

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from tender.autoscale import AutoscaleAdvisor
    from tender.dispatch import Dispatcher
    from tender.launcher import CapacityLimiter
    from tender.ledger import DispatchRecord
    from tender.reclaimer import CapacityReclaimerWatcher

__all__ = [
    "CancelResource",
    "CeilingResource",
    "CompletionSignalResource",
    "DispatchRecordResource",
    "DispatchResourceDependencies",
    "EventsResource",
    "InterruptionSignalResource",
    "UtilizationSignalResource",
    "serialize_record",
]


@dc.dataclass(frozen=True, slots=True)
class DispatchResourceDependencies:
    """Collaborators shared by the dispatch resources."""

    dispatcher: Dispatcher
    reclaimer: CapacityReclaimerWatcher
    advisor: AutoscaleAdvisor
    limiter: CapacityLimiter


class CancelRequest(msgspec.Struct, kw_only=True):
    """Optional body of a cancel request."""

    reason: str = OPERATOR_CANCEL_REASON


def serialize_record(record: DispatchRecord) -> dict[str, typ.Any]:
    """Return a JSON-compatible view of ``record`` and its event."""
    event = record.event
    return {
        "event_id": record.event_id,
        "state": record.dispatch_state.name.lower(),
        "attempt_count": record.attempt_count,
        "last_attempt_at": (
            record.last_attempt_at.isoformat() if record.last_attempt_at else None
        ),
        "task_handle": record.task_handle,
        "template": record.template_name,
        "failure_reason": record.failure_reason,
        "source_account": event.source_account,
        "resource_id": event.resource_id,
        "event_kind": event.event_kind,
    }


async def _read_body(req: Request) -> bytes:
    body = await req.stream.read()
    if not body:
        raise InvalidInputError("request body is empty")
    return body


async def _decode[T](req: Request, target: type[T]) -> T:
    body = await _read_body(req)
    try:
        return msgspec.json.decode(body, type=target)
    except msgspec.DecodeError as exc:
        raise InvalidInputError(str(exc)) from exc


class EventsResource:
    """``POST /events`` admits a raw event or storage notification.

    Responds 202 for a newly admitted event and 200 for a replay; denied
    and malformed events surface through the error handlers.
    """

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the dispatcher."""
        self._dispatcher = dependencies.dispatcher

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /events."""
        body = await _read_body(req)
        result = await self._dispatcher.ingest(body)
        result.raise_for_outcome()

        record = typ.cast("DispatchRecord", result.record)
        resp.media = {"outcome": str(result.outcome), **serialize_record(record)}
        resp.status = (
            falcon.HTTP_202
            if result.outcome is IngestOutcome.ACCEPTED
            else falcon.HTTP_200
        )


class InterruptionSignalResource:
    """``POST /signals/interruptions`` queues a preemption notice."""

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the reclaimer watcher."""
        self._reclaimer = dependencies.reclaimer

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /signals/interruptions."""
        signal = await _decode(req, InterruptionSignal)
        await self._reclaimer.submit(signal)
        resp.media = {"queued": True, "task_handle": signal.task_handle}
        resp.status = falcon.HTTP_202


class CompletionSignalResource:
    """``POST /signals/completions`` records a task finishing."""

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the dispatcher."""
        self._dispatcher = dependencies.dispatcher

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /signals/completions; unknown handles answer 202."""
        signal = await _decode(req, CompletionSignal)
        record = await self._dispatcher.complete(signal)
        if record is None:
            resp.media = {"applied": False, "task_handle": signal.task_handle}
            resp.status = falcon.HTTP_202
            return
        resp.media = {"applied": True, **serialize_record(record)}
        resp.status = falcon.HTTP_200


class UtilizationSignalResource:
    """``POST /signals/utilization`` pushes a sample to the advisor."""

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the autoscale advisor."""
        self._advisor = dependencies.advisor

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /signals/utilization."""
        sample = await _decode(req, UtilizationSample)
        self._advisor.submit(sample)
        resp.media = {"accepted": True}
        resp.status = falcon.HTTP_202


class DispatchRecordResource:
    """``GET /dispatches/{event_id}`` returns one record."""

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the ledger."""
        self._ledger = dependencies.dispatcher.ledger

    async def on_get(self, _req: Request, resp: Response, *, event_id: str) -> None:
        """Handle GET /dispatches/{event_id}."""
        record = await self._ledger.get(event_id)
        resp.media = serialize_record(record)
        resp.status = falcon.HTTP_200


class CancelResource:
    """``POST /dispatches/{event_id}/cancel`` aborts a Running record."""

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the reclaimer watcher."""
        self._reclaimer = dependencies.reclaimer

    async def on_post(self, req: Request, resp: Response, *, event_id: str) -> None:
        """Handle POST /dispatches/{event_id}/cancel."""
        body = await req.stream.read()
        reason = OPERATOR_CANCEL_REASON
        if body:
            try:
                reason = msgspec.json.decode(body, type=CancelRequest).reason
            except msgspec.DecodeError as exc:
                raise InvalidInputError(str(exc)) from exc
        record = await self._reclaimer.cancel(event_id, reason)
        resp.media = serialize_record(record)
        resp.status = falcon.HTTP_200


class CeilingResource:
    """``GET /ceiling`` reports the concurrency ceiling and slot usage."""

    def __init__(self, dependencies: DispatchResourceDependencies) -> None:
        """Bind the limiter and advisor."""
        self._limiter = dependencies.limiter
        self._advisor = dependencies.advisor

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ceiling."""
        ceiling = self._limiter.ceiling
        sample = self._advisor.latest_sample
        resp.media = {
            "ceiling": ceiling.value,
            "minimum": ceiling.minimum,
            "maximum": ceiling.maximum,
            "in_flight": self._limiter.in_flight,
            "latest_sample": msgspec.to_builtins(sample) if sample else None,
        }
        resp.status = falcon.HTTP_200
