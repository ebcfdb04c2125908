"""Dispatcher: admit, launch and reconcile dispatch records."""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ

from tender.common.time import utcnow
from tender.dispatch.admission import AdmissionService, IngestResult
from tender.dispatch.config import DispatcherConfig
from tender.dispatch.observability import DispatchEventLogger, DispatchEventType
from tender.launcher import (
    CapacityExceededError,
    LaunchFailedError,
    LaunchRejectedError,
)
from tender.ledger import InvalidTransitionError
from tender.logging import get_logger, log_exception
from tender.reclaimer import CompletionSignal

if typ.TYPE_CHECKING:
    import datetime as dt

    from tender.events import EventNormalizer, RawEvent
    from tender.gate import AuthorizationPredicate
    from tender.launcher import TaskLauncher
    from tender.ledger import DispatchLedger, DispatchRecord
    from tender.reclaimer import CapacityReclaimerWatcher
    from tender.templates import TemplateRouter

logger = get_logger(__name__)

NO_MATCHING_TEMPLATE = "no_matching_template"
EXECUTION_TIMEOUT = "execution_timeout"
TASK_FAILED = "task_failed"


@dc.dataclass(frozen=True, slots=True)
class PumpReport:
    """Counts from one pump pass."""

    launched: int = 0
    deferred: int = 0
    failed: int = 0


class Dispatcher:
    """Compose the gate, ledger, router and launcher into one control flow.

    Inbound events are normalised, authorised and admitted by
    :meth:`ingest`; nothing else happens on the ingest path. Launching is
    driven from the durable ledger by :meth:`pump`, so an event admitted by
    any process is eventually launched by whichever dispatcher pumps next.

    Parameters
    ----------
    ledger
        Dispatch ledger.
    gate
        Authorisation predicate applied to every raw event.
    router
        Maps canonical events to task templates.
    launcher
        Launches records within the concurrency ceiling.
    config
        Dispatcher settings; defaults apply when omitted.
    normalizer
        Raw-to-canonical converter.
    reclaimer
        Reclaimer whose early-signal buffer holds signals that beat their
        launch; without it such signals are only logged.

    """

    def __init__(  # noqa: PLR0913
        self,
        ledger: DispatchLedger,
        gate: AuthorizationPredicate,
        router: TemplateRouter,
        launcher: TaskLauncher,
        *,
        config: DispatcherConfig | None = None,
        normalizer: EventNormalizer | None = None,
        event_logger: DispatchEventLogger | None = None,
        reclaimer: CapacityReclaimerWatcher | None = None,
    ) -> None:
        """Wire collaborators."""
        self._ledger = ledger
        self._reclaimer = reclaimer
        self._router = router
        self._launcher = launcher
        self._config = config or DispatcherConfig()
        self._events = event_logger or DispatchEventLogger()
        self._admission = AdmissionService(
            ledger, gate, normalizer=normalizer, event_logger=self._events
        )

    @property
    def ledger(self) -> DispatchLedger:
        """Return the dispatch ledger."""
        return self._ledger

    @property
    def launcher(self) -> TaskLauncher:
        """Return the task launcher."""
        return self._launcher

    @property
    def config(self) -> DispatcherConfig:
        """Return the dispatcher configuration."""
        return self._config

    async def ingest(self, raw: RawEvent | bytes | str) -> IngestResult:
        """Admit one inbound event; see :meth:`AdmissionService.ingest`."""
        return await self._admission.ingest(raw)

    async def pump(self) -> PumpReport:
        """Launch routable Pending records while capacity allows.

        Slot acquisition fails fast; the first refusal ends the pass and the
        remaining records wait for the next one. Signals the backend sent for
        a new task before its handle was recorded are applied right after the
        launch.
        """
        pending = await self._ledger.list_pending(self._config.pump_batch_size)
        launched = failed = 0
        for index, record in enumerate(pending):
            canonical = record.event.to_canonical()
            template = self._router.route(canonical)
            if template is None:
                await self._fail_unroutable(record)
                failed += 1
                continue
            try:
                handle = await self._launcher.launch(record, template, timeout=0)
            except CapacityExceededError:
                report = PumpReport(launched, len(pending) - index, failed)
                self._log_pump(report)
                return report
            except (LaunchRejectedError, LaunchFailedError):
                failed += 1
                continue
            except InvalidTransitionError as exc:
                self._events.log_claim_lost(record.event_id, exc)
                continue
            launched += 1
            await self._replay_early_signals(handle)

        report = PumpReport(launched, 0, failed)
        self._log_pump(report)
        return report

    async def complete(self, signal: CompletionSignal) -> DispatchRecord | None:
        """Apply a task completion.

        A handle no record holds yet is parked with the reclaimer's early
        signals and applied once its launch is recorded; ``None`` is returned
        in that case.
        """
        record = await self._ledger.find_by_task_handle(signal.task_handle)
        if record is None and self._reclaimer is not None:
            record = await self._reclaimer.early_signals.park(signal, self._ledger)
        if record is None:
            self._events.log_completion_unknown(signal.task_handle)
            return None

        if signal.succeeded:
            updated = await self._ledger.mark_succeeded(record.event_id)
        else:
            updated = await self._ledger.record_failure(
                record.event_id, signal.reason or TASK_FAILED
            )
        await self._launcher.release(record.event_id)
        self._events.log_completed(updated, signal.task_handle)
        return updated

    async def expire_overdue(self, now: dt.datetime | None = None) -> list[str]:
        """Fail in-flight records older than the execution timeout.

        Returns the event ids that were expired. The ledger's retry budget
        decides whether each is re-queued.
        """
        cutoff_now = now or utcnow()
        overdue = await self._ledger.list_expired(
            cutoff_now, self._config.execution_timeout
        )
        expired: list[str] = []
        for record in overdue:
            try:
                updated = await self._ledger.record_failure(
                    record.event_id, EXECUTION_TIMEOUT
                )
            except InvalidTransitionError:
                continue
            await self._launcher.release(record.event_id)
            self._events.log_expired(updated, self._config.execution_timeout_s)
            expired.append(record.event_id)
        return expired

    async def recover(self) -> int:
        """Count records left in flight by a previous process against the ceiling."""
        in_flight = await self._ledger.list_in_flight()
        for record in in_flight:
            await self._launcher.adopt(record.event_id)
        return len(in_flight)

    async def run(self) -> None:
        """Recover, then pump and expire every ``poll_interval_s`` forever."""
        await self.recover()
        while True:
            try:
                await self.expire_overdue()
                await self.pump()
            except Exception as exc:  # noqa: BLE001 - next pass retries
                log_exception(logger, f"[{DispatchEventType.LOOP_FAILED}]", exc)
            await asyncio.sleep(self._config.poll_interval_s)

    async def _replay_early_signals(self, task_handle: str) -> None:
        if self._reclaimer is None:
            return
        for signal in self._reclaimer.early_signals.take(task_handle):
            try:
                if isinstance(signal, CompletionSignal):
                    await self.complete(signal)
                else:
                    await self._reclaimer.handle(signal)
            except InvalidTransitionError:
                # Logged by the ledger; a later signal for this handle still applies.
                continue

    async def _fail_unroutable(self, record: DispatchRecord) -> None:
        event = record.event
        try:
            await self._ledger.fail_unroutable(record.event_id, NO_MATCHING_TEMPLATE)
        except InvalidTransitionError:
            return
        self._events.log_unroutable(
            record.event_id, event.resource_id, event.event_kind
        )

    def _log_pump(self, report: PumpReport) -> None:
        if report.launched or report.deferred or report.failed:
            self._events.log_pump(report.launched, report.deferred, report.failed)
