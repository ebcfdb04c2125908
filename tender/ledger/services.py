"""Durable, idempotent record of admitted events and their dispatch state."""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import enum
import typing as typ

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from tender.common.time import utcnow
from tender.ledger.errors import (
    DispatchRecordNotFoundError,
    InvalidTransitionError,
    LedgerPersistError,
)
from tender.ledger.observability import LedgerEventLogger
from tender.ledger.states import IN_FLIGHT_STATES, DispatchState, validate_transition
from tender.ledger.storage import DispatchEvent, DispatchRecord

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tender.events.models import CanonicalEvent

DEFAULT_MAX_RETRIES = 3


class AdmitStatus(enum.StrEnum):
    """Result of offering an event to the ledger."""

    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"


@dc.dataclass(frozen=True, slots=True)
class AdmitResult:
    """Outcome of :meth:`DispatchLedger.admit`."""

    status: AdmitStatus
    record: DispatchRecord

    @property
    def accepted(self) -> bool:
        """Return True when this call created the record."""
        return self.status is AdmitStatus.ACCEPTED


class DispatchLedger:
    """Persist admitted events and guard every state change.

    Admission is idempotent on ``event_id``: the first writer inserts the
    event and a ``Pending`` record, later writers observe the unique
    constraint and receive the existing record. State changes are applied
    with a compare-and-set update so two workers can never both move a
    record out of the same state.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Factory producing sessions bound to the ledger database.
    max_retries : int, optional
        Re-queues allowed after failures or preemptions before a record is
        failed permanently.
    event_logger : LedgerEventLogger | None, optional
        Structured logger for transitions.

    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        event_logger: LedgerEventLogger | None = None,
    ) -> None:
        """Store the session factory and retry budget."""
        if max_retries < 0:
            msg = "max_retries must be zero or positive"
            raise ValueError(msg)
        self._session_factory = session_factory
        self._max_retries = max_retries
        self._events = event_logger or LedgerEventLogger()

    @property
    def max_retries(self) -> int:
        """Return the retry budget applied to every record."""
        return self._max_retries

    async def admit(self, event: CanonicalEvent) -> AdmitResult:
        """Record ``event`` once, returning DUPLICATE for any replay."""
        async with self._session_factory() as session:
            dispatch_event = DispatchEvent(
                event_id=event.event_id,
                source_account=event.source_account,
                resource_id=event.resource_id,
                event_kind=str(event.event_kind),
                sequence_token=event.sequence_token,
                occurred_at=event.occurred_at,
                received_at=event.received_at,
            )
            record = DispatchRecord(
                event_id=event.event_id,
                state=DispatchState.PENDING.value,
                attempt_count=0,
            )
            record.event = dispatch_event
            session.add_all([dispatch_event, record])

            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                existing = await self._load(session, event.event_id)
                if existing is None:
                    raise LedgerPersistError(event.event_id) from exc
                return AdmitResult(AdmitStatus.DUPLICATE, existing)

            return AdmitResult(
                AdmitStatus.ACCEPTED, await self._require(session, event.event_id)
            )

    async def transition(
        self,
        event_id: str,
        from_state: DispatchState,
        to_state: DispatchState,
        **changes: object,
    ) -> DispatchRecord:
        """Move a record from ``from_state`` to ``to_state`` atomically.

        Raises
        ------
        InvalidTransitionError
            If the edge is not part of the state machine or the record is no
            longer in ``from_state``.
        DispatchRecordNotFoundError
            If no record exists for ``event_id``.

        """
        async with self._session_factory() as session, session.begin():
            await self._apply(session, event_id, from_state, to_state, changes)
        return await self.get(event_id)

    async def mark_launching(self, event_id: str) -> DispatchRecord:
        """Claim a Pending record for launch."""
        return await self.transition(
            event_id,
            DispatchState.PENDING,
            DispatchState.LAUNCHING,
            last_attempt_at=utcnow(),
            failure_reason=None,
        )

    async def mark_running(
        self, event_id: str, task_handle: str, template_name: str | None = None
    ) -> DispatchRecord:
        """Attach the backend task handle once the launch is acknowledged."""
        return await self.transition(
            event_id,
            DispatchState.LAUNCHING,
            DispatchState.RUNNING,
            task_handle=task_handle,
            template_name=template_name,
        )

    async def mark_succeeded(self, event_id: str) -> DispatchRecord:
        """Complete a Running record."""
        return await self.transition(
            event_id, DispatchState.RUNNING, DispatchState.SUCCEEDED
        )

    async def record_failure(self, event_id: str, reason: str) -> DispatchRecord:
        """Fail a Launching or Running record, re-queueing it within budget."""
        async with self._session_factory() as session, session.begin():
            record = await self._require(session, event_id)
            current = record.dispatch_state
            if current not in IN_FLIGHT_STATES:
                self._reject(
                    InvalidTransitionError.state_mismatch(
                        event_id,
                        current,
                        DispatchState.RUNNING,
                        DispatchState.FAILED,
                    )
                )
            attempts = record.attempt_count
            await self._apply(
                session,
                event_id,
                current,
                DispatchState.FAILED,
                {"failure_reason": reason, "task_handle": None},
            )
            if attempts < self._max_retries:
                await self._requeue(
                    session, event_id, DispatchState.FAILED, attempts, reason
                )
            else:
                self._events.log_retry_exhausted(
                    event_id, attempts, self._max_retries, reason
                )
        return await self.get(event_id)

    async def fail_unroutable(self, event_id: str, reason: str) -> DispatchRecord:
        """Fail a Pending record permanently; retrying cannot help it."""
        return await self.transition(
            event_id,
            DispatchState.PENDING,
            DispatchState.FAILED,
            failure_reason=reason,
        )

    async def record_preemption(self, task_handle: str, reason: str) -> DispatchRecord:
        """Return a preempted Running record to Pending, or fail it when spent.

        The task handle is cleared either way; a later launch receives a new
        one from the backend.
        """
        async with self._session_factory() as session, session.begin():
            record = await session.scalar(
                select(DispatchRecord).where(DispatchRecord.task_handle == task_handle)
            )
            if record is None:
                raise DispatchRecordNotFoundError(task_handle)
            event_id = record.event_id
            attempts = record.attempt_count
            await self._apply(
                session,
                event_id,
                DispatchState.RUNNING,
                DispatchState.PREEMPTED,
                {"failure_reason": reason, "task_handle": None},
            )
            if attempts < self._max_retries:
                await self._requeue(
                    session, event_id, DispatchState.PREEMPTED, attempts, reason
                )
            else:
                await self._apply(
                    session,
                    event_id,
                    DispatchState.PREEMPTED,
                    DispatchState.FAILED,
                    {},
                )
                self._events.log_retry_exhausted(
                    event_id, attempts, self._max_retries, reason
                )
        return await self.get(event_id)

    async def get(self, event_id: str) -> DispatchRecord:
        """Return the record for ``event_id``."""
        async with self._session_factory() as session:
            return await self._require(session, event_id)

    async def find_by_task_handle(self, task_handle: str) -> DispatchRecord | None:
        """Return the record currently holding ``task_handle``, if any."""
        async with self._session_factory() as session:
            return await session.scalar(
                select(DispatchRecord).where(DispatchRecord.task_handle == task_handle)
            )

    async def list_pending(self, limit: int = 100) -> list[DispatchRecord]:
        """Return Pending records, oldest admission first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(DispatchRecord)
                .where(DispatchRecord.state == DispatchState.PENDING.value)
                .order_by(DispatchRecord.id)
                .limit(limit)
            )
            return list(result)

    async def list_in_flight(self) -> list[DispatchRecord]:
        """Return Launching and Running records."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(DispatchRecord)
                .where(
                    DispatchRecord.state.in_(
                        [state.value for state in IN_FLIGHT_STATES]
                    )
                )
                .order_by(DispatchRecord.id)
            )
            return list(result)

    async def count_in_state(self, *states: DispatchState) -> int:
        """Return how many records are in any of ``states``."""
        if not states:
            return 0
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(DispatchRecord)
                .where(DispatchRecord.state.in_([state.value for state in states]))
            )
            return int(count or 0)

    async def count_pending(self) -> int:
        """Return the backlog size."""
        return await self.count_in_state(DispatchState.PENDING)

    async def count_in_flight(self) -> int:
        """Return how many records are Launching or Running."""
        return await self.count_in_state(*IN_FLIGHT_STATES)

    async def list_expired(
        self, now: dt.datetime, timeout: dt.timedelta
    ) -> list[DispatchRecord]:
        """Return in-flight records whose attempt began before ``now - timeout``.

        Launching records are included so a launch that never completed is
        reconciled like an overrunning task.
        """
        cutoff = now - timeout
        async with self._session_factory() as session:
            result = await session.scalars(
                select(DispatchRecord)
                .where(
                    DispatchRecord.state.in_(
                        [state.value for state in IN_FLIGHT_STATES]
                    ),
                    DispatchRecord.last_attempt_at < cutoff,
                )
                .order_by(DispatchRecord.last_attempt_at)
            )
            return list(result)

    async def _requeue(
        self,
        session: AsyncSession,
        event_id: str,
        from_state: DispatchState,
        attempts: int,
        reason: str,
    ) -> None:
        await self._apply(
            session,
            event_id,
            from_state,
            DispatchState.PENDING,
            {"attempt_count": DispatchRecord.attempt_count + 1},
        )
        self._events.log_requeued(event_id, attempts + 1, reason)

    async def _apply(
        self,
        session: AsyncSession,
        event_id: str,
        from_state: DispatchState,
        to_state: DispatchState,
        changes: cabc.Mapping[str, object],
    ) -> None:
        if not validate_transition(from_state, to_state):
            self._reject(
                InvalidTransitionError.not_in_graph(event_id, from_state, to_state)
            )

        stmt = (
            update(DispatchRecord)
            .where(
                DispatchRecord.event_id == event_id,
                DispatchRecord.state == from_state.value,
            )
            .values(state=to_state.value, updated_at=utcnow(), **changes)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount == 1:  # type: ignore[attr-defined]
            self._events.log_transition(event_id, from_state, to_state)
            return

        current = await session.scalar(
            select(DispatchRecord.state).where(DispatchRecord.event_id == event_id)
        )
        if current is None:
            raise DispatchRecordNotFoundError(event_id)
        self._reject(
            InvalidTransitionError.state_mismatch(
                event_id, DispatchState(current), from_state, to_state
            )
        )

    def _reject(self, exc: InvalidTransitionError) -> typ.NoReturn:
        self._events.log_invalid_transition(exc)
        raise exc

    @staticmethod
    async def _require(session: AsyncSession, event_id: str) -> DispatchRecord:
        record = await DispatchLedger._load(session, event_id)
        if record is None:
            raise DispatchRecordNotFoundError(event_id)
        return record

    @staticmethod
    async def _load(session: AsyncSession, event_id: str) -> DispatchRecord | None:
        stmt = (
            select(DispatchRecord)
            .where(DispatchRecord.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        return await session.scalar(stmt)
