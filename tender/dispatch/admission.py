"""Admission path: normalise, authorise and record inbound events."""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

from tender.dispatch.observability import DispatchEventLogger
from tender.events import (
    EventNormalizer,
    MalformedEventError,
    RawEvent,
    decode_raw_event,
)
from tender.gate import AuthorizationDeniedError

if typ.TYPE_CHECKING:
    from tender.gate import AuthorizationDecision, AuthorizationPredicate
    from tender.ledger import DispatchLedger, DispatchRecord


class IngestOutcome(enum.StrEnum):
    """What happened to one inbound event."""

    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    DENIED = "denied"
    MALFORMED = "malformed"


@dc.dataclass(frozen=True, slots=True)
class IngestResult:
    """Outcome of an ingest call with whatever context it produced."""

    outcome: IngestOutcome
    event_id: str | None = None
    record: DispatchRecord | None = None
    decision: AuthorizationDecision | None = None
    error: MalformedEventError | None = None

    def raise_for_outcome(self) -> None:
        """Raise the matching error for DENIED and MALFORMED outcomes."""
        if self.outcome is IngestOutcome.MALFORMED and self.error is not None:
            raise self.error
        if self.outcome is IngestOutcome.DENIED and self.decision is not None:
            raise AuthorizationDeniedError(
                str(self.decision.reason), self.decision.detail
            )


class AdmissionService:
    """Turn inbound events into Pending ledger records.

    Normalisation runs first so structurally broken input is dropped before
    the gate sees it; the gate's verdict is audited either way. Only
    authorised, well-formed events reach the ledger.
    """

    def __init__(
        self,
        ledger: DispatchLedger,
        gate: AuthorizationPredicate,
        *,
        normalizer: EventNormalizer | None = None,
        event_logger: DispatchEventLogger | None = None,
    ) -> None:
        """Wire collaborators."""
        self._ledger = ledger
        self._gate = gate
        self._normalizer = normalizer or EventNormalizer()
        self._events = event_logger or DispatchEventLogger()

    async def ingest(self, raw: RawEvent | bytes | str) -> IngestResult:
        """Admit one inbound event.

        Parameters
        ----------
        raw
            A decoded :class:`RawEvent` or its JSON encoding (flat event or
            storage notification envelope).

        Returns
        -------
        IngestResult
            ``MALFORMED`` and ``DENIED`` never create a record; a replay of
            an admitted event returns ``DUPLICATE`` with the existing record.

        """
        try:
            event = raw if isinstance(raw, RawEvent) else decode_raw_event(raw)
            canonical = self._normalizer.normalize(event)
        except MalformedEventError as exc:
            self._events.log_malformed(exc)
            return IngestResult(IngestOutcome.MALFORMED, error=exc)

        decision = self._gate.authorize(event)
        if not decision.authorized:
            self._events.log_denied(
                canonical.event_id, canonical.source_account, decision
            )
            return IngestResult(
                IngestOutcome.DENIED, event_id=canonical.event_id, decision=decision
            )

        admitted = await self._ledger.admit(canonical)
        if admitted.accepted:
            self._events.log_accepted(admitted.record)
            outcome = IngestOutcome.ACCEPTED
        else:
            self._events.log_duplicate(admitted.record)
            outcome = IngestOutcome.DUPLICATE
        return IngestResult(
            outcome,
            event_id=canonical.event_id,
            record=admitted.record,
            decision=decision,
        )
