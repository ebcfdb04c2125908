"""Errors raised by the dispatch ledger."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from .states import DispatchState


class LedgerError(Exception):
    """Base class for dispatch ledger errors."""


class NaiveDatetimeError(LedgerError, ValueError):
    """Raised when a naive datetime is bound to a ledger column."""

    def __init__(self) -> None:
        """Use a fixed message so log lines stay greppable."""
        super().__init__("ledger datetimes must be timezone aware")


class DispatchRecordNotFoundError(LedgerError, LookupError):
    """Raised when no dispatch record exists for an event id or handle."""

    def __init__(self, key: str) -> None:
        """Record the lookup key."""
        super().__init__(f"no dispatch record for {key}")
        self.key = key


class LedgerPersistError(LedgerError, RuntimeError):
    """Raised when a duplicate admit cannot locate the existing record."""

    def __init__(self, event_id: str) -> None:
        """Include the event id for diagnostics."""
        super().__init__(f"expected existing dispatch record {event_id} after rollback")
        self.event_id = event_id


class InvalidTransitionError(LedgerError):
    """Raised when a state change is not allowed or lost a race.

    This is a programming or race-defence signal: it is logged as a bug and
    the requested change is not applied.

    Attributes
    ----------
    event_id
        Event whose record was targeted.
    current
        State the record is actually in, when known.
    requested_from
        State the caller expected.
    requested_to
        State the caller asked for.

    """

    def __init__(
        self,
        message: str,
        *,
        event_id: str,
        current: DispatchState | None,
        requested_from: DispatchState,
        requested_to: DispatchState,
    ) -> None:
        """Carry enough context to reconstruct the rejected decision."""
        super().__init__(message)
        self.event_id = event_id
        self.current = current
        self.requested_from = requested_from
        self.requested_to = requested_to

    @classmethod
    def not_in_graph(
        cls,
        event_id: str,
        requested_from: DispatchState,
        requested_to: DispatchState,
    ) -> InvalidTransitionError:
        """Return an error for an edge the state machine does not have."""
        return cls(
            f"{requested_from.name} -> {requested_to.name} is not a valid "
            f"transition (event_id={event_id})",
            event_id=event_id,
            current=None,
            requested_from=requested_from,
            requested_to=requested_to,
        )

    @classmethod
    def state_mismatch(
        cls,
        event_id: str,
        current: DispatchState,
        requested_from: DispatchState,
        requested_to: DispatchState,
    ) -> InvalidTransitionError:
        """Return an error for a record no longer in the expected state."""
        return cls(
            f"record {event_id} is {current.name}, expected "
            f"{requested_from.name} for -> {requested_to.name}",
            event_id=event_id,
            current=current,
            requested_from=requested_from,
            requested_to=requested_to,
        )
