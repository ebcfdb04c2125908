"""Dispatch record lifecycle."""

from __future__ import annotations

import enum


class DispatchState(enum.IntEnum):
    """States a dispatch record moves through."""

    PENDING = 0
    LAUNCHING = 1
    RUNNING = 2
    SUCCEEDED = 3
    FAILED = 4
    PREEMPTED = 5


VALID_TRANSITIONS: dict[DispatchState, frozenset[DispatchState]] = {
    # Pending -> Failed is reserved for events no template can serve.
    DispatchState.PENDING: frozenset({DispatchState.LAUNCHING, DispatchState.FAILED}),
    DispatchState.LAUNCHING: frozenset({DispatchState.RUNNING, DispatchState.FAILED}),
    DispatchState.RUNNING: frozenset(
        {DispatchState.SUCCEEDED, DispatchState.FAILED, DispatchState.PREEMPTED}
    ),
    # Failed -> Pending is only taken while the retry budget lasts.
    DispatchState.FAILED: frozenset({DispatchState.PENDING}),
    # Preempted -> Failed is only taken once the retry budget is spent.
    DispatchState.PREEMPTED: frozenset({DispatchState.PENDING, DispatchState.FAILED}),
    DispatchState.SUCCEEDED: frozenset(),
}

IN_FLIGHT_STATES: frozenset[DispatchState] = frozenset(
    {DispatchState.LAUNCHING, DispatchState.RUNNING}
)

TERMINAL_STATES: frozenset[DispatchState] = frozenset(
    {DispatchState.SUCCEEDED, DispatchState.FAILED}
)


def validate_transition(from_state: DispatchState, to_state: DispatchState) -> bool:
    """Return True when ``from_state -> to_state`` is an edge of the graph."""
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())
