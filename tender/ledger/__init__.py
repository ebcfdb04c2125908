"""Dispatch ledger: durable, idempotent dispatch state."""

from __future__ import annotations

from .errors import (
    DispatchRecordNotFoundError,
    InvalidTransitionError,
    LedgerError,
    LedgerPersistError,
    NaiveDatetimeError,
)
from .observability import LedgerEventLogger, LedgerEventType
from .services import DEFAULT_MAX_RETRIES, AdmitResult, AdmitStatus, DispatchLedger
from .states import (
    IN_FLIGHT_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DispatchState,
    validate_transition,
)
from .storage import (
    Base,
    DispatchEvent,
    DispatchRecord,
    UTCDateTime,
    init_ledger_storage,
)

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "IN_FLIGHT_STATES",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "AdmitResult",
    "AdmitStatus",
    "Base",
    "DispatchEvent",
    "DispatchLedger",
    "DispatchRecord",
    "DispatchRecordNotFoundError",
    "DispatchState",
    "InvalidTransitionError",
    "LedgerError",
    "LedgerEventLogger",
    "LedgerEventType",
    "LedgerPersistError",
    "NaiveDatetimeError",
    "UTCDateTime",
    "init_ledger_storage",
    "validate_transition",
]
