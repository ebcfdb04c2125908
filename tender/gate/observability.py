"""Audit trail for policy gate decisions."""

from __future__ import annotations

import enum
import typing as typ

from tender.logging import get_logger, log_error, log_info

if typ.TYPE_CHECKING:
    from tender.events.models import RawEvent

    from .service import AuthorizationDecision

logger = get_logger(__name__)


class GateEventType(enum.StrEnum):
    """Structured audit event identifiers."""

    AUTHORIZED = "gate.audit.authorized"
    DENIED = "gate.audit.denied"


class GateAuditLogger:
    """Write one audit entry per gate decision.

    Denials are written at ERROR so they surface as operator alerts.
    """

    def log_decision(self, event: RawEvent, decision: AuthorizationDecision) -> None:
        """Record ``decision`` for ``event``."""
        if decision.authorized:
            log_info(
                logger,
                "[%s] source_account=%s resource_id=%s sequence_token=%s",
                GateEventType.AUTHORIZED,
                event.source_account,
                event.resource_id,
                event.sequence_token,
            )
            return

        log_error(
            logger,
            "[%s] source_account=%s resource_id=%s sequence_token=%s "
            "reason=%s detail=%s",
            GateEventType.DENIED,
            event.source_account,
            event.resource_id,
            event.sequence_token,
            decision.reason,
            decision.detail,
        )
