"""Authorise events crossing from a source account into this one."""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

from .errors import IdentityVerificationError
from .observability import GateAuditLogger
from .verifier import HmacAssertionVerifier, IdentityVerifier

if typ.TYPE_CHECKING:
    from tender.events.models import RawEvent

    from .policy import AccountGrant, AccountPolicy


class AuthorizationOutcome(enum.StrEnum):
    """Result of a gate evaluation."""

    AUTHORIZED = "authorized"
    DENIED = "denied"


class DenialReason(enum.StrEnum):
    """Machine-readable reasons attached to denials."""

    ACCOUNT_NOT_ALLOWED = "account_not_allowed"
    RESOURCE_NOT_ALLOWED = "resource_not_allowed"
    ASSERTION_MISSING = "assertion_missing"
    ASSERTION_INVALID = "assertion_invalid"
    VERIFICATION_ERROR = "verification_error"


@dc.dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    """Gate verdict for one raw event."""

    outcome: AuthorizationOutcome
    reason: DenialReason | None = None
    detail: str | None = None

    @property
    def authorized(self) -> bool:
        """Return True for an ``AUTHORIZED`` outcome."""
        return self.outcome is AuthorizationOutcome.AUTHORIZED

    @classmethod
    def allow(cls) -> AuthorizationDecision:
        """Return an authorising decision."""
        return cls(AuthorizationOutcome.AUTHORIZED)

    @classmethod
    def deny(
        cls, reason: DenialReason, detail: str | None = None
    ) -> AuthorizationDecision:
        """Return a denial carrying ``reason``."""
        return cls(AuthorizationOutcome.DENIED, reason=reason, detail=detail)


@typ.runtime_checkable
class AuthorizationPredicate(typ.Protocol):
    """Capability deciding whether an event may cross the trust boundary.

    The dispatcher only depends on this protocol, so deployments can swap
    the policy-document gate for another authority and tests can inject
    deterministic allow/deny doubles.
    """

    def authorize(self, event: RawEvent) -> AuthorizationDecision:
        """Return the decision for ``event``; must not raise."""
        ...


class PolicyGate:
    """Allow-list gate backed by an :class:`AccountPolicy` document."""

    def __init__(
        self,
        policy: AccountPolicy,
        *,
        verifier: IdentityVerifier | None = None,
        audit: GateAuditLogger | None = None,
    ) -> None:
        """Bind the read-only policy and its collaborators."""
        self._policy = policy
        self._verifier = verifier or HmacAssertionVerifier()
        self._audit = audit or GateAuditLogger()

    @property
    def policy(self) -> AccountPolicy:
        """Read-only access to the active policy."""
        return self._policy

    def authorize(self, event: RawEvent) -> AuthorizationDecision:
        """Evaluate ``event`` and write an audit entry for the verdict."""
        try:
            decision = self._evaluate(event)
        except IdentityVerificationError as exc:
            decision = AuthorizationDecision.deny(
                DenialReason.VERIFICATION_ERROR, str(exc)
            )
        except Exception as exc:  # noqa: BLE001 - any failure must become a denial
            decision = AuthorizationDecision.deny(
                DenialReason.VERIFICATION_ERROR,
                f"{type(exc).__name__}: {exc}",
            )
        self._audit.log_decision(event, decision)
        return decision

    def _evaluate(self, event: RawEvent) -> AuthorizationDecision:
        grant = self._policy.grant_for(event.source_account)
        if grant is None:
            return AuthorizationDecision.deny(DenialReason.ACCOUNT_NOT_ALLOWED)
        if not grant.allows(event.resource_id):
            return AuthorizationDecision.deny(
                DenialReason.RESOURCE_NOT_ALLOWED, event.resource_id
            )
        return self._check_assertion(event, grant)

    def _check_assertion(
        self, event: RawEvent, grant: AccountGrant
    ) -> AuthorizationDecision:
        required = self._policy.require_assertion or grant.secret_env is not None
        if event.assertion is None:
            if required:
                return AuthorizationDecision.deny(DenialReason.ASSERTION_MISSING)
            return AuthorizationDecision.allow()

        if not self._verifier.verify(event, grant):
            return AuthorizationDecision.deny(DenialReason.ASSERTION_INVALID)
        return AuthorizationDecision.allow()
