"""Identity assertion verification for cross-account events."""

from __future__ import annotations

import hashlib
import hmac
import os
import typing as typ

from .errors import IdentityVerificationError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from tender.events.models import RawEvent

    from .policy import AccountGrant

_SCHEME = "sha256"


def assertion_material(event: RawEvent) -> bytes:
    """Return the canonical bytes an assertion signs."""
    parts = [
        event.source_account,
        event.resource_id,
        event.sequence_token or "",
        event.timestamp.isoformat(),
    ]
    return "|".join(parts).encode("utf-8")


def compute_assertion(event: RawEvent, secret: str) -> str:
    """Return the ``sha256=<hex>`` assertion for ``event`` under ``secret``."""
    digest = hmac.new(
        secret.encode("utf-8"), assertion_material(event), hashlib.sha256
    ).hexdigest()
    return f"{_SCHEME}={digest}"


@typ.runtime_checkable
class IdentityVerifier(typ.Protocol):
    """Checks the identity assertion attached to an event."""

    def verify(self, event: RawEvent, grant: AccountGrant) -> bool:
        """Return True when the assertion proves the event's origin.

        Implementations raise :class:`IdentityVerificationError` when the
        assertion cannot be evaluated at all.
        """
        ...


class HmacAssertionVerifier:
    """Verify HMAC-SHA256 assertions against per-account shared secrets.

    Secrets come from ``secrets`` when given, otherwise from the environment
    variable named by the grant's ``secret_env``.
    """

    def __init__(self, secrets: cabc.Mapping[str, str] | None = None) -> None:
        """Optionally pin secrets by account (used by tests and tooling)."""
        self._secrets = dict(secrets or {})

    def _secret_for(self, grant: AccountGrant) -> str | None:
        if grant.account in self._secrets:
            return self._secrets[grant.account]
        if grant.secret_env is None:
            return None
        secret = os.environ.get(grant.secret_env, "").strip()
        if not secret:
            raise IdentityVerificationError.secret_unavailable(
                grant.account, grant.secret_env
            )
        return secret

    def verify(self, event: RawEvent, grant: AccountGrant) -> bool:
        """Timing-safe comparison of the supplied and expected assertions."""
        if not event.assertion:
            return False
        scheme, _, provided = event.assertion.partition("=")
        if scheme != _SCHEME or not provided:
            raise IdentityVerificationError.unsupported_scheme(scheme)

        secret = self._secret_for(grant)
        if secret is None:
            return False
        expected = compute_assertion(event, secret).partition("=")[2]
        return hmac.compare_digest(provided.lower(), expected)
