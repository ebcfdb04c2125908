"""Cross-account credential and policy gate.

The gate answers one question for the dispatcher: may this event cross from
its source account into ours? It combines an allow-list of accounts and
resource prefixes with optional HMAC identity assertions, and writes an
audit entry for every verdict.

    >>> from tender.gate import AccountGrant, AccountPolicy, PolicyGate
    >>> gate = PolicyGate(
    ...     AccountPolicy(accounts=[AccountGrant(account="111122223333",
    ...                                          resource_prefixes=["drop/"])])
    ... )

"""

from __future__ import annotations

from .errors import (
    AuthorizationDeniedError,
    IdentityVerificationError,
    PolicyValidationError,
)
from .policy import AccountGrant, AccountPolicy, load_account_policy, validate_policy
from .service import (
    AuthorizationDecision,
    AuthorizationOutcome,
    AuthorizationPredicate,
    DenialReason,
    PolicyGate,
)
from .verifier import (
    HmacAssertionVerifier,
    IdentityVerifier,
    assertion_material,
    compute_assertion,
)

__all__ = [
    "AccountGrant",
    "AccountPolicy",
    "AuthorizationDecision",
    "AuthorizationDeniedError",
    "AuthorizationOutcome",
    "AuthorizationPredicate",
    "DenialReason",
    "HmacAssertionVerifier",
    "IdentityVerificationError",
    "IdentityVerifier",
    "PolicyGate",
    "PolicyValidationError",
    "assertion_material",
    "compute_assertion",
    "load_account_policy",
    "validate_policy",
]
