"""Errors raised by the cross-account policy gate."""

from __future__ import annotations


class PolicyValidationError(ValueError):
    """Raised when an account policy document fails validation."""

    def __init__(self, issues: list[str]) -> None:
        """Keep every issue while presenting one aggregated message."""
        super().__init__("\n".join(issues))
        self.issues = issues


class IdentityVerificationError(RuntimeError):
    """Raised when an identity assertion cannot be checked at all.

    The gate converts this into a denial; it never reaches callers of
    :meth:`tender.gate.PolicyGate.authorize`.
    """

    @classmethod
    def secret_unavailable(
        cls, account: str, env_var: str
    ) -> IdentityVerificationError:
        """Return an error for a configured secret that cannot be resolved."""
        return cls(f"shared secret for account {account} not found in ${env_var}")

    @classmethod
    def unsupported_scheme(cls, scheme: str) -> IdentityVerificationError:
        """Return an error for an assertion scheme we cannot verify."""
        return cls(f"unsupported assertion scheme {scheme!r}")


class AuthorizationDeniedError(PermissionError):
    """Raised at outer surfaces when the gate denied an event.

    Attributes
    ----------
    reason
        Denial reason value.
    detail
        Optional detail recorded in the audit entry.

    """

    def __init__(self, reason: str, detail: str | None = None) -> None:
        """Store the denial reason."""
        message = f"event denied: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.reason = reason
        self.detail = detail
