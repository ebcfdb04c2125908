"""Cross-account policy documents and their YAML loader.

The policy maps each trusted source account to the resource-id prefixes it
may trigger work for. It is produced outside the dispatcher and treated as
read-only configuration::

    require_assertion: true
    accounts:
      - account: "111122223333"
        resource_prefixes: ["ingest-bucket/incoming/"]
        secret_env: TENDER_SECRET_111122223333

"""

from __future__ import annotations

import re
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import PolicyValidationError

YAML_VERSION = (1, 2)

ACCOUNT_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
ENV_VAR_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")


class AccountGrant(msgspec.Struct, kw_only=True, frozen=True):
    """Trust granted to one source account.

    Attributes
    ----------
    account : str
        Source account identifier.
    resource_prefixes : list[str]
        Resource-id prefixes the account may dispatch for. An empty string
        prefix allows every resource.
    secret_env : str, optional
        Environment variable holding the shared secret used to verify
        identity assertions from this account.

    """

    account: str
    resource_prefixes: list[str] = msgspec.field(default_factory=list)
    secret_env: str | None = None

    def allows(self, resource_id: str) -> bool:
        """Return True when ``resource_id`` falls under a granted prefix."""
        return any(resource_id.startswith(prefix) for prefix in self.resource_prefixes)


class AccountPolicy(msgspec.Struct, kw_only=True, frozen=True):
    """Allow-list of source accounts and their resource prefixes."""

    accounts: list[AccountGrant] = msgspec.field(default_factory=list)
    require_assertion: bool = False

    def grant_for(self, account: str) -> AccountGrant | None:
        """Return the grant for ``account`` or ``None`` when not allow-listed."""
        for grant in self.accounts:
            if grant.account == account:
                return grant
        return None

    def allowed_prefixes(self, account: str) -> tuple[str, ...]:
        """Return the prefixes allowed for ``account`` (empty when unknown)."""
        grant = self.grant_for(account)
        return tuple(grant.resource_prefixes) if grant is not None else ()


def validate_policy(policy: AccountPolicy) -> AccountPolicy:
    """Validate structural rules, returning ``policy`` when it passes."""
    issues: list[str] = []
    seen: set[str] = set()
    for index, grant in enumerate(policy.accounts):
        where = f"accounts[{index}]"
        if not ACCOUNT_PATTERN.match(grant.account):
            issues.append(f"{where}: invalid account identifier {grant.account!r}")
        if grant.account in seen:
            issues.append(f"{where}: duplicate account {grant.account!r}")
        seen.add(grant.account)
        if not grant.resource_prefixes:
            issues.append(f"{where}: resource_prefixes must not be empty")
        if grant.secret_env is not None and not ENV_VAR_PATTERN.match(
            grant.secret_env
        ):
            issues.append(f"{where}: invalid secret_env {grant.secret_env!r}")
        if policy.require_assertion and grant.secret_env is None:
            issues.append(
                f"{where}: secret_env is required when require_assertion is set"
            )

    if issues:
        raise PolicyValidationError(issues)
    return policy


def load_account_policy(path: Path | str) -> AccountPolicy:
    """Parse and validate a YAML policy document."""
    try:
        loaded = _yaml().load(Path(path).read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise PolicyValidationError([f"failed to parse YAML: {exc}"]) from exc

    if loaded is None:
        raise PolicyValidationError(["policy file is empty"])

    try:
        policy = msgspec.convert(loaded, type=AccountPolicy)
    except msgspec.ValidationError as exc:
        raise PolicyValidationError([f"schema validation failed: {exc}"]) from exc

    return validate_policy(policy)


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml
