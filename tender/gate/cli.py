"""Command-line linting for account policies and template catalogues."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import msgspec

from tender.templates import (
    TemplateCatalogue,
    TemplateValidationError,
    load_template_catalogue,
)

from .errors import PolicyValidationError
from .policy import AccountPolicy, load_account_policy

SCHEMA_ID = "https://tender.example/schemas/dispatch-config.json"


def build_config_schema() -> dict[str, object]:
    """Return a JSON Schema covering both configuration documents."""
    (policy_schema, templates_schema), components = msgspec.json.schema_components(
        [AccountPolicy, TemplateCatalogue]
    )
    return {
        "$id": SCHEMA_ID,
        "policy": policy_schema,
        "templates": templates_schema,
        "$defs": components,
    }


def _print_issues(label: str, path: Path, issues: list[str]) -> None:
    print(f"{label} validation failed for {path}:")
    for issue in issues:
        print(f"  - {issue}")


def main(argv: list[str] | None = None) -> int:
    """Validate policy and template files.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 on success, 1 when any document fails validation.

    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--policy", type=Path, default=None, help="Account policy")
    parser.add_argument(
        "--templates", type=Path, default=None, help="Template catalogue"
    )
    parser.add_argument(
        "--schema-out",
        type=Path,
        default=None,
        help="Optional path to write the generated JSON Schema",
    )
    args = parser.parse_args(argv)

    exit_code = 0
    if args.policy is not None:
        try:
            policy = load_account_policy(args.policy)
        except PolicyValidationError as exc:
            _print_issues("Policy", args.policy, exc.issues)
            exit_code = 1
        else:
            print(f"policy {args.policy} is valid ({len(policy.accounts)} accounts)")

    if args.templates is not None:
        try:
            catalogue = load_template_catalogue(args.templates)
        except TemplateValidationError as exc:
            _print_issues("Template", args.templates, exc.issues)
            exit_code = 1
        else:
            print(
                f"templates {args.templates} are valid "
                f"({len(catalogue.templates)} templates / "
                f"{len(catalogue.routes)} routes)"
            )

    if args.schema_out is not None:
        args.schema_out.parent.mkdir(parents=True, exist_ok=True)
        args.schema_out.write_text(
            json.dumps(build_config_schema(), indent=2), encoding="utf-8"
        )

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
