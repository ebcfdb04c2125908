"""Strict environment variable parsing for config dataclasses."""

from __future__ import annotations

import os
from pathlib import Path


def env_int(env_var: str, default: int, *, minimum: int = 0) -> int:
    """Read an integer env var of at least ``minimum``, falling back to a default.

    Blank values count as unset.
    """
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < minimum:
        msg = f"{env_var} must be >= {minimum}, got: {value}"
        raise ValueError(msg)
    return value


def env_float(env_var: str, default: float, *, minimum: float = 0.0) -> float:
    """Read a float env var of at least ``minimum``, falling back to a default."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{env_var} must be a number, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < minimum:
        msg = f"{env_var} must be >= {minimum:g}, got: {value:g}"
        raise ValueError(msg)
    return value


def env_path(env_var: str) -> Path | None:
    """Return the path stored in ``env_var`` or None when unset or blank."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return None
    return Path(raw.strip())


def env_flag(env_var: str) -> bool:
    """Return True when ``env_var`` is ``1``, ``true``, ``yes`` or ``on``."""
    return os.environ.get(env_var, "").strip().lower() in {"1", "true", "yes", "on"}
