"""Configuration for the HTTP execution backend."""

from __future__ import annotations

import dataclasses
import os

from tender.launcher.errors import ExecutionBackendConfigError

_DEFAULT_TIMEOUT_S = 30.0


@dataclasses.dataclass(frozen=True, slots=True)
class HttpBackendConfig:
    """Settings for :class:`~tender.launcher.http_backend.HttpExecutionBackend`.

    Attributes
    ----------
    endpoint
        URL that accepts ``POST`` launch requests.
    token
        Optional bearer token.
    timeout_s
        Per-request timeout in seconds.

    """

    endpoint: str
    token: str | None = None
    timeout_s: float = _DEFAULT_TIMEOUT_S

    @staticmethod
    def _parse_timeout_from_env() -> float:
        raw = os.environ.get("TENDER_EXECUTION_TIMEOUT_HTTP_S")
        if raw is None or not raw.strip():
            return _DEFAULT_TIMEOUT_S
        try:
            value = float(raw)
        except ValueError as exc:
            raise ExecutionBackendConfigError.invalid_timeout(raw) from exc
        if value <= 0:
            raise ExecutionBackendConfigError.invalid_timeout(raw)
        return value

    @classmethod
    def from_env(cls) -> HttpBackendConfig:
        """Build configuration from ``TENDER_EXECUTION_*`` variables.

        Raises
        ------
        ExecutionBackendConfigError
            If the endpoint is missing or the timeout is invalid.

        """
        endpoint = os.environ.get("TENDER_EXECUTION_ENDPOINT", "").strip()
        if not endpoint:
            raise ExecutionBackendConfigError.missing_endpoint()
        token = os.environ.get("TENDER_EXECUTION_TOKEN", "").strip() or None
        return cls(
            endpoint=endpoint,
            token=token,
            timeout_s=cls._parse_timeout_from_env(),
        )
