"""Tender runtime entrypoint.

This module provides the ASGI application factory used by Granian. It
delegates to :func:`tender.api.app.create_app` while keeping the
``tender.runtime:create_app`` entrypoint stable.

When ``TENDER_DATABASE_URL`` is set, the runtime wires the full dispatcher
so the app admits events and runs its background loops. Otherwise it
starts in health-only mode.

Configuration is driven by environment variables:

- ``TENDER_HOST``: Bind address (default ``0.0.0.0``)
- ``TENDER_PORT``: Listen port (default ``8080``)
- ``TENDER_LOG_LEVEL``: Log level (default ``INFO``)
- ``TENDER_DATABASE_URL``: Ledger database URL (optional)

Dispatcher, autoscale and execution backend settings are documented on
:class:`~tender.dispatch.DispatcherConfig`,
:class:`~tender.autoscale.AutoscaleConfig` and
:func:`~tender.launcher.create_execution_backend`.

Run the service directly with ``python -m tender.runtime``.
"""

from __future__ import annotations

import os
import typing as typ

from tender.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

_MIN_PORT = 1
_MAX_PORT = 65535


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If port_str is not a valid integer in range 1-65535.

    """
    try:
        port = int(port_str)
        if not (_MIN_PORT <= port <= _MAX_PORT):
            msg = f"port {port} outside valid range {_MIN_PORT}-{_MAX_PORT}"
            raise ValueError(msg)  # noqa: TRY301 - unify conversion and range errors
    except ValueError as exc:
        log_error(
            logger,
            "Invalid TENDER_PORT value: %r (must be %d-%d): %s",
            port_str,
            _MIN_PORT,
            _MAX_PORT,
            exc,
        )
        raise SystemExit(1) from exc
    return port


def create_app() -> falcon.asgi.App:
    """Create the Falcon ASGI application from the environment.

    Returns
    -------
    falcon.asgi.App
        Health-only when ``TENDER_DATABASE_URL`` is unset, otherwise the
        full dispatcher.

    """
    from tender.api.app import create_app as _create_api_app

    database_url = os.environ.get("TENDER_DATABASE_URL")

    if database_url is None:
        return _create_api_app()

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from tender.api.app import AppDependencies
    from tender.api.factory import build_dispatch_components

    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    components = build_dispatch_components(session_factory)
    return _create_api_app(AppDependencies(components=components, engine=engine))


def main() -> None:
    """Start the Tender runtime server using Granian.

    Reads ``TENDER_HOST``, ``TENDER_PORT``, and ``TENDER_LOG_LEVEL`` from
    the environment and starts the ASGI server.
    """
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("TENDER_HOST", "0.0.0.0")  # noqa: S104 - bind all interfaces for container
    port = _parse_port(os.environ.get("TENDER_PORT", "8080"))
    log_level_str = os.environ.get("TENDER_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid TENDER_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    log_info(
        logger,
        "Starting Tender runtime on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "tender.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
