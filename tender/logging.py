"""femtologging helpers shared by every Tender component.

Tender emits pre-formatted messages so the femtologging worker thread never
has to interpolate arguments. Lifecycle events follow the
``[event.type] key=value ...`` convention so log aggregators can split them.

Example:
>>> from tender.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "[%s] event_id=%s", "dispatch.event.accepted", "abc")

"""

from __future__ import annotations

import typing as typ

from femtologging import basicConfig, get_logger


# Levels accepted by ``TENDER_LOG_LEVEL``.
_LEVELS = frozenset(
    {"TRACE", "DEBUG", "INFO", "WARN", "WARNING", "ERROR", "CRITICAL"}
)
_DEFAULT_LEVEL = "INFO"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return the canonical level name and whether the input was rejected.

    Parameters
    ----------
    level : str | None
        Raw level, typically read from the environment.

    Returns
    -------
    tuple[str, bool]
        ``(level, invalid)``; invalid input falls back to ``INFO``.

    """
    if not level or not level.strip():
        return (_DEFAULT_LEVEL, True)

    candidate = level.strip().upper()
    if candidate in _LEVELS:
        return (candidate, False)
    return (_DEFAULT_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root configuration.

    Parameters
    ----------
    level : str
        Raw level string; normalised with :func:`normalize_log_level`.
    force : bool, optional
        Replace an existing handler configuration.

    Returns
    -------
    tuple[str, bool]
        The applied level and whether the requested level was invalid.

    """
    applied, invalid = normalize_log_level(level)
    basicConfig(level=applied, force=force)
    return (applied, invalid)


class _SupportsLog(typ.Protocol):
    """Structural type for femtologging loggers and test doubles."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: str,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    # A literal "%" survives in templates without arguments.
    logger.log(
        level,
        template % args if args else template,
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit a DEBUG message."""
    _emit(logger, "DEBUG", template, args, exc_info)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit an INFO message.

    Parameters
    ----------
    logger : _SupportsLog
        Destination logger.
    template : str
        Percent-style message template.
    *args : object
        Values interpolated into ``template``.
    exc_info : object | None, optional
        Exception information attached to the record.

    """
    _emit(logger, "INFO", template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit a WARNING message (same parameters as :func:`log_info`)."""
    _emit(logger, "WARNING", template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit an ERROR message (same parameters as :func:`log_info`)."""
    _emit(logger, "ERROR", template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Emit ``message`` at ERROR with ``exc`` wired in as exc_info."""
    logger.log("ERROR", message, exc_info=exc, stack_info=False)


__all__ = [
    "configure_logging",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
