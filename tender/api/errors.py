"""Falcon error handlers mapping dispatcher errors to HTTP responses.

Register them on an app with :func:`register_error_handlers`::

    app = falcon.asgi.App()
    register_error_handlers(app)

"""

from __future__ import annotations

import typing as typ

import falcon

from tender.dispatch.observability import classify_error
from tender.events.errors import MalformedEventError
from tender.gate.errors import AuthorizationDeniedError
from tender.launcher.errors import CapacityExceededError
from tender.ledger.errors import DispatchRecordNotFoundError, InvalidTransitionError

if typ.TYPE_CHECKING:
    import falcon.asgi
    from falcon.asgi import Request, Response

__all__ = [
    "InvalidInputError",
    "handle_capacity_exceeded",
    "handle_denied",
    "handle_invalid_input",
    "handle_invalid_transition",
    "handle_malformed_event",
    "handle_record_not_found",
    "register_error_handlers",
]


class InvalidInputError(Exception):
    """Raised for request bodies that fail validation; maps to HTTP 400.

    Attributes
    ----------
    reason
        Human-readable description of the validation failure.
    field
        Optional name of the offending field.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialise with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        message = f"{field}: {reason}" if field is not None else reason
        super().__init__(message)


def _problem(title: str, ex: Exception) -> dict[str, str]:
    return {
        "title": title,
        "description": str(ex),
        "category": str(classify_error(ex)),
    }


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidInputError`` to HTTP 400."""
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {"title": "Invalid input", "description": ex.reason}
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media


async def handle_malformed_event(
    _req: Request,
    resp: Response,
    ex: MalformedEventError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``MalformedEventError`` to HTTP 400; the event was dropped."""
    resp.status = falcon.HTTP_400
    media = _problem("Malformed event", ex)
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media


async def handle_denied(
    _req: Request,
    resp: Response,
    ex: AuthorizationDeniedError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``AuthorizationDeniedError`` to HTTP 403."""
    resp.status = falcon.HTTP_403
    media = _problem("Event denied", ex)
    media["reason"] = ex.reason
    resp.media = media


async def handle_record_not_found(
    _req: Request,
    resp: Response,
    ex: DispatchRecordNotFoundError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``DispatchRecordNotFoundError`` to HTTP 404."""
    resp.status = falcon.HTTP_404
    resp.media = _problem("Dispatch record not found", ex)


async def handle_invalid_transition(
    _req: Request,
    resp: Response,
    ex: InvalidTransitionError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidTransitionError`` to HTTP 409."""
    resp.status = falcon.HTTP_409
    media = _problem("Invalid state transition", ex)
    if ex.current is not None:
        media["state"] = ex.current.name
    resp.media = media


async def handle_capacity_exceeded(
    _req: Request,
    resp: Response,
    ex: CapacityExceededError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``CapacityExceededError`` to HTTP 503 with a retry hint."""
    resp.status = falcon.HTTP_503
    resp.set_header("Retry-After", "5")
    resp.media = _problem("Capacity exhausted", ex)


def register_error_handlers(app: falcon.asgi.App) -> None:
    """Attach every dispatcher error handler to ``app``."""
    app.add_error_handler(InvalidInputError, handle_invalid_input)
    app.add_error_handler(MalformedEventError, handle_malformed_event)
    app.add_error_handler(AuthorizationDeniedError, handle_denied)
    app.add_error_handler(DispatchRecordNotFoundError, handle_record_not_found)
    app.add_error_handler(InvalidTransitionError, handle_invalid_transition)
    app.add_error_handler(CapacityExceededError, handle_capacity_exceeded)
