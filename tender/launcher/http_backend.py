"""Execution backend that launches tasks through an HTTP API."""

from __future__ import annotations

import typing as typ

import httpx
import msgspec

from tender.launcher.backend import (
    LaunchAcknowledgement,
    LaunchRejection,
    LaunchRequest,
    TaskHandle,
)
from tender.launcher.errors import LaunchRejectedError

if typ.TYPE_CHECKING:
    from tender.launcher.config import HttpBackendConfig

_HTTP_CLIENT_ERROR_THRESHOLD = 400
_HTTP_SERVER_ERROR_THRESHOLD = 500
_DETAIL_PREVIEW_LIMIT = 200


def _preview(text: str) -> str:
    if len(text) <= _DETAIL_PREVIEW_LIMIT:
        return text
    return f"{text[:_DETAIL_PREVIEW_LIMIT]}..."


def _decode_rejection(response: httpx.Response) -> LaunchRejection | None:
    """Return the structured rejection body, or None for any other body."""
    try:
        return msgspec.json.decode(response.content, type=LaunchRejection)
    except msgspec.DecodeError:
        return None


class HttpExecutionBackend:
    """POST launch requests to a remote execution API.

    The endpoint receives a JSON :class:`LaunchRequest` and answers
    ``2xx {"task_handle": "..."}`` on success. A ``4xx`` body of the form
    ``{"reason": "...", "detail": "..."}`` is surfaced as a structured
    rejection; anything else becomes an ``http_<status>`` rejection.

    Parameters
    ----------
    config
        Endpoint, token and timeout.
    http_client
        Optional client for testing. When omitted the backend creates and
        owns one.

    """

    def __init__(
        self,
        config: HttpBackendConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create or adopt the HTTP client."""
        self._config = config
        self._owns_client = http_client is None
        self._headers = {"Content-Type": "application/json"}
        if config.token:
            self._headers["Authorization"] = f"Bearer {config.token}"
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_s)

    @property
    def config(self) -> HttpBackendConfig:
        """Return the backend configuration."""
        return self._config

    async def aclose(self) -> None:
        """Close the client if this backend created it."""
        if self._owns_client:
            await self._client.aclose()

    async def run_task(self, request: LaunchRequest) -> TaskHandle:
        """Launch ``request`` remotely and return the backend's handle.

        Raises
        ------
        LaunchRejectedError
            On refusal, timeout, transport failure or an unreadable reply.

        """
        response = await self._send(request)
        self._check_response(response)
        return self._parse_acknowledgement(response)

    async def _send(self, request: LaunchRequest) -> httpx.Response:
        try:
            return await self._client.post(
                self._config.endpoint,
                content=msgspec.json.encode(request),
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            raise LaunchRejectedError.timeout() from exc
        except httpx.RequestError as exc:
            raise LaunchRejectedError.network_error(str(exc)) from exc

    @staticmethod
    def _check_response(response: httpx.Response) -> None:
        status = response.status_code
        if status < _HTTP_CLIENT_ERROR_THRESHOLD:
            return
        rejection = (
            _decode_rejection(response)
            if status < _HTTP_SERVER_ERROR_THRESHOLD
            else None
        )
        if rejection is not None:
            raise LaunchRejectedError(
                rejection.reason, detail=rejection.detail, status_code=status
            )
        raise LaunchRejectedError.http_error(status, _preview(response.text) or None)

    @staticmethod
    def _parse_acknowledgement(response: httpx.Response) -> TaskHandle:
        try:
            ack = msgspec.json.decode(response.content, type=LaunchAcknowledgement)
        except msgspec.DecodeError as exc:
            raise LaunchRejectedError.invalid_response(_preview(response.text)) from exc
        if not ack.task_handle.strip():
            raise LaunchRejectedError.invalid_response("empty task_handle")
        return ack.task_handle
