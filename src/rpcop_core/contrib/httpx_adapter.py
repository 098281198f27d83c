from __future__ import annotations
from typing import Any, Callable, Optional

import httpx

from ..classify import Code, status_classifier


def http_classifier(exc: BaseException) -> Optional[Code]:
    """Map httpx failures onto status codes."""
    if isinstance(exc, httpx.HTTPStatusError):
        return Code.from_http_status(exc.response.status_code)
    if isinstance(exc, httpx.TimeoutException):
        return Code.DEADLINE_EXCEEDED
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return Code.UNAVAILABLE
    return status_classifier(exc)


def json_invoker(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    encode: Optional[Callable[[Any], Any]] = None,
):
    """
    Invoker that sends the request as a JSON body and returns the decoded JSON reply.

    Non-2xx replies raise httpx.HTTPStatusError, which `http_classifier` maps
    to a code. The coroutine accepts `timeout=` for use with `timeout_kwarg`.
    """

    async def invoke(request: Any, *, timeout: Optional[float] = None) -> Any:
        body = encode(request) if encode else request
        resp = await client.request(
            method,
            url,
            json=body,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        resp.raise_for_status()
        return resp.json()

    return invoke
