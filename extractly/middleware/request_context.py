"""Per-request middleware: request id propagation and body size guard.

The request id is read from ``X-Request-ID`` (or generated), kept in a
ContextVar so log records can carry it, and echoed on the response.
"""

import contextvars
import uuid

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from extractly.core.exceptions import PayloadTooLargeError

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)

# Routes that accept raw markup and enforce their own, larger limit
RAW_BODY_PATHS = frozenset({"/extract-xpath-html"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            request_id_var.reset(token)


def declared_length(headers) -> int | None:
    declared = headers.get("content-length")
    if declared and declared.isdigit():
        return int(declared)
    return None


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_bytes`` with 413.

    A declared Content-Length is checked up front. Bodies sent without one
    (chunked uploads) are buffered up to the limit and replayed to the app,
    so nothing past ``max_bytes`` is ever held in memory.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in RAW_BODY_PATHS:
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        declared = declared_length(headers)
        if declared is not None:
            if declared > self.max_bytes:
                await _payload_too_large(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        buffered: list[Message] = []
        total = 0
        while True:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            total += len(message.get("body", b""))
            if total > self.max_bytes:
                await _payload_too_large(scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        await self.app(scope, replay, send)


async def _payload_too_large(scope: Scope, receive: Receive, send: Send) -> None:
    response = JSONResponse({"error": "Payload too large"}, status_code=413)
    await response(scope, receive, send)


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, giving up as soon as it passes ``max_bytes``."""
    declared = declared_length(request.headers)
    if declared is not None and declared > max_bytes:
        raise PayloadTooLargeError(max_bytes)

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            raise PayloadTooLargeError(max_bytes)
    return bytes(body)


def get_request_id() -> str:
    """Current request id, empty outside a request."""
    return request_id_var.get()
