"""Access log middleware: one log line per HTTP request."""

from __future__ import annotations

import logging
import time

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("aichat.access")


def client_ip(headers: Headers, client: tuple[str, int] | None) -> str:
    """Originating client address, trusting the usual proxy headers."""
    for name in ("cf-connecting-ip", "x-real-ip"):
        value = headers.get(name)
        if value:
            return value
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        # leftmost entry is the original client
        return forwarded.split(",")[0].strip()
    return client[0] if client else ""


class AccessLogMiddleware:
    """Logs method, path, status, body size, duration, client ip and user agent.

    Written as plain ASGI so streamed responses pass through untouched; the
    line is emitted once the response has finished (or the client went away).
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status = 500
        size = 0

        async def send_wrapper(message: Message) -> None:
            nonlocal status, size
            if message["type"] == "http.response.start":
                status = message["status"]
            elif message["type"] == "http.response.body":
                size += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            headers = Headers(scope=scope)
            path = scope.get("path", "")
            if scope.get("query_string"):
                path += "?" + scope["query_string"].decode("latin-1")
            logger.info(
                "access: %s %s status=%d size=%d duration=%.3fs ip=%s user_agent=%s",
                scope.get("method", ""),
                path,
                status,
                size,
                time.perf_counter() - start,
                client_ip(headers, scope.get("client")),
                headers.get("user-agent", ""),
            )
