"""ASGI middleware binding a correlation ID to each HTTP request."""

import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from reminder_scheduler.logging_config import correlation_scope, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware:
    """Reuse the caller's X-Correlation-ID or mint one, and echo it back.

    Log lines emitted while the request is handled carry the ID; one
    summary line with status and duration is logged when it finishes.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = Headers(scope=scope).get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        response_status: list[int] = []

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_status.append(message["status"])
                MutableHeaders(scope=message)[CORRELATION_ID_HEADER] = correlation_id
            await send(message)

        started = time.perf_counter()
        with correlation_scope(correlation_id):
            await self.app(scope, receive, send_with_header)
            logger.info(
                "Request completed",
                method=scope["method"],
                path=scope["path"],
                status_code=response_status[0] if response_status else None,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
