"""Request body size limit middleware.

Requests declaring a ``Content-Length`` above the limit are rejected with
413 before the body is read. Requests without a declared length are read
eagerly, up to the limit, and rejected as soon as the running total crosses
it; the buffered body is then replayed to the next stage. When the
sanitization stage has already buffered and rewritten the body, the size it
recorded for the original body is checked instead of the rewritten length.
"""

from collections import deque

from loguru import logger
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.constants import RAW_BODY_BYTES_STATE_KEY
from src.api.middleware.error_handler import bulwark_error_handler
from src.core.constants import DEFAULT_MAX_BODY_BYTES
from src.core.exceptions import BulwarkError, PayloadTooLargeError, ValidationError


class BodySizeLimitMiddleware:
    """ASGI middleware enforcing a maximum request body size.

    Args:
        app: The ASGI application to wrap.
        max_body_bytes: Largest accepted body in bytes.
    """

    def __init__(
        self, app: ASGIApp, *, max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    ) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        raw_bytes = scope.get("state", {}).get(RAW_BODY_BYTES_STATE_KEY)
        if raw_bytes is not None:
            await self._handle_buffered(scope, receive, send, raw_bytes)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is None:
            await self._handle_unsized(scope, receive, send)
            return

        try:
            declared = int(content_length)
        except ValueError:
            await self._reject(
                scope,
                receive,
                send,
                ValidationError(
                    "Invalid Content-Length header",
                    context={"content_length": content_length},
                ),
            )
            return

        if declared > self.max_body_bytes:
            await self._reject(
                scope, receive, send, PayloadTooLargeError(self.max_body_bytes, declared)
            )
            return

        received = 0

        async def counted_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise PayloadTooLargeError(self.max_body_bytes, received)
            return message

        await self.app(scope, counted_receive, send)

    async def _handle_buffered(
        self, scope: Scope, receive: Receive, send: Send, raw_bytes: int
    ) -> None:
        # An earlier stage already read the whole body and may have rewritten it.
        if raw_bytes > self.max_body_bytes:
            exc = PayloadTooLargeError(self.max_body_bytes, raw_bytes)
            await self._reject(scope, receive, send, exc)
            return
        await self.app(scope, receive, send)

    async def _handle_unsized(self, scope: Scope, receive: Receive, send: Send) -> None:
        messages: list[Message] = []
        size = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            size += len(message.get("body", b""))
            if size > self.max_body_bytes:
                await self._reject(
                    scope, receive, send, PayloadTooLargeError(self.max_body_bytes, size)
                )
                return
            if not message.get("more_body", False):
                break

        pending = deque(messages)

        async def replay() -> Message:
            if pending:
                return pending.popleft()
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(
        self, scope: Scope, receive: Receive, send: Send, exc: BulwarkError
    ) -> None:
        logger.info(
            "Rejected request body",
            path=scope.get("path"),
            max_body_bytes=self.max_body_bytes,
            error_code=exc.error_code,
        )
        response = await bulwark_error_handler(Request(scope, receive), exc)
        await response(scope, receive, send)
