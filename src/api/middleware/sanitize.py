"""Input sanitization middleware.

HTML-escapes angle brackets in user-supplied strings before any downstream
stage or route sees them, so markup echoed back from request input cannot be
interpreted by a browser. Two inputs are rewritten:

- query string values (``?q=<script>`` becomes ``?q=&lt;script&gt;``)
- string values anywhere inside a JSON request body

Bodies that are not JSON, not valid JSON, or larger than the buffering limit
are passed through untouched; oversized bodies are rejected later by the body
size limit stage. A fully buffered body has its original size stored in
``scope["state"]`` so that stage judges the bytes the client actually sent.
"""

from collections import deque
from typing import Any
from urllib.parse import parse_qsl, urlencode

import orjson
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.api.constants import JSON_CONTENT_TYPES, RAW_BODY_BYTES_STATE_KEY
from src.core.constants import DEFAULT_MAX_BODY_BYTES

_ESCAPES = {"<": "&lt;", ">": "&gt;"}


def escape_markup(value: str) -> str:
    """Replace ``<`` and ``>`` with their HTML entities."""
    for char, entity in _ESCAPES.items():
        value = value.replace(char, entity)
    return value


def sanitize_value(value: Any) -> Any:  # noqa: ANN401 - arbitrary JSON value
    """Recursively escape every string inside a decoded JSON value."""
    if isinstance(value, str):
        return escape_markup(value)
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_value(item) for key, item in value.items()}
    return value


def sanitize_query_string(query_string: bytes) -> bytes:
    """Escape markup in query values, leaving clean query strings byte-identical."""
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    if not any(char in value for _, value in pairs for char in _ESCAPES):
        return query_string
    return urlencode([(key, escape_markup(value)) for key, value in pairs]).encode(
        "ascii"
    )


def sanitize_json_body(body: bytes) -> bytes:
    """Escape markup in a JSON document; return non-JSON input unchanged."""
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        return body
    cleaned = sanitize_value(data)
    if cleaned == data:
        return body
    return orjson.dumps(cleaned)


class InputSanitizationMiddleware:
    """ASGI middleware escaping markup in query strings and JSON bodies.

    Args:
        app: The ASGI application to wrap.
        max_buffer_bytes: Largest body that will be buffered and rewritten.
    """

    def __init__(
        self, app: ASGIApp, *, max_buffer_bytes: int = DEFAULT_MAX_BODY_BYTES
    ) -> None:
        self.app = app
        self.max_buffer_bytes = max_buffer_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        if query_string := scope.get("query_string", b""):
            scope["query_string"] = sanitize_query_string(query_string)

        content_type = Headers(scope=scope).get("content-type", "")
        if content_type.split(";")[0].strip().lower() not in JSON_CONTENT_TYPES:
            await self.app(scope, receive, send)
            return

        messages = await self._buffer_body(receive)
        last = messages[-1]
        complete = last["type"] == "http.request" and not last.get("more_body", False)

        if complete:
            body = b"".join(m.get("body", b"") for m in messages)
            sanitized = sanitize_json_body(body)
            if sanitized is not body:
                MutableHeaders(scope=scope)["content-length"] = str(len(sanitized))
            # Escaping grows the body; size limits apply to what the client sent.
            scope["state"] = {
                **scope.get("state", {}),
                RAW_BODY_BYTES_STATE_KEY: len(body),
            }
            messages = [{"type": "http.request", "body": sanitized, "more_body": False}]

        pending = deque(messages)

        async def replay() -> Message:
            if pending:
                return pending.popleft()
            return await receive()

        await self.app(scope, replay, send)

    async def _buffer_body(self, receive: Receive) -> list[Message]:
        """Read body messages until the body ends, the cap is hit, or the client leaves."""
        messages: list[Message] = []
        size = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            size += len(message.get("body", b""))
            if not message.get("more_body", False) or size > self.max_buffer_bytes:
                break
        return messages
