"""Per-client rate limiting middleware."""

import math
from collections.abc import Callable

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp

from src.api.constants import (
    LEGACY_RATE_LIMIT_LIMIT_HEADER,
    LEGACY_RATE_LIMIT_REMAINING_HEADER,
    LEGACY_RATE_LIMIT_RESET_HEADER,
    RATE_LIMIT_LIMIT_HEADER,
    RATE_LIMIT_REMAINING_HEADER,
    RATE_LIMIT_RESET_HEADER,
    RETRY_AFTER_HEADER,
)
from src.core.admission import AdmissionController
from src.core.constants import RATE_LIMIT_MESSAGE, UNKNOWN_CLIENT_KEY
from src.core.rate_limit import RateLimitDecision

HTTP_429_TOO_MANY_REQUESTS = 429

type KeyFunc = Callable[[Request], str]


def client_address(request: Request) -> str:
    """Default client key: the peer address of the connection."""
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_KEY


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Counts requests per client and rejects once the window allowance is spent.

    Rejected requests get a 429 with a fixed plain-text body and never reach
    the next stage. With ``standard_headers`` every response, admitted or
    not, carries ``RateLimit-Limit``, ``RateLimit-Remaining`` and
    ``RateLimit-Reset`` (seconds until the window resets).

    Args:
        app: The ASGI application to wrap.
        controller: Admission service owning the counter table.
        message: Body of the 429 response.
        standard_headers: Whether to send the ``RateLimit-*`` headers.
        legacy_headers: Whether to send the ``X-RateLimit-*`` headers.
        key_func: Maps a request to its client key.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        controller: AdmissionController,
        message: str = RATE_LIMIT_MESSAGE,
        standard_headers: bool = True,
        legacy_headers: bool = False,
        key_func: KeyFunc = client_address,
    ) -> None:
        super().__init__(app)
        self.controller = controller
        self.message = message
        self.standard_headers = standard_headers
        self.legacy_headers = legacy_headers
        self.key_func = key_func

    def _apply_headers(self, response: Response, decision: RateLimitDecision) -> None:
        reset_seconds = str(math.ceil(decision.reset_after))

        if self.standard_headers:
            response.headers[RATE_LIMIT_LIMIT_HEADER] = str(decision.limit)
            response.headers[RATE_LIMIT_REMAINING_HEADER] = str(decision.remaining)
            response.headers[RATE_LIMIT_RESET_HEADER] = reset_seconds

        if self.legacy_headers:
            response.headers[LEGACY_RATE_LIMIT_LIMIT_HEADER] = str(decision.limit)
            response.headers[LEGACY_RATE_LIMIT_REMAINING_HEADER] = str(
                decision.remaining
            )
            response.headers[LEGACY_RATE_LIMIT_RESET_HEADER] = str(
                math.ceil(decision.reset_at)
            )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client_key = self.key_func(request)
        decision = self.controller.admit(client_key)

        if decision.allowed:
            response = await call_next(request)
        else:
            logger.info(
                "Rate limit exceeded",
                client_key=client_key,
                limit=decision.limit,
                path=request.url.path,
            )
            response = PlainTextResponse(
                self.message, status_code=HTTP_429_TOO_MANY_REQUESTS
            )
            response.headers[RETRY_AFTER_HEADER] = str(math.ceil(decision.reset_after))

        self._apply_headers(response, decision)
        return response
