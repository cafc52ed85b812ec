"""Load shedding middleware."""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp

from src.core.admission import AdmissionController
from src.core.constants import OVERLOAD_MESSAGE

HTTP_503_SERVICE_UNAVAILABLE = 503


class OverloadSheddingMiddleware(BaseHTTPMiddleware):
    """Rejects requests with 503 while the event loop is lagging.

    The gate is consulted once per request. A shed request is answered
    immediately and no later stage runs.

    Args:
        app: The ASGI application to wrap.
        controller: Admission service owning the overload gate.
        message: Body of the 503 response.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        controller: AdmissionController,
        message: str = OVERLOAD_MESSAGE,
    ) -> None:
        super().__init__(app)
        self.controller = controller
        self.message = message

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if self.controller.should_shed():
            logger.warning(
                "Shedding request, server too busy",
                method=request.method,
                path=request.url.path,
            )
            return PlainTextResponse(
                self.message, status_code=HTTP_503_SERVICE_UNAVAILABLE
            )
        return await call_next(request)
