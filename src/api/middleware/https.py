"""Plaintext HTTP enforcement middleware."""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response
from starlette.types import ASGIApp

from src.api.constants import FORWARDED_PROTO_HEADER, SAFE_REDIRECT_METHODS

HTTP_403_FORBIDDEN = 403
DEFAULT_PORTS = (80, 443)


class HTTPSEnforcementMiddleware(BaseHTTPMiddleware):
    """Redirects or refuses requests that did not arrive over HTTPS.

    GET and HEAD are redirected to the ``https://`` URL. Other methods are
    refused with 403, since a redirect would make most clients drop the body.
    Behind a TLS-terminating proxy the ``X-Forwarded-Proto`` header decides
    whether the original request was secure.

    Args:
        app: The ASGI application to wrap.
        trust_forwarded_proto: Honour ``X-Forwarded-Proto`` from the proxy.
        redirect_status_code: Status used for redirects.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        trust_forwarded_proto: bool = True,
        redirect_status_code: int = 301,
    ) -> None:
        super().__init__(app)
        self.trust_forwarded_proto = trust_forwarded_proto
        self.redirect_status_code = redirect_status_code

    def is_secure(self, request: Request) -> bool:
        if request.url.scheme in ("https", "wss"):
            return True
        if not self.trust_forwarded_proto:
            return False
        # Proxies may append; the first entry is the client-facing hop.
        forwarded = request.headers.get(FORWARDED_PROTO_HEADER, "")
        return forwarded.split(",")[0].strip().lower() == "https"

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if self.is_secure(request):
            return await call_next(request)

        if request.method not in SAFE_REDIRECT_METHODS:
            logger.info(
                "Refused plaintext request",
                method=request.method,
                path=request.url.path,
            )
            return PlainTextResponse("HTTPS required", status_code=HTTP_403_FORBIDDEN)

        url = request.url
        netloc = url.hostname if url.port in DEFAULT_PORTS else url.netloc
        secure_url = url.replace(scheme="https", netloc=netloc)
        return RedirectResponse(str(secure_url), status_code=self.redirect_status_code)
