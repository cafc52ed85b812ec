"""Fixtures for API middleware tests."""

from collections.abc import Callable
from typing import cast

import pytest
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture, MockType
from starlette.applications import Starlette
from starlette.datastructures import URL
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import ASGIApp

from src.core.admission import AdmissionController
from src.core.overload import OverloadGate
from src.core.rate_limit import FixedWindowRateLimiter


class StubLagSource:
    """Lag source with a settable value."""

    def __init__(self, lag_ms: float = 0.0) -> None:
        self.lag_ms = lag_ms

    @property
    def current_lag_ms(self) -> float:
        return self.lag_ms


@pytest.fixture
def lag_source() -> StubLagSource:
    return StubLagSource()


@pytest.fixture
def controller(lag_source: StubLagSource) -> AdmissionController:
    """Admission service with production limits and a stub lag source."""
    return AdmissionController(
        rate_limiter=FixedWindowRateLimiter(max_requests=100, window_seconds=86400),
        gate=OverloadGate(max_lag_ms=70, source=lag_source),
    )


@pytest.fixture
def mock_request(mocker: MockerFixture) -> MockType:
    """Mock Starlette request from 1.2.3.4 over plain HTTP."""
    request = mocker.Mock(spec=Request)
    request.method = "GET"
    request.url = URL("http://example.com/api/test")
    request.headers = {}
    request.client = mocker.Mock()
    request.client.host = "1.2.3.4"
    return cast("MockType", request)


@pytest.fixture
def mock_response(mocker: MockerFixture) -> MockType:
    response = mocker.Mock(spec=Response)
    response.headers = {}
    return cast("MockType", response)


@pytest.fixture
def mock_call_next(mocker: MockerFixture, mock_response: MockType) -> MockType:
    call_next = mocker.AsyncMock(spec=RequestResponseEndpoint)
    call_next.return_value = mock_response
    return cast("MockType", call_next)


async def echo(request: Request) -> Response:
    """Echo the query parameters and raw body back as JSON."""
    body = await request.body()
    return JSONResponse(
        {
            "query": dict(request.query_params),
            "body": body.decode(),
            "content_length": request.headers.get("content-length"),
        }
    )


def build_app(wrap: Callable[[ASGIApp], ASGIApp]) -> ASGIApp:
    """Wrap a one-route Starlette app with the middleware under test."""
    inner = Starlette(routes=[Route("/echo", echo, methods=["GET", "POST"])])
    return wrap(inner)


@pytest.fixture
def client_for() -> Callable[[ASGIApp], AsyncClient]:
    def _client(app: ASGIApp) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return _client

