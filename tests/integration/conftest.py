"""Fixtures for integration tests against the full middleware pipeline."""

import os
from collections.abc import AsyncGenerator, Callable, Generator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.main import create_app
from src.core.admission import AdmissionController
from src.core.config import Settings, get_settings
from src.core.overload import OverloadGate
from src.core.rate_limit import FixedWindowRateLimiter


class FixedLagSource:
    """Lag source reporting a constant lag."""

    def __init__(self, lag_ms: float) -> None:
        self.current_lag_ms = lag_ms


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Run against default settings regardless of the caller's environment."""
    for key in list(os.environ):
        app_key = key.startswith(("APP_", "API_", "DB_")) or "_CONFIG__" in key
        if app_key or key in {"PORT", "ENVIRONMENT", "DEBUG"}:
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def lagging_controller() -> AdmissionController:
    """Admission service whose event loop is reported as badly lagging."""
    return AdmissionController(
        rate_limiter=FixedWindowRateLimiter(max_requests=100, window_seconds=86400),
        gate=OverloadGate(max_lag_ms=70, source=FixedLagSource(600)),
    )


@pytest.fixture
def make_app() -> Callable[..., FastAPI]:
    def _make(
        settings: Settings | None = None,
        controller: AdmissionController | None = None,
    ) -> FastAPI:
        return create_app(settings or Settings(), controller)

    return _make


@pytest.fixture
async def client_for() -> AsyncGenerator[Callable[[FastAPI], AsyncClient]]:
    """Build httpx clients bound to an app, closing them after the test."""
    clients: list[AsyncClient] = []

    def _client(app: FastAPI) -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _client

    for client in clients:
        await client.aclose()


@pytest.fixture
def client(
    make_app: Callable[..., FastAPI],
    client_for: Callable[[FastAPI], AsyncClient],
) -> AsyncClient:
    """Client for an app built from default settings."""
    return client_for(make_app())
