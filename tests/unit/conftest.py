"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest
from pytest_mock import MockerFixture, MockType

from src.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[pytest.MonkeyPatch]:
    """Remove app-specific environment variables and restore them afterwards."""
    original_env = os.environ.copy()

    env_prefixes = [
        "APP_",
        "API_",
        "PORT",
        "DB_",
        "ENVIRONMENT",
        "DEBUG",
        "LOG_CONFIG__",
        "RATE_LIMIT_CONFIG__",
        "OVERLOAD_CONFIG__",
        "HTTPS_CONFIG__",
        "BODY_LIMIT_CONFIG__",
        "CORS_CONFIG__",
        "COMPRESSION_CONFIG__",
        "SECURITY_HEADERS_CONFIG__",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a real Settings object built from test environment values."""
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "3000")
    return Settings()


@pytest.fixture
def mock_app(mocker: MockerFixture) -> MockType:
    """Provide a mock ASGI app for middleware constructors."""
    return mocker.Mock()
