"""Unit tests for src/api/middleware/error_handler.py."""

import orjson
import pytest
from fastapi.exceptions import RequestValidationError
from pytest_mock import MockerFixture, MockType
from starlette.exceptions import HTTPException

from src.api.middleware.error_handler import (
    bulwark_error_handler,
    generic_exception_handler,
    http_exception_handler,
    status_for_error,
    validation_error_handler,
)
from src.core.context import RequestContext
from src.core.exceptions import (
    BulwarkError,
    ErrorCode,
    NotFoundError,
    PayloadTooLargeError,
    Severity,
    ValidationError,
)


def _body(response: object) -> dict[str, object]:
    return orjson.loads(response.body)  # type: ignore[attr-defined]


@pytest.mark.unit
class TestStatusForError:
    """Tests for the exception-to-status mapping."""

    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (PayloadTooLargeError(10, 20), 413),
            (ValidationError("bad"), 400),
            (NotFoundError("gone"), 404),
            (BulwarkError(ErrorCode.INTERNAL_ERROR, "x"), 500),
        ],
    )
    def test_mapping(self, exc: BulwarkError, status: int) -> None:
        assert status_for_error(exc) == status


@pytest.mark.unit
class TestHandlers:
    """Tests for the registered exception handlers."""

    async def test_bulwark_error_response(
        self, mock_request: MockType, mock_settings: object
    ) -> None:
        RequestContext.set_correlation_id("corr-1")
        try:
            response = await bulwark_error_handler(
                mock_request, PayloadTooLargeError(10, 20)
            )
        finally:
            RequestContext.clear()

        body = _body(response)
        assert response.status_code == 413
        assert body["error_code"] == "PAYLOAD_TOO_LARGE"
        assert body["correlation_id"] == "corr-1"
        assert body["severity"] == "LOW"
        assert body["details"] == {"limit_bytes": 10, "received_bytes": 20}
        assert body["service_info"] == {
            "name": "TestApp",
            "version": "1.0.0",
            "environment": "development",
        }

    async def test_unexpected_bulwark_error_logged_as_error(
        self, mocker: MockerFixture, mock_request: MockType
    ) -> None:
        mock_logger = mocker.patch("src.api.middleware.error_handler.logger")

        await bulwark_error_handler(
            mock_request, BulwarkError("X", "broken", Severity.HIGH)
        )

        mock_logger.error.assert_called_once()
        mock_logger.warning.assert_not_called()

    async def test_bulwark_handler_rejects_other_exceptions(
        self, mock_request: MockType
    ) -> None:
        with pytest.raises(TypeError, match="Expected BulwarkError"):
            await bulwark_error_handler(mock_request, ValueError("x"))

    async def test_validation_error_groups_fields(self, mock_request: MockType) -> None:
        exc = RequestValidationError(
            [
                {"loc": ("body", "name"), "msg": "Field required", "type": "missing"},
                {"loc": ("body",), "msg": "Invalid JSON", "type": "json_invalid"},
            ]
        )

        response = await validation_error_handler(mock_request, exc)

        body = _body(response)
        assert response.status_code == 422
        assert body["details"] == {
            "validation_errors": {
                "name": ["Field required"],
                "root": ["Invalid JSON"],
            }
        }

    async def test_not_found_http_exception(self, mock_request: MockType) -> None:
        response = await http_exception_handler(
            mock_request, HTTPException(status_code=404, detail="Not Found")
        )

        body = _body(response)
        assert response.status_code == 404
        assert response.headers["content-type"] == "application/json"
        assert body["error_code"] == "NOT_FOUND"
        assert body["message"] == "Not Found"
        assert body["severity"] == "LOW"

    async def test_http_exception_headers_preserved(
        self, mock_request: MockType
    ) -> None:
        exc = HTTPException(status_code=405, detail="Nope", headers={"Allow": "GET"})

        response = await http_exception_handler(mock_request, exc)

        assert response.headers["allow"] == "GET"
        assert _body(response)["error_code"] == "INTERNAL_ERROR"

    async def test_generic_exception(self, mock_request: MockType) -> None:
        response = await generic_exception_handler(mock_request, RuntimeError("boom"))

        body = _body(response)
        assert response.status_code == 500
        assert body["severity"] == "CRITICAL"
        assert "boom" not in body["message"]
