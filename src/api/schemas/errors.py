"""Error response body returned for every non-admission failure."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Identifies the service instance that produced an error."""

    name: str = Field(..., examples=["Bulwark"])
    version: str = Field(..., examples=["0.1.0"])
    environment: str = Field(..., examples=["production"])


class ErrorResponse(BaseModel):
    """JSON error body.

    Rate-limit (429) and overload (503) rejections do not use this model:
    they are answered with fixed plain-text bodies by the admission
    middleware before any handler runs.
    """

    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["NOT_FOUND", "PAYLOAD_TOO_LARGE"],
    )
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details, e.g. per-field validation errors",
    )
    correlation_id: str | None = Field(
        default=None,
        description="Correlation ID of the failed request",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the error occurred (timezone-aware)",
    )
    severity: str | None = Field(default=None, examples=["LOW", "HIGH"])
    service_info: ServiceInfo | None = None
