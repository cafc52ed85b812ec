"""Exception hierarchy for the Bulwark server.

Every error raised by Bulwark code derives from :class:`BulwarkError`, which
carries a machine-readable error code, a human-readable message, a severity
and optional structured context. The API layer maps each subclass onto an
HTTP status code (see ``src.api.middleware.error_handler``).

Admission rejections (429 rate limited, 503 overloaded) are not exceptions:
the admission middleware writes those responses directly and stops the
pipeline.
"""

import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed."""

    NOT_FOUND = "NOT_FOUND"
    """No handler exists for the requested resource."""

    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    """The request body exceeded the configured size limit."""

    RATE_LIMITED = "RATE_LIMITED"
    """The client exceeded its request allowance for the current window."""

    SERVICE_OVERLOADED = "SERVICE_OVERLOADED"
    """The server shed the request because the event loop is lagging."""

    LAG_MONITOR_UNAVAILABLE = "LAG_MONITOR_UNAVAILABLE"
    """The event-loop lag signal cannot be read."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """The server was started with an unusable configuration."""


class Severity(Enum):
    """Severity levels used for log levels and alerting."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class BulwarkError(Exception):
    """Base exception class for all Bulwark exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause
        self.stack_trace = traceback.format_stack()[:-1]

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    @property
    def is_expected(self) -> bool:
        """True for errors caused by client input rather than server faults."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(BulwarkError):
    """Raised when request input cannot be accepted as sent."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(BulwarkError):
    """Raised when no handler exists for a resource."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class PayloadTooLargeError(ValidationError):
    """Raised when a request body grows past the configured limit.

    Args:
        limit: The configured maximum body size in bytes.
        received: Number of bytes seen when the limit was crossed.
    """

    def __init__(self, limit: int, received: int) -> None:
        super().__init__(
            f"Request body exceeds the {limit} byte limit",
            error_code=ErrorCode.PAYLOAD_TOO_LARGE,
            context={"limit_bytes": limit, "received_bytes": received},
        )
        self.limit = limit
        self.received = received


class LagMonitorUnavailableError(BulwarkError):
    """Raised when the event-loop lag signal is read while it is not running."""

    def __init__(self, message: str = "Event loop lag monitor is not running") -> None:
        super().__init__(ErrorCode.LAG_MONITOR_UNAVAILABLE, message, Severity.MEDIUM)


class ConfigurationError(BulwarkError):
    """Raised when admission components are built from inconsistent settings."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.CONFIGURATION_ERROR, message, Severity.CRITICAL, context
        )
