"""Request-scoped correlation ID storage."""

import uuid
from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class RequestContext:
    """Async-safe access to the correlation ID of the request being served."""

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        return _correlation_id_var.get()

    @staticmethod
    def clear() -> None:
        _correlation_id_var.set(None)


def generate_correlation_id() -> str:
    """Return a new UUID4 string for a request without an incoming ID."""
    return str(uuid.uuid4())
