"""Loguru-based logging for the Bulwark server.

Two output formats are supported:

- **console**: coloured, human-readable lines with request context inline
  (development)
- **json**: one JSON object per line (staging, production, log shippers)

Standard library logging, uvicorn's loggers included, is routed through
:class:`InterceptHandler` so every line leaves the process through Loguru.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Final, Protocol, cast

from loguru import logger

from src.core.constants import REDACTED


class _LoggingState:
    """Tracks whether logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class LogConfigProtocol(Protocol):
    """Log configuration fields read by setup_logging."""

    @property
    def log_level(self) -> str: ...

    @property
    def log_formatter_type(self) -> str | None: ...

    @property
    def sensitive_fields(self) -> list[str]: ...


class SettingsProtocol(Protocol):
    """Settings objects accepted by setup_logging."""

    @property
    def debug(self) -> bool: ...

    @property
    def app_name(self) -> str: ...

    @property
    def log_config(self) -> LogConfigProtocol: ...


CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "method",
    "path",
    "status_code",
    "client_key",
    "lag_ms",
)
STATUS_COLOURS: Final[dict[str, tuple[str, str]]] = {
    "2": ("<green>", "</green>"),
    "3": ("<yellow>", "</yellow>"),
    "4": ("<red>", "</red>"),
    "5": ("<red><bold>", "</bold></red>"),
}


def _escape(value: object) -> str:
    # Extra values are spliced into the format string: escape braces and markup.
    return str(value).replace("{", "{{").replace("}", "}}").replace("<", r"\<")


def _format_field(key: str, value: object, sensitive: set[str]) -> str:
    if key in sensitive:
        text = REDACTED
    elif key == "correlation_id":
        text = str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    else:
        text = str(value)
        if len(text) > MAX_FIELD_VALUE_LENGTH:
            text = text[: MAX_FIELD_VALUE_LENGTH - 3] + "..."

    if key == "status_code" and (tags := STATUS_COLOURS.get(text[:1])):
        return f"{tags[0]}{_escape(text)}{tags[1]}"
    return f"{_escape(key)}={_escape(text)}"


def make_console_formatter(sensitive_fields: list[str]) -> Any:  # noqa: ANN401
    """Build a Loguru format function that shows extra fields inline."""
    sensitive = {field.lower() for field in sensitive_fields}

    def format_console(record: dict[str, Any]) -> str:
        extra: dict[str, Any] = record.get("extra", {})
        ordered = [k for k in PRIORITY_FIELDS if extra.get(k) is not None]
        ordered += [
            k
            for k in extra
            if k not in PRIORITY_FIELDS and not k.startswith("_") and extra[k] is not None
        ]

        parts = [
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green>",
            "<level>{level: <8}</level>",
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>",
        ]
        if ordered:
            parts.append(
                " ".join(
                    f"[<dim>{_format_field(k, extra[k], sensitive)}</dim>]"
                    for k in ordered
                )
            )
        parts.append("{message}")

        line = " | ".join(parts) + "\n"
        if record.get("exception"):
            line += "{exception}"
        return line

    return format_console


def serialize_for_json(record: dict[str, Any]) -> str:
    """Render a Loguru record as a single JSON line."""
    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    for key, value in record.get("extra", {}).items():
        if not key.startswith("_") and key not in entry:
            entry[key] = value

    if exc := record.get("exception"):
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "message": str(exc.value) if exc.value else None,
        }

    return json.dumps(entry, default=str) + "\n"


class InterceptHandler(logging.Handler):
    """Forward standard library log records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            frame, depth = sys._getframe(6), 6
            while frame and frame.f_code.co_filename == logging.__file__:
                next_frame = frame.f_back
                if next_frame is None:
                    break
                frame = next_frame
                depth += 1
        except ValueError:
            depth = 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru once for the process.

    Args:
        settings: Application settings containing log configuration.
    """
    if _state.configured:
        return

    logger.remove()
    log_config = settings.log_config
    formatter_type = log_config.log_formatter_type or "console"

    if formatter_type == "json":

        def json_sink(message: object) -> None:
            record = getattr(message, "record", None)
            if record is not None:
                sys.stdout.write(serialize_for_json(record))
                sys.stdout.flush()

        logger.add(
            json_sink,
            level=log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=cast("Any", make_console_formatter(log_config.sensitive_fields)),
            level=log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        service=settings.app_name,
        log_level=log_config.log_level,
    )
    _state.configured = True
