"""Main entry point for running the Bulwark server."""

import socket

import uvicorn
from loguru import logger
from pydantic import ValidationError

from src.api.main import create_app
from src.core.config import get_settings
from src.core.logging import setup_logging

# Route uvicorn's own loggers through Loguru.
UVICORN_LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {
            "class": "src.core.logging.InterceptHandler",
        },
    },
    "loggers": {
        "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["default"], "level": "INFO", "propagate": False},
    },
}


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a TCP socket for the server.

    Raises:
        OSError: If the address cannot be bound.
        OverflowError: If the port is outside 0-65535.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except (OSError, OverflowError):
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def main() -> None:
    """Load settings, bind the configured port and serve the application.

    Invalid settings and bind failures are logged and main() returns
    without raising.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error("Error occurred: {}", _describe_invalid_settings(e))
        return

    setup_logging(settings)

    port = settings.api_port
    try:
        sock = bind_socket(settings.api_host, port)
    except (OSError, OverflowError) as e:
        # OverflowError: the port number is outside 0-65535.
        reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
        logger.error("Error occurred: {}", reason, port=port)
        return

    logger.info("Connected successfully on port {}", port)

    config = uvicorn.Config(
        create_app(settings),
        host=settings.api_host,
        port=port,
        log_config=UVICORN_LOG_CONFIG,
        server_header=False,
    )
    uvicorn.Server(config).run(sockets=[sock])


def _describe_invalid_settings(error: ValidationError) -> str:
    fields = ", ".join(
        ".".join(str(part) for part in detail["loc"]) for detail in error.errors()
    )
    return f"invalid settings ({fields})"


if __name__ == "__main__":
    main()
