"""FastAPI application factory and middleware pipeline.

Every request passes through the same fixed sequence of stages, outermost
first::

    request context
      -> CORS -> sanitize -> body limit -> compression -> security headers
      -> rate limit -> overload shedding -> HTTPS enforcement
      -> application (health probe, otherwise 404)

Any stage may answer the request itself, in which case no later stage runs.
Starlette executes middleware in reverse order of registration, so
:func:`install_pipeline` registers the stages innermost first.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from loguru import logger

from src.api.middleware.body_limit import BodySizeLimitMiddleware
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.https import HTTPSEnforcementMiddleware
from src.api.middleware.overload import OverloadSheddingMiddleware
from src.api.middleware.rate_limit import RateLimitMiddleware
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.sanitize import InputSanitizationMiddleware
from src.api.middleware.security_headers import SecurityHeadersMiddleware
from src.api.utils.responses import ORJSONResponse
from src.core.admission import AdmissionController
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Start the lag monitor on startup and stop it on shutdown."""
    controller: AdmissionController = app_instance.state.admission
    controller.start()
    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    yield

    logger.info("Application shutdown initiated")
    await controller.stop()
    logger.info("Application shutdown complete")


def install_pipeline(
    application: FastAPI, settings: Settings, controller: AdmissionController
) -> None:
    """Register the admission pipeline on ``application``.

    Args:
        application: The application to configure.
        settings: Settings describing each stage.
        controller: Admission service shared by the rate limit and overload stages.
    """
    # Innermost stage first.
    if settings.https_config.enabled:
        application.add_middleware(
            HTTPSEnforcementMiddleware,
            trust_forwarded_proto=settings.https_config.trust_forwarded_proto,
            redirect_status_code=settings.https_config.redirect_status_code,
        )

    if settings.overload_config.enabled:
        application.add_middleware(OverloadSheddingMiddleware, controller=controller)

    rate_config = settings.rate_limit_config
    if rate_config.enabled:
        application.add_middleware(
            RateLimitMiddleware,
            controller=controller,
            message=rate_config.message,
            standard_headers=rate_config.standard_headers,
            legacy_headers=rate_config.legacy_headers,
        )

    headers_config = settings.security_headers_config
    application.add_middleware(
        SecurityHeadersMiddleware,
        hsts_max_age=headers_config.hsts_max_age,
        hsts_include_subdomains=headers_config.hsts_include_subdomains,
        hsts_preload=headers_config.hsts_preload,
        content_security_policy=headers_config.content_security_policy,
    )

    application.add_middleware(
        GZipMiddleware,
        minimum_size=settings.compression_config.minimum_size,
        compresslevel=settings.compression_config.compresslevel,
    )

    max_body_bytes = settings.body_limit_config.max_body_bytes
    application.add_middleware(BodySizeLimitMiddleware, max_body_bytes=max_body_bytes)
    application.add_middleware(
        InputSanitizationMiddleware, max_buffer_bytes=max_body_bytes
    )

    cors_config = settings.cors_config
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.allow_origins,
        allow_methods=cors_config.allow_methods,
        allow_headers=cors_config.allow_headers,
        max_age=cors_config.max_age,
    )

    application.add_middleware(RequestContextMiddleware)


def create_app(
    settings: Settings | None = None,
    controller: AdmissionController | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. Defaults to get_settings().
        controller: Optional admission service. Built from settings when omitted.

    Returns:
        FastAPI: Configured application with the full middleware pipeline.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)

    if controller is None:
        controller = AdmissionController.from_settings(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.admission = controller

    register_exception_handlers(application)
    install_pipeline(application, settings, controller)

    @application.get("/health")
    async def health() -> dict[str, Any]:
        """Report whether the server is currently shedding load."""
        return controller.snapshot()

    return application

