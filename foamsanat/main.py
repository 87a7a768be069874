"""Foam Sanat comments API - Main Application.

Run with ``uvicorn foamsanat.main:create_app --factory``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from foamsanat.comments.context import build_comments_context
from foamsanat.comments.dependencies import (
    comments_status_headers,
    handle_comment_error,
)
from foamsanat.comments.exceptions import CommentError
from foamsanat.comments.router import router as comments_router
from foamsanat.config import Settings, get_settings
from foamsanat.core.context import get_request_id
from foamsanat.core.logging import configure_structlog, get_logger
from foamsanat.core.middleware import RequestContextMiddleware
from foamsanat.core.redis import init_redis, shutdown_redis
from foamsanat.health import router as health_router


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    redis_client = await init_redis(settings)

    context = build_comments_context(settings, redis_client)
    app.state.comments = context

    # Storage failures are cached, not fatal; the API serves 503s until retry
    storage_status = await context.storage.ensure_ready()
    if storage_status.ready:
        logger.info("comments_initialized", backend=storage_status.backend)
    else:
        logger.warning(
            "comments_started_offline",
            backend=storage_status.backend,
            code=storage_status.error_code,
            retry_after_seconds=storage_status.retry_after_seconds,
        )

    yield

    logger.info("shutting_down_application")
    await context.aclose()
    await shutdown_redis(redis_client)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override. Defaults to the cached environment settings.
    """
    settings = settings or get_settings()
    configure_structlog(settings)

    # debug stays False so ServerErrorMiddleware never renders stack traces
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Product comments and moderation API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )
    app.state.settings = settings

    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
        trusted_proxies=settings.trusted_proxies,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id() or None

    @app.exception_handler(CommentError)
    async def comment_exception_handler(
        request: Request, exc: CommentError
    ) -> ORJSONResponse:
        return handle_comment_error(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "code": "http_error",
                "requestId": _get_request_id_safe(request),
            },
            headers={
                **comments_status_headers(request),
                **(getattr(exc, "headers", None) or {}),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle request validation errors."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Validation error",
                "code": "validation_error",
                "requestId": _get_request_id_safe(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
            headers=comments_status_headers(request),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler. Details are logged, never returned."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "An unexpected error occurred. Please try again later.",
                "code": "internal_error",
                "requestId": _get_request_id_safe(request),
            },
            headers=comments_status_headers(request),
        )

    app.include_router(health_router)
    app.include_router(comments_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Foam Sanat comments API",
            "version": settings.app_version,
        }

    return app
