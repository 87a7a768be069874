"""Request middleware for context management and logging.

This module provides middleware components for:
- Request context injection (request_id, hashed client id)
- Request/response logging with timing
"""

import time
from collections.abc import Awaitable, Callable, Iterable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from foamsanat.core.context import clear_context, set_client_id, set_request_id
from foamsanat.core.logging import hash_identifier
from foamsanat.core.security import get_client_identifier


logger = structlog.get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware that sets up request context for logging.

    This middleware:
    1. Generates or extracts request ID from headers
    2. Resolves the client identifier (trusted-proxy aware)
    3. Logs request start/finish with timing
    4. Cleans up context after request completes
    """

    REQUEST_ID_HEADER = "X-Request-ID"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
        trusted_proxies: Iterable[str] = ("127.0.0.1", "::1"),
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application.
            log_requests: Whether to log request start/finish.
            exclude_paths: Paths to exclude from logging (e.g., health checks).
            trusted_proxies: Peers whose X-Forwarded-For header is honoured.
        """
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = exclude_paths or [
            "/health",
            "/health/live",
            "/health/ready",
        ]
        self.trusted_proxies = frozenset(trusted_proxies)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request and set up context."""
        start_time = time.perf_counter()

        request_id = set_request_id(request.headers.get(self.REQUEST_ID_HEADER))

        client_id = get_client_identifier(
            request.headers,
            request.client.host if request.client else None,
            self.trusted_proxies,
        )
        set_client_id(hash_identifier(client_id))

        # Routes read these instead of recomputing them
        request.state.request_id = request_id
        request.state.client_id = client_id

        should_log = self.log_requests and not self._should_exclude(request.url.path)

        if should_log:
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
                query=str(request.query_params) if request.query_params else None,
                user_agent=request.headers.get("user-agent"),
            )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000

            if should_log:
                log_method = (
                    logger.warning if response.status_code >= 400 else logger.info
                )
                log_method(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                )

            response.headers[self.REQUEST_ID_HEADER] = request_id

            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000

            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
            )
            raise

        finally:
            # Always clear context to prevent leakage
            clear_context()

    def _should_exclude(self, path: str) -> bool:
        return any(path.startswith(excluded) for excluded in self.exclude_paths)


__all__ = ["RequestContextMiddleware"]
