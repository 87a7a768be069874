# Core infrastructure
from foamsanat.core.context import (
    RequestContext,
    clear_context,
    get_admin_id,
    get_client_id,
    get_context,
    get_request_id,
    set_admin_id,
    set_client_id,
    set_request_id,
)
from foamsanat.core.logging import configure_structlog, get_logger
from foamsanat.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_admin_id",
    "get_client_id",
    "get_context",
    "get_logger",
    "get_request_id",
    "set_admin_id",
    "set_client_id",
    "set_request_id",
]
