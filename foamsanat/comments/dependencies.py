"""FastAPI dependencies for the comments API.

Provides dependency injection for:
- Comments context and service
- Storage availability header
- Moderator authentication
- Client identification
- Error rendering for CommentError
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, Response, status
from fastapi.responses import ORJSONResponse

from foamsanat.core.context import get_request_id
from foamsanat.core.logging import get_logger
from foamsanat.core.security import UNKNOWN_CLIENT

from .auth import AuthenticatedAdmin
from .context import CommentsContext
from .exceptions import CommentError, StorageUnavailableError
from .service import CommentService
from .status import StorageStatus, availability_headers


logger = get_logger(__name__)


def get_comments_context(request: Request) -> CommentsContext:
    """Get comments context from app state.

    Args:
        request: FastAPI request

    Returns:
        CommentsContext instance
    """
    context = getattr(request.app.state, "comments", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comments service not available",
        )
    return context


CommentsContextDep = Annotated[CommentsContext, Depends(get_comments_context)]


def get_comment_service(context: CommentsContextDep) -> CommentService:
    return context.service


CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]


async def get_storage_status(
    service: CommentServiceDep, response: Response
) -> StorageStatus:
    """Resolve storage availability and advertise it on the response."""
    storage_status = await service.get_status()
    response.headers.update(
        availability_headers(
            storage_status.ready,
            storage_status.error_code,
            storage_status.retry_after_seconds,
        )
    )
    return storage_status


StorageStatusDep = Annotated[StorageStatus, Depends(get_storage_status)]


def require_admin(
    service: CommentServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> AuthenticatedAdmin:
    """Authenticate the moderator from the Authorization header."""
    return service.authenticate(authorization)


AdminDep = Annotated[AuthenticatedAdmin, Depends(require_admin)]


def get_client_id(request: Request) -> str:
    """Client identifier resolved by the request context middleware."""
    client_id = getattr(request.state, "client_id", None)
    if client_id:
        return client_id
    return request.client.host if request.client else UNKNOWN_CLIENT


ClientIdDep = Annotated[str, Depends(get_client_id)]


def comments_status_headers(request: Request) -> dict[str, str]:
    """Availability headers from the last known storage status, without retrying."""
    context = getattr(request.app.state, "comments", None)
    if context is None or not request.url.path.startswith("/comments"):
        return {}
    snapshot = context.storage.status()
    return availability_headers(snapshot.ready, snapshot.error_code)


def handle_comment_error(request: Request, error: CommentError) -> ORJSONResponse:
    """Convert comment errors to JSON responses.

    Args:
        request: The failing request.
        error: Comment error.

    Returns:
        ORJSONResponse with the error's status code and availability headers.
    """
    content: dict[str, object] = {"error": error.message, "code": error.code}
    if error.retry_after:
        content["retryAfterSeconds"] = error.retry_after

    if isinstance(error, StorageUnavailableError):
        content["status"] = "offline"
        headers = availability_headers(False, error.code, error.retry_after)
    else:
        headers = comments_status_headers(request)
        if error.retry_after:
            headers["Retry-After"] = str(error.retry_after)

    log_method = (
        logger.error
        if error.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR
        else logger.info
    )
    log_method(
        "comment_error",
        code=error.code,
        status_code=error.status_code,
        path=request.url.path,
        method=request.method,
        request_id=get_request_id() or None,
    )

    return ORJSONResponse(
        status_code=error.status_code, content=content, headers=headers
    )
