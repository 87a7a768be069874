"""Comments API endpoints.

Provides routes for:
- Public listing and submission
- Moderation (status, delete, replies) for authenticated moderators
- Audit trail retrieval
- Storage health
- Admin session issuance

Every response carries ``X-Comments-Status``.
"""

from typing import Annotated

from fastapi import APIRouter, Header, Query, Request, status
from fastapi.responses import ORJSONResponse

from .dependencies import (
    AdminDep,
    ClientIdDep,
    CommentServiceDep,
    StorageStatusDep,
)
from .exceptions import CommentValidationError
from .schemas import (
    AdminSessionResponse,
    AuditListResponse,
    CommentCreatedResponse,
    CommentListResponse,
    ModerationResultResponse,
    ReplyCreatedResponse,
    StatusUpdateResponse,
)
from .status import availability_headers


router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("", response_model=CommentListResponse, summary="List approved comments")
async def list_comments(
    comment_service: CommentServiceDep,
    _status: StorageStatusDep,
    product_id: Annotated[str | None, Query(alias="productId")] = None,
) -> CommentListResponse:
    """Approved comments for a product, newest first, with approved replies."""
    if not product_id or not product_id.strip():
        raise CommentValidationError("productId query parameter is required.")

    comments = await comment_service.list_approved(product_id.strip())
    return CommentListResponse(comments=comments)


@router.post(
    "",
    response_model=CommentCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit comment",
)
async def submit_comment(
    request: Request,
    comment_service: CommentServiceDep,
    client_id: ClientIdDep,
    _status: StorageStatusDep,
) -> CommentCreatedResponse:
    """Submit a comment for moderation.

    Origin-checked, CAPTCHA-verified, rate limited per client and screened
    for spam and duplicates. Stored as ``pending``.
    """
    comment = await comment_service.submit_comment(
        await request.body(),
        client_id=client_id,
        origin=request.headers.get("origin"),
        referer=request.headers.get("referer"),
    )
    return CommentCreatedResponse(comment=comment)


@router.get("/health", summary="Comments storage health")
async def comments_health(comment_service: CommentServiceDep) -> ORJSONResponse:
    """Storage readiness and initialization metrics. 503 when offline."""
    storage_status, health = await comment_service.get_health()

    content: dict[str, object] = {
        "ready": storage_status.ready,
        "status": storage_status.state,
        "backend": storage_status.backend,
        "code": storage_status.error_code,
        "retryAfterSeconds": storage_status.retry_after_seconds,
        **storage_status.metrics.to_dict(),
    }
    if health is not None:
        content["storage"] = health.to_dict()

    return ORJSONResponse(
        status_code=(
            status.HTTP_200_OK
            if storage_status.ready
            else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content=content,
        headers=availability_headers(
            storage_status.ready,
            storage_status.error_code,
            storage_status.retry_after_seconds,
        ),
    )


@router.get("/audit", response_model=AuditListResponse, summary="Moderation audit")
async def list_audits(
    comment_service: CommentServiceDep,
    _admin: AdminDep,
    _status: StorageStatusDep,
    limit: Annotated[str | None, Query()] = None,
) -> AuditListResponse:
    """Most recent moderation actions, newest first (default 100, max 500)."""
    audits = await comment_service.list_audits(limit)
    return AuditListResponse(audits=audits)


@router.post(
    "/admin/session",
    response_model=AdminSessionResponse,
    summary="Issue admin session token",
)
async def create_admin_session(
    request: Request,
    comment_service: CommentServiceDep,
    _status: StorageStatusDep,
    session_key: Annotated[
        str | None, Header(alias="x-comments-admin-session-key")
    ] = None,
) -> AdminSessionResponse:
    """Mint a short-lived signed moderator token."""
    return comment_service.issue_admin_session(session_key, await request.body())


@router.patch(
    "/{comment_id}",
    response_model=StatusUpdateResponse,
    summary="Update comment status",
)
async def update_comment_status(
    comment_id: str,
    request: Request,
    comment_service: CommentServiceDep,
    admin: AdminDep,
    _status: StorageStatusDep,
) -> StatusUpdateResponse:
    """Approve, reject or return a comment to pending."""
    comment, moderation = await comment_service.update_status(
        comment_id, await request.body(), admin
    )
    return StatusUpdateResponse(comment=comment, moderation=moderation)


@router.delete(
    "/{comment_id}",
    response_model=ModerationResultResponse,
    summary="Delete comment",
)
async def delete_comment(
    comment_id: str,
    comment_service: CommentServiceDep,
    admin: AdminDep,
    _status: StorageStatusDep,
) -> ModerationResultResponse:
    """Delete a comment and its replies."""
    moderation = await comment_service.delete_comment(comment_id, admin)
    return ModerationResultResponse(moderation=moderation)


@router.post(
    "/{comment_id}/replies",
    response_model=ReplyCreatedResponse,
    summary="Reply to comment",
)
async def create_reply(
    comment_id: str,
    request: Request,
    comment_service: CommentServiceDep,
    admin: AdminDep,
    _status: StorageStatusDep,
) -> ReplyCreatedResponse:
    """Publish a moderator reply (approved immediately)."""
    reply = await comment_service.create_reply(
        comment_id, await request.body(), admin
    )
    return ReplyCreatedResponse(reply=reply)


@router.delete(
    "/{comment_id}/replies/{reply_id}",
    response_model=ModerationResultResponse,
    summary="Delete reply",
)
async def delete_reply(
    comment_id: str,
    reply_id: str,
    comment_service: CommentServiceDep,
    admin: AdminDep,
    _status: StorageStatusDep,
) -> ModerationResultResponse:
    """Remove a reply from a comment."""
    moderation = await comment_service.delete_reply(comment_id, reply_id, admin)
    return ModerationResultResponse(moderation=moderation)
