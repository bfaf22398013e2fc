"""Comments router — all /api/v1/comments endpoints.

Zero business logic — delegates entirely to controller. Every endpoint
requires a bearer token.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.comments import controller
from app.comments.schemas import (
    CommentResponse,
    CommentStatsResponse,
    CommentThreadResponse,
    CreateCommentRequest,
    CreateReplyRequest,
    ReplyResponse,
    UpdateCommentRequest,
)
from app.config import Settings
from app.database import get_db, get_session_factory
from app.dependencies import get_current_user, get_dispatcher, get_redis, get_settings
from app.realtime.dispatcher import BroadcastDispatcher
from shared.models.user import CurrentUser

router = APIRouter(prefix="/comments", tags=["Comments"])

_404 = {"description": "Lesson, comment or reply not found"}
_403 = {"description": "Not enrolled, or not the author"}
_429 = {"description": "Rate limit exceeded"}


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a lesson",
    description=(
        "Create a top-level comment (max 1,000 chars). The author must be enrolled "
        "in the lesson's course. Broadcasts `comment_added` to the lesson room."
    ),
    responses={404: _404, 403: _403, 429: _429},
)
async def create_comment(
    payload: CreateCommentRequest,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
    redis: Redis | None = Depends(get_redis),
) -> CommentResponse:
    return await controller.create_comment(payload, user, session_factory, dispatcher, settings, redis)


@router.post(
    "/replies",
    response_model=ReplyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reply to a comment",
    description=(
        "Students must be enrolled in the course; instructors and admins may reply "
        "anywhere. Broadcasts `reply_added` to the lesson room."
    ),
    responses={404: _404, 403: _403, 429: _429},
)
async def create_reply(
    payload: CreateReplyRequest,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
    redis: Redis | None = Depends(get_redis),
) -> ReplyResponse:
    return await controller.create_reply(payload, user, session_factory, dispatcher, settings, redis)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get(
    "/lesson/{lesson_id}",
    response_model=CommentThreadResponse,
    summary="List a lesson's comments",
    description="Active comments newest first, each with its active replies oldest first.",
)
async def get_thread(
    lesson_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CommentThreadResponse:
    return await controller.get_thread(lesson_id, db, page=page, limit=limit)


@router.get(
    "/lesson/{lesson_id}/stats",
    response_model=CommentStatsResponse,
    summary="Comment and reply counts for a lesson",
)
async def get_comment_stats(
    lesson_id: UUID,
    _: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CommentStatsResponse:
    return await controller.get_comment_stats(lesson_id, db)


@router.get(
    "/{comment_id}",
    response_model=CommentResponse,
    summary="Get a comment with its replies",
    responses={404: _404},
)
async def get_comment(
    comment_id: UUID,
    _: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    return await controller.get_comment(comment_id, db)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


@router.patch(
    "/replies/{reply_id}",
    response_model=ReplyResponse,
    summary="Edit a reply",
    description="Author-only. Broadcasts `reply_updated` to the lesson room.",
    responses={404: _404, 403: _403},
)
async def update_reply(
    reply_id: UUID,
    payload: UpdateCommentRequest,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> ReplyResponse:
    return await controller.update_reply(
        reply_id, payload, user, session_factory, dispatcher, settings
    )


@router.patch(
    "/{comment_id}",
    response_model=CommentResponse,
    summary="Edit a comment",
    description="Author-only. Broadcasts `comment_updated` to the lesson room.",
    responses={404: _404, 403: _403},
)
async def update_comment(
    comment_id: UUID,
    payload: UpdateCommentRequest,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> CommentResponse:
    return await controller.update_comment(
        comment_id, payload, user, session_factory, dispatcher, settings
    )


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


@router.delete(
    "/replies/{reply_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a reply",
    description="Author-only soft delete. Broadcasts `reply_deleted` to the lesson room.",
    responses={404: _404, 403: _403},
)
async def delete_reply(
    reply_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> None:
    await controller.delete_reply(reply_id, user, session_factory, dispatcher, settings)


@router.delete(
    "/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a comment",
    description=(
        "Author-only soft delete; all replies are deactivated with it. "
        "Broadcasts `comment_deleted` to the lesson room."
    ),
    responses={404: _404, 403: _403},
)
async def delete_comment(
    comment_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> None:
    await controller.delete_comment(comment_id, user, session_factory, dispatcher, settings)
