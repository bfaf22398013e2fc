"""Comments controller — orchestration between router, service and realtime fan-out.

Writes run as a unit of work through ``run_in_session``, the same path the
realtime gateway uses: stale prepared statements are retried on a fresh
connection, and the broadcast to the lesson room happens only after commit.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

from fastapi import HTTPException, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.comments import service
from app.comments.exceptions import (
    AuthorNotFoundError,
    CommentNotFoundError,
    CommentRateLimitError,
    LessonNotFoundError,
    NotAuthorError,
    NotEnrolledError,
    ReplyNotFoundError,
)
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
from app.realtime.dispatcher import BroadcastDispatcher
from shared.database.retry import run_in_session
from shared.models.user import CurrentUser

T = TypeVar("T")

SessionFactory = async_sessionmaker[AsyncSession]


def _handle_domain_error(exc: Exception) -> HTTPException:
    if isinstance(exc, LessonNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found.")
    if isinstance(exc, CommentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found.")
    if isinstance(exc, ReplyNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reply not found.")
    if isinstance(exc, AuthorNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    if isinstance(exc, (NotEnrolledError, NotAuthorError)):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, CommentRateLimitError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many comments. Please slow down.",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error.")


_DOMAIN_ERRORS = (
    LessonNotFoundError,
    CommentNotFoundError,
    ReplyNotFoundError,
    AuthorNotFoundError,
    NotEnrolledError,
    NotAuthorError,
    CommentRateLimitError,
)


async def _write(
    session_factory: SessionFactory,
    settings: Settings,
    work: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    try:
        return await run_in_session(
            session_factory,
            work,
            attempts=settings.db_retry_attempts,
            base_delay=settings.db_retry_base_delay_secs,
        )
    except _DOMAIN_ERRORS as exc:
        raise _handle_domain_error(exc) from exc


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_comment(
    payload: CreateCommentRequest,
    user: CurrentUser,
    session_factory: SessionFactory,
    dispatcher: BroadcastDispatcher,
    settings: Settings,
    redis: Redis | None = None,
) -> CommentResponse:
    async def work(db: AsyncSession) -> CommentResponse:
        comment = await service.create_comment(
            db,
            payload.lesson_id,
            user,
            payload.content,
            redis,
            rate_limit=settings.comment_rate_limit,
            rate_window_secs=settings.comment_rate_window_secs,
        )
        return CommentResponse.from_model(comment)

    response = await _write(session_factory, settings, work)
    dispatcher.comment_added(response.lesson_id, response)
    return response


async def create_reply(
    payload: CreateReplyRequest,
    user: CurrentUser,
    session_factory: SessionFactory,
    dispatcher: BroadcastDispatcher,
    settings: Settings,
    redis: Redis | None = None,
) -> ReplyResponse:
    async def work(db: AsyncSession) -> tuple[ReplyResponse, UUID]:
        reply, lesson_id = await service.create_reply(
            db,
            payload.comment_id,
            user,
            payload.content,
            redis,
            rate_limit=settings.comment_rate_limit,
            rate_window_secs=settings.comment_rate_window_secs,
        )
        return ReplyResponse.from_model(reply), lesson_id

    response, lesson_id = await _write(session_factory, settings, work)
    dispatcher.reply_added(lesson_id, response)
    return response


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


async def get_thread(
    lesson_id: UUID, db: AsyncSession, page: int = 1, limit: int = 20
) -> CommentThreadResponse:
    comments, pagination = await service.get_thread(db, lesson_id, page=page, limit=limit)
    return CommentThreadResponse(
        comments=[CommentResponse.from_model(c) for c in comments],
        pagination=pagination,
    )


async def get_comment_stats(lesson_id: UUID, db: AsyncSession) -> CommentStatsResponse:
    stats = await service.get_comment_stats(db, lesson_id)
    return CommentStatsResponse(**stats)


async def get_comment(comment_id: UUID, db: AsyncSession) -> CommentResponse:
    try:
        comment = await service.get_comment(db, comment_id)
    except _DOMAIN_ERRORS as exc:
        raise _handle_domain_error(exc) from exc
    return CommentResponse.from_model(comment)


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


async def update_comment(
    comment_id: UUID,
    payload: UpdateCommentRequest,
    user: CurrentUser,
    session_factory: SessionFactory,
    dispatcher: BroadcastDispatcher,
    settings: Settings,
) -> CommentResponse:
    async def work(db: AsyncSession) -> CommentResponse:
        comment = await service.update_comment(
            db, comment_id, user.id, payload.content, payload.is_active
        )
        return CommentResponse.from_model(comment)

    response = await _write(session_factory, settings, work)
    dispatcher.comment_updated(response.lesson_id, response)
    return response


async def update_reply(
    reply_id: UUID,
    payload: UpdateCommentRequest,
    user: CurrentUser,
    session_factory: SessionFactory,
    dispatcher: BroadcastDispatcher,
    settings: Settings,
) -> ReplyResponse:
    async def work(db: AsyncSession) -> tuple[ReplyResponse, UUID]:
        reply = await service.update_reply(
            db, reply_id, user.id, payload.content, payload.is_active
        )
        lesson_id = await service.reply_lesson_id(db, reply)
        return ReplyResponse.from_model(reply), lesson_id

    response, lesson_id = await _write(session_factory, settings, work)
    dispatcher.reply_updated(lesson_id, response)
    return response


async def delete_comment(
    comment_id: UUID,
    user: CurrentUser,
    session_factory: SessionFactory,
    dispatcher: BroadcastDispatcher,
    settings: Settings,
) -> None:
    async def work(db: AsyncSession) -> UUID:
        return await service.delete_comment(db, comment_id, user.id)

    lesson_id = await _write(session_factory, settings, work)
    dispatcher.comment_deleted(lesson_id, comment_id)


async def delete_reply(
    reply_id: UUID,
    user: CurrentUser,
    session_factory: SessionFactory,
    dispatcher: BroadcastDispatcher,
    settings: Settings,
) -> None:
    async def work(db: AsyncSession) -> UUID:
        return await service.delete_reply(db, reply_id, user.id)

    lesson_id = await _write(session_factory, settings, work)
    dispatcher.reply_deleted(lesson_id, reply_id)
