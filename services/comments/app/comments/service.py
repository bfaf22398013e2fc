"""Comments service — pure business logic, no FastAPI imports.

Durable create / read / update / soft-delete for lesson comments and their
replies. Authorization runs inside the create operations so the HTTP API and
the realtime gateway enforce identical rules.

Redis (optional) backs a per-author rate limit:
    key: comments:rate:{user_id}  type: counter, TTL=window
Redis calls are best effort; an unavailable Redis never blocks a comment.
"""

import logging
from uuid import UUID

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.comments.access import ensure_can_comment, ensure_can_reply
from app.comments.exceptions import (
    AuthorNotFoundError,
    CommentNotFoundError,
    CommentRateLimitError,
    NotAuthorError,
    ReplyNotFoundError,
)
from app.models.comment import Comment, Reply
from app.models.user import User
from shared.models.pagination import Pagination
from shared.models.user import CurrentUser

logger = logging.getLogger(__name__)

_RATE_KEY = "comments:rate:{user_id}"


def _thread_options():
    """Loader options for a comment with its author and active replies."""
    return (
        selectinload(Comment.user),
        selectinload(Comment.replies.and_(Reply.is_active.is_(True))).selectinload(Reply.user),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _check_rate_limit(
    redis: aioredis.Redis | None, user_id: UUID, limit: int, window_secs: int
) -> None:
    if redis is None:
        return
    key = _RATE_KEY.format(user_id=user_id)
    try:
        count = await redis.incr(key)
        if count == 1:
            await redis.expire(key, window_secs)
    except RedisError:
        logger.warning("Comment rate limit skipped: Redis unavailable", exc_info=True)
        return
    if count > limit:
        raise CommentRateLimitError()


async def _get_author(db: AsyncSession, user: CurrentUser) -> User:
    author = await db.get(User, user.id)
    if author is None:
        raise AuthorNotFoundError(user.id)
    return author


async def _get_comment_row(db: AsyncSession, comment_id: UUID) -> Comment:
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise CommentNotFoundError(comment_id)
    return comment


async def _get_reply_row(db: AsyncSession, reply_id: UUID) -> Reply:
    reply = await db.get(Reply, reply_id)
    if reply is None:
        raise ReplyNotFoundError(reply_id)
    return reply


async def _load_reply(db: AsyncSession, reply_id: UUID) -> Reply:
    result = await db.execute(
        select(Reply)
        .options(selectinload(Reply.user))
        .where(Reply.reply_id == reply_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_comment(
    db: AsyncSession,
    lesson_id: UUID,
    user: CurrentUser,
    content: str,
    redis: aioredis.Redis | None = None,
    *,
    rate_limit: int = 10,
    rate_window_secs: int = 60,
) -> Comment:
    """Create a top-level comment. Raises LessonNotFoundError / NotEnrolledError."""
    await ensure_can_comment(db, lesson_id, user)
    author = await _get_author(db, user)
    await _check_rate_limit(redis, user.id, rate_limit, rate_window_secs)

    comment = Comment(lesson_id=lesson_id, user_id=user.id, content=content)
    comment.user = author
    comment.replies = []
    db.add(comment)
    await db.flush()
    return comment


async def create_reply(
    db: AsyncSession,
    comment_id: UUID,
    user: CurrentUser,
    content: str,
    redis: aioredis.Redis | None = None,
    *,
    rate_limit: int = 10,
    rate_window_secs: int = 60,
) -> tuple[Reply, UUID]:
    """Create a reply; returns it with the lesson id of the parent comment."""
    parent = await ensure_can_reply(db, comment_id, user)
    author = await _get_author(db, user)
    await _check_rate_limit(redis, user.id, rate_limit, rate_window_secs)

    reply = Reply(comment_id=parent.comment_id, user_id=user.id, content=content)
    reply.user = author
    db.add(reply)
    await db.flush()
    return reply, parent.lesson_id


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


async def get_thread(
    db: AsyncSession,
    lesson_id: UUID,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Comment], Pagination]:
    """Active comments of a lesson, newest first, each with its active replies."""
    base = select(Comment).where(
        Comment.lesson_id == lesson_id,
        Comment.is_active.is_(True),
    )
    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    result = await db.execute(
        base.options(*_thread_options())
        .order_by(Comment.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    comments = list(result.scalars().all())
    return comments, Pagination.build(page, limit, total or 0)


async def get_comment(db: AsyncSession, comment_id: UUID) -> Comment:
    result = await db.execute(
        select(Comment)
        .options(*_thread_options())
        .where(Comment.comment_id == comment_id)
        .execution_options(populate_existing=True)
    )
    comment = result.scalar_one_or_none()
    if comment is None:
        raise CommentNotFoundError(comment_id)
    return comment


async def get_comment_stats(db: AsyncSession, lesson_id: UUID) -> dict[str, int]:
    comment_count = await db.scalar(
        select(func.count(Comment.comment_id)).where(
            Comment.lesson_id == lesson_id,
            Comment.is_active.is_(True),
        )
    )
    reply_count = await db.scalar(
        select(func.count(Reply.reply_id))
        .join(Comment, Comment.comment_id == Reply.comment_id)
        .where(
            Comment.lesson_id == lesson_id,
            Comment.is_active.is_(True),
            Reply.is_active.is_(True),
        )
    )
    comment_count = comment_count or 0
    reply_count = reply_count or 0
    return {
        "comment_count": comment_count,
        "reply_count": reply_count,
        "total_count": comment_count + reply_count,
    }


async def reply_lesson_id(db: AsyncSession, reply: Reply) -> UUID:
    lesson_id = await db.scalar(
        select(Comment.lesson_id).where(Comment.comment_id == reply.comment_id)
    )
    if lesson_id is None:
        raise CommentNotFoundError(reply.comment_id)
    return lesson_id


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


async def update_comment(
    db: AsyncSession,
    comment_id: UUID,
    user_id: UUID,
    content: str,
    is_active: bool | None = None,
) -> Comment:
    comment = await _get_comment_row(db, comment_id)
    if comment.user_id != user_id:
        raise NotAuthorError("You can only update your own comments")
    comment.content = content
    if is_active is not None:
        comment.is_active = is_active
    await db.flush()
    return await get_comment(db, comment_id)


async def update_reply(
    db: AsyncSession,
    reply_id: UUID,
    user_id: UUID,
    content: str,
    is_active: bool | None = None,
) -> Reply:
    reply = await _get_reply_row(db, reply_id)
    if reply.user_id != user_id:
        raise NotAuthorError("You can only update your own replies")
    reply.content = content
    if is_active is not None:
        reply.is_active = is_active
    await db.flush()
    return await _load_reply(db, reply_id)


# ---------------------------------------------------------------------------
# Soft delete
# ---------------------------------------------------------------------------


async def soft_delete_comment(db: AsyncSession, comment: Comment) -> None:
    """Deactivate a comment and every reply under it; rows are kept."""
    comment.is_active = False
    await db.execute(
        update(Reply)
        .where(Reply.comment_id == comment.comment_id)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.flush()


async def soft_delete_reply(db: AsyncSession, reply: Reply) -> None:
    reply.is_active = False
    await db.flush()


async def delete_comment(db: AsyncSession, comment_id: UUID, user_id: UUID) -> UUID:
    """Author-only soft delete with reply cascade; returns the lesson id."""
    comment = await _get_comment_row(db, comment_id)
    if comment.user_id != user_id:
        raise NotAuthorError("You can only delete your own comments")
    await soft_delete_comment(db, comment)
    return comment.lesson_id


async def delete_reply(db: AsyncSession, reply_id: UUID, user_id: UUID) -> UUID:
    """Author-only soft delete of a reply; returns the lesson id of its thread."""
    reply = await _get_reply_row(db, reply_id)
    if reply.user_id != user_id:
        raise NotAuthorError("You can only delete your own replies")
    await soft_delete_reply(db, reply)
    return await reply_lesson_id(db, reply)
