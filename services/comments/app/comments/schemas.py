"""Comments domain Pydantic V2 schemas.

Wire format is camelCase (``lessonId``, ``createdAt``); Python code uses the
snake_case field names. Shared by the HTTP API and the realtime gateway.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.comment import COMMENT_MAX_LENGTH, Comment, Reply
from shared.models.pagination import Pagination

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateCommentRequest(BaseModel):
    """Request body for a top-level comment on a lesson."""

    model_config = _CAMEL

    lesson_id: UUID = Field(description="Lesson the comment belongs to.")
    content: str = Field(
        ...,
        min_length=1,
        max_length=COMMENT_MAX_LENGTH,
        description="Comment text (max 1,000 chars).",
    )


class CreateReplyRequest(BaseModel):
    """Request body for a reply to an existing comment."""

    model_config = _CAMEL

    comment_id: UUID = Field(description="Parent comment.")
    content: str = Field(
        ...,
        min_length=1,
        max_length=COMMENT_MAX_LENGTH,
        description="Reply text (max 1,000 chars).",
    )


class UpdateCommentRequest(BaseModel):
    """Request body for editing a comment or reply (author only)."""

    model_config = _CAMEL

    content: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)
    is_active: bool | None = Field(
        default=None,
        description="Optional visibility toggle; omitted leaves it unchanged.",
    )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class AuthorSummary(BaseModel):
    model_config = _CAMEL

    id: UUID
    name: str
    profile_image: str | None = None


class ReplyResponse(BaseModel):
    model_config = _CAMEL

    id: UUID
    content: str
    comment_id: UUID
    user_id: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime
    user: AuthorSummary | None = None

    @classmethod
    def from_model(cls, reply: Reply) -> ReplyResponse:
        return cls(
            id=reply.reply_id,
            content=reply.content,
            comment_id=reply.comment_id,
            user_id=reply.user_id,
            is_active=reply.is_active,
            created_at=reply.created_at,
            updated_at=reply.updated_at,
            user=_author(reply.user),
        )


class CommentResponse(BaseModel):
    """A comment with its (active) replies, oldest reply first."""

    model_config = _CAMEL

    id: UUID
    content: str
    lesson_id: UUID
    user_id: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime
    user: AuthorSummary | None = None
    replies: list[ReplyResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, comment: Comment, *, with_replies: bool = True) -> CommentResponse:
        return cls(
            id=comment.comment_id,
            content=comment.content,
            lesson_id=comment.lesson_id,
            user_id=comment.user_id,
            is_active=comment.is_active,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            user=_author(comment.user),
            replies=[ReplyResponse.from_model(r) for r in comment.replies] if with_replies else [],
        )


class CommentThreadResponse(BaseModel):
    """One page of a lesson's comments, newest first."""

    comments: list[CommentResponse]
    pagination: Pagination


class CommentStatsResponse(BaseModel):
    model_config = _CAMEL

    comment_count: int
    reply_count: int
    total_count: int


def _author(user) -> AuthorSummary | None:
    if user is None:
        return None
    return AuthorSummary(id=user.user_id, name=user.name, profile_image=user.profile_image)
