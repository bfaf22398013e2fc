import uuid
from datetime import datetime, timezone

from sqlalchemy import TIMESTAMP, Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database.postgres import Base

COMMENT_MAX_LENGTH = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Comment(Base):
    __tablename__ = "comments"

    comment_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("lessons.lesson_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(String(COMMENT_MAX_LENGTH), nullable=False)
    # Soft delete flag; replies follow their parent
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    user = relationship("User", lazy="raise")
    replies: Mapped[list["Reply"]] = relationship(
        "Reply",
        back_populates="comment",
        order_by="Reply.created_at",
        lazy="raise",
    )

    __table_args__ = (
        Index("ix_comments_lesson_id_created_at", "lesson_id", "created_at"),
        Index("ix_comments_user_id", "user_id"),
    )


class Reply(Base):
    __tablename__ = "replies"

    reply_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    comment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("comments.comment_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(String(COMMENT_MAX_LENGTH), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    user = relationship("User", lazy="raise")
    comment: Mapped[Comment] = relationship("Comment", back_populates="replies", lazy="raise")

    __table_args__ = (
        Index("ix_replies_comment_id", "comment_id"),
        Index("ix_replies_user_id", "user_id"),
    )
