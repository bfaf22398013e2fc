"""Who may write comments on a lesson.

Top-level comments require an enrollment in the lesson's course for every
role. Replies require one only from students; instructors and admins may
reply on any course. Both the HTTP API and the realtime gateway go through
these checks via the comments service.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.comments.exceptions import (
    CommentNotFoundError,
    LessonNotFoundError,
    NotEnrolledError,
)
from app.models.comment import Comment
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.lesson import Lesson
from shared.constants import Role
from shared.models.user import CurrentUser


async def is_enrolled(db: AsyncSession, user_id: UUID, course_id: UUID) -> bool:
    result = await db.execute(
        select(Enrollment.enrollment_id).where(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id,
        )
    )
    return result.first() is not None


async def can_write(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    role: Role,
    *,
    staff_bypass: bool = True,
) -> bool:
    if staff_bypass and role != Role.STUDENT:
        return True
    return await is_enrolled(db, user_id, course_id)


async def ensure_can_comment(db: AsyncSession, lesson_id: UUID, user: CurrentUser) -> Lesson:
    """Return the lesson if ``user`` may post a top-level comment on it."""
    result = await db.execute(
        select(Lesson)
        .join(Course, Course.course_id == Lesson.course_id)
        .where(Lesson.lesson_id == lesson_id)
    )
    lesson = result.scalar_one_or_none()
    if lesson is None:
        raise LessonNotFoundError(lesson_id)
    if not await can_write(db, user.id, lesson.course_id, user.role, staff_bypass=False):
        raise NotEnrolledError()
    return lesson


async def ensure_can_reply(db: AsyncSession, comment_id: UUID, user: CurrentUser) -> Comment:
    """Return the parent comment if ``user`` may reply to it."""
    result = await db.execute(
        select(Comment, Lesson.course_id)
        .join(Lesson, Lesson.lesson_id == Comment.lesson_id)
        .where(Comment.comment_id == comment_id, Comment.is_active.is_(True))
    )
    row = result.first()
    if row is None:
        raise CommentNotFoundError(comment_id)
    comment, course_id = row
    if not await can_write(db, user.id, course_id, user.role):
        raise NotEnrolledError("You must be enrolled in this course to reply to this comment")
    return comment
