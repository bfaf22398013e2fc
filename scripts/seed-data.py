#!/usr/bin/env python3
"""
Seed a dev database with one course, two lessons and three users, then print
bearer tokens for them so the comments API and WebSocket can be tried by hand.
Run from repo root: python scripts/seed-data.py
Uses COMMENTS_DATABASE_URL and JWT_* from env or .env.
"""
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Repo root on path for shared and service imports
repo_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(repo_root / "shared"))
sys.path.insert(0, str(repo_root / "services" / "comments"))

from jose import jwt  # noqa: E402
from sqlalchemy import select  # noqa: E402

from app.config import Settings  # noqa: E402
from app.database import dispose_db, init_db  # noqa: E402
from app.models import Course, Enrollment, Lesson, User  # noqa: E402
from shared.auth.config import AuthSettings  # noqa: E402
from shared.constants import Role  # noqa: E402

_USERS = [
    ("Seed Student", "student@lms.local", Role.STUDENT),
    ("Seed Outsider", "outsider@lms.local", Role.STUDENT),
    ("Seed Instructor", "instructor@lms.local", Role.INSTRUCTOR),
]


def _token(user: User, auth: AuthSettings, hours: int = 12) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": str(user.user_id),
            "name": user.name,
            "email": user.email,
            "role": user.role.value,
            "iss": auth.issuer,
            "aud": auth.audience,
            "iat": now,
            "exp": now + timedelta(hours=hours),
        },
        auth.secret,
        algorithm=auth.algorithm,
    )


async def _get_or_create_user(session, name: str, email: str, role: Role) -> User:
    user = await session.scalar(select(User).where(User.email == email))
    if user is None:
        user = User(name=name, email=email, role=role)
        session.add(user)
        await session.flush()
    return user


async def seed_comments() -> None:
    settings = Settings()
    factory = init_db(settings.comments_database_url)
    try:
        async with factory() as session:
            users = [await _get_or_create_user(session, *spec) for spec in _USERS]
            student, _, instructor = users

            course = await session.scalar(select(Course).where(Course.title == "Seed Course"))
            if course is None:
                course = Course(title="Seed Course", instructor_id=instructor.user_id)
                session.add(course)
                await session.flush()
                session.add_all([
                    Lesson(course_id=course.course_id, title="Lesson 1", sort_order=1),
                    Lesson(course_id=course.course_id, title="Lesson 2", sort_order=2),
                    Enrollment(user_id=student.user_id, course_id=course.course_id),
                ])
                await session.flush()

            lessons = (
                await session.scalars(
                    select(Lesson).where(Lesson.course_id == course.course_id).order_by(Lesson.sort_order)
                )
            ).all()
            await session.commit()
    finally:
        await dispose_db()

    auth = AuthSettings()
    print(f"Course {course.course_id}")
    for lesson in lessons:
        print(f"  lesson {lesson.lesson_id}  {lesson.title}")
    for user in users:
        print(f"{user.role.value:<10} {user.email}\n  token: {_token(user, auth)}")


def main() -> None:
    asyncio.run(seed_comments())
    print("Seed done.")


if __name__ == "__main__":
    main()
