# Import all models so Alembic can discover them via Base.metadata
from .comment import Comment, Reply
from .course import Course
from .enrollment import Enrollment
from .lesson import Lesson
from .user import User

__all__ = [
    "Comment",
    "Course",
    "Enrollment",
    "Lesson",
    "Reply",
    "User",
]
