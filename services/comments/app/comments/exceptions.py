# Domain exceptions raised by the comments service layer.
# HTTP controllers convert them to HTTPException; realtime handlers to {"error": ...}.


class LessonNotFoundError(Exception):
    def __init__(self, lesson_id) -> None:
        self.lesson_id = lesson_id
        super().__init__(f"Lesson {lesson_id} not found")


class CommentNotFoundError(Exception):
    def __init__(self, comment_id) -> None:
        self.comment_id = comment_id
        super().__init__(f"Comment {comment_id} not found")


class ReplyNotFoundError(Exception):
    def __init__(self, reply_id) -> None:
        self.reply_id = reply_id
        super().__init__(f"Reply {reply_id} not found")


class AuthorNotFoundError(Exception):
    """Raised when the token's user has no account row to attach the comment to."""

    def __init__(self, user_id) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class NotEnrolledError(Exception):
    """Raised when a user must be enrolled in the lesson's course to write."""

    def __init__(self, message: str = "You must be enrolled in this course to comment") -> None:
        super().__init__(message)


class NotAuthorError(Exception):
    """Raised when a user edits or deletes someone else's comment or reply."""

    def __init__(self, message: str = "You can only modify your own comments") -> None:
        super().__init__(message)


class CommentRateLimitError(Exception):
    """Raised when an author exceeds the per-window comment limit."""
