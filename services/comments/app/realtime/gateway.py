"""Comments gateway: handles one inbound realtime frame at a time.

Every handler returns a result dict (``{"success": True, ...}`` or
``{"error": ...}``) that the transport sends back as the ack. A failing
message never closes the connection and never broadcasts; only a bad token
at connect time does that.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.comments import service
from app.comments.exceptions import (
    AuthorNotFoundError,
    CommentNotFoundError,
    CommentRateLimitError,
    LessonNotFoundError,
    NotEnrolledError,
)
from app.comments.schemas import CommentResponse, CommentThreadResponse, ReplyResponse
from app.config import Settings
from app.realtime.dispatcher import BroadcastDispatcher
from app.realtime.messages import (
    GetComments,
    JoinLesson,
    LeaveLesson,
    MessageValidationError,
    NewComment,
    NewReply,
    ack_frame,
    error,
    ok,
    parse_message,
)
from app.realtime.rooms import RoomManager
from app.realtime.sessions import Connection, SessionRegistry, UnauthenticatedError
from shared.database.retry import run_in_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNAUTHORIZED = "Unauthorized"

_CLIENT_ERRORS = (
    LessonNotFoundError,
    CommentNotFoundError,
    AuthorNotFoundError,
    NotEnrolledError,
    CommentRateLimitError,
)


def _client_error_message(exc: Exception) -> str:
    if isinstance(exc, LessonNotFoundError):
        return "Lesson not found"
    if isinstance(exc, CommentNotFoundError):
        return "Comment not found"
    if isinstance(exc, AuthorNotFoundError):
        return "User not found"
    if isinstance(exc, CommentRateLimitError):
        return "Too many comments. Please slow down."
    return str(exc)


class CommentsGateway:
    def __init__(
        self,
        registry: SessionRegistry,
        rooms: RoomManager,
        dispatcher: BroadcastDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        redis: Redis | None = None,
    ) -> None:
        self.registry = registry
        self.rooms = rooms
        self.dispatcher = dispatcher
        self._session_factory = session_factory
        self._settings = settings
        self._redis = redis

    # -- lifecycle -----------------------------------------------------------

    def connect(self, token: str | None) -> Connection:
        """Authenticate the handshake token and register the connection.

        Raises UnauthenticatedError; the caller must then drop the socket.
        """
        try:
            identity = self.registry.authenticate(token)
        except UnauthenticatedError:
            logger.info("Rejected realtime connection: invalid or missing token")
            raise
        connection = self.registry.open(identity)
        logger.info("User %s (%s) connected as %s", identity.name, identity.id, connection.id)
        return connection

    def disconnect(self, connection_id: str) -> None:
        self.rooms.remove_connection(connection_id)
        connection = self.registry.close(connection_id)
        if connection is not None:
            logger.info("User %s disconnected (%s)", connection.user_id, connection_id)

    # -- dispatch ------------------------------------------------------------

    async def handle(self, connection: Connection, raw: str | bytes | dict) -> dict:
        """Process one inbound frame and return the ack frame for the sender."""
        try:
            message = parse_message(raw)
        except MessageValidationError as exc:
            return ack_frame(exc.event, exc.ref, error(str(exc), details=exc.details))

        if self.registry.identity_of(connection.id) is None:
            return ack_frame(message.event, message.ref, error(UNAUTHORIZED))

        if isinstance(message, JoinLesson):
            result = self._join_lesson(connection, message)
        elif isinstance(message, LeaveLesson):
            result = self._leave_lesson(connection, message)
        elif isinstance(message, NewComment):
            result = await self._new_comment(connection, message)
        elif isinstance(message, NewReply):
            result = await self._new_reply(connection, message)
        else:
            result = await self._get_comments(connection, message)
        return ack_frame(message.event, message.ref, result)

    # -- handlers ------------------------------------------------------------

    def _join_lesson(self, connection: Connection, message: JoinLesson) -> dict:
        lesson_id = message.data.lesson_id
        try:
            self.rooms.join(connection.id, lesson_id)
        except UnauthenticatedError:
            return error(UNAUTHORIZED)
        logger.debug("User %s joined lesson %s", connection.user_id, lesson_id)
        return ok(lessonId=lesson_id)

    def _leave_lesson(self, connection: Connection, message: LeaveLesson) -> dict:
        lesson_id = message.data.lesson_id
        self.rooms.leave(connection.id, lesson_id)
        logger.debug("User %s left lesson %s", connection.user_id, lesson_id)
        return ok(lessonId=lesson_id)

    async def _new_comment(self, connection: Connection, message: NewComment) -> dict:
        identity = connection.identity
        data = message.data

        async def work(db: AsyncSession) -> CommentResponse:
            comment = await service.create_comment(
                db,
                data.lesson_id,
                identity,
                data.content,
                self._redis,
                rate_limit=self._settings.comment_rate_limit,
                rate_window_secs=self._settings.comment_rate_window_secs,
            )
            return CommentResponse.from_model(comment)

        try:
            comment = await self._run(work)
        except _CLIENT_ERRORS as exc:
            logger.info("new_comment rejected for %s: %s", identity.id, exc)
            return error(_client_error_message(exc))
        except Exception:
            logger.exception("Error creating comment on lesson %s", data.lesson_id)
            return error("Failed to create comment")

        self.dispatcher.comment_added(comment.lesson_id, comment)
        return ok(comment=comment.model_dump(by_alias=True))

    async def _new_reply(self, connection: Connection, message: NewReply) -> dict:
        identity = connection.identity
        data = message.data

        async def work(db: AsyncSession) -> tuple[ReplyResponse, object]:
            reply, lesson_id = await service.create_reply(
                db,
                data.comment_id,
                identity,
                data.content,
                self._redis,
                rate_limit=self._settings.comment_rate_limit,
                rate_window_secs=self._settings.comment_rate_window_secs,
            )
            return ReplyResponse.from_model(reply), lesson_id

        try:
            reply, lesson_id = await self._run(work)
        except _CLIENT_ERRORS as exc:
            logger.info("new_reply rejected for %s: %s", identity.id, exc)
            return error(_client_error_message(exc))
        except Exception:
            logger.exception("Error creating reply to comment %s", data.comment_id)
            return error("Failed to create reply")

        if data.lesson_id is not None and data.lesson_id != lesson_id:
            logger.warning(
                "new_reply lessonId %s does not match comment's lesson %s", data.lesson_id, lesson_id
            )
        self.dispatcher.reply_added(lesson_id, reply)
        return ok(reply=reply.model_dump(by_alias=True))

    async def _get_comments(self, connection: Connection, message: GetComments) -> dict:
        data = message.data

        async def work(db: AsyncSession) -> CommentThreadResponse:
            comments, pagination = await service.get_thread(
                db, data.lesson_id, page=data.page, limit=data.limit
            )
            return CommentThreadResponse(
                comments=[CommentResponse.from_model(c) for c in comments],
                pagination=pagination,
            )

        try:
            thread = await self._run(work)
        except Exception:
            logger.exception("Error fetching comments for lesson %s", data.lesson_id)
            return error("Failed to fetch comments")

        payload = thread.model_dump(by_alias=True)
        self.dispatcher.send_to(connection.id, "comments_loaded", payload)
        return ok(**payload)

    async def _run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        return await run_in_session(
            self._session_factory,
            work,
            attempts=self._settings.db_retry_attempts,
            base_delay=self._settings.db_retry_base_delay_secs,
        )
