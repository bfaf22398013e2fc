import asyncio
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError

from app.comments import service
from app.models import Comment, Reply
from app.realtime.sessions import UnauthenticatedError
from shared.constants import Role


def _frame(event: str, ref: str | None = None, **data) -> dict:
    return {"event": event, "data": data, "ref": ref}


def _events(connection) -> list[str]:
    return [frame["event"] for frame in connection.pending()]


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


def _stale_statement() -> DBAPIError:
    return DBAPIError(
        "SELECT 1",
        {},
        Exception('prepared statement "__asyncpg_stmt_a__" does not exist'),
    )


# ---------------------------------------------------------------------------
# Connect / rooms
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_connect_rejects_bad_tokens(gateway, seed, make_token) -> None:
    for token in (None, "garbage", make_token(seed.student_id, expires_in=-1)):
        with pytest.raises(UnauthenticatedError):
            gateway.connect(token)
    assert len(gateway.registry) == 0


@pytest.mark.asyncio
async def test_join_and_leave(gateway, seed, make_token) -> None:
    connection = gateway.connect(make_token(seed.student_id))
    lesson = str(seed.lesson_id)

    ack = await gateway.handle(connection, _frame("join_lesson", "1", lessonId=lesson))
    assert ack == {"type": "ack", "event": "join_lesson", "ref": "1", "data": {"success": True, "lessonId": lesson}}
    await gateway.handle(connection, _frame("join_lesson", lessonId=lesson))
    assert gateway.rooms.members_of(seed.lesson_id) == frozenset({connection.id})

    ack = await gateway.handle(connection, _frame("leave_lesson", lessonId=lesson))
    assert ack["data"] == {"success": True, "lessonId": lesson}
    assert gateway.rooms.members_of(seed.lesson_id) == frozenset()


@pytest.mark.asyncio
async def test_messages_after_disconnect_are_unauthorized(gateway, seed, make_token, session_factory) -> None:
    connection = gateway.connect(make_token(seed.student_id))
    gateway.disconnect(connection.id)

    ack = await gateway.handle(connection, _frame("join_lesson", lessonId=str(seed.lesson_id)))
    assert ack["data"] == {"error": "Unauthorized"}
    assert gateway.rooms.members_of(seed.lesson_id) == frozenset()

    ack = await gateway.handle(connection, _frame("new_comment", lessonId=str(seed.lesson_id), content="hi"))
    assert ack["data"] == {"error": "Unauthorized"}
    assert await _count(session_factory, Comment) == 0


@pytest.mark.asyncio
async def test_disconnect_removes_from_all_rooms(gateway, seed, make_token) -> None:
    leaving = gateway.connect(make_token(seed.student_id))
    staying = gateway.connect(make_token(seed.student_id))
    for lesson_id in (seed.lesson_id, seed.other_lesson_id):
        await gateway.handle(leaving, _frame("join_lesson", lessonId=str(lesson_id)))
    await gateway.handle(staying, _frame("join_lesson", lessonId=str(seed.lesson_id)))

    gateway.disconnect(leaving.id)
    gateway.disconnect(leaving.id)

    assert gateway.dispatcher.broadcast(seed.lesson_id, "comment_deleted", {"commentId": "x"}) == 1
    assert gateway.dispatcher.broadcast(seed.other_lesson_id, "comment_deleted", {"commentId": "x"}) == 0
    assert leaving.pending() == []


# ---------------------------------------------------------------------------
# new_comment / new_reply
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_new_comment_broadcasts_once_to_the_lesson_room(gateway, seed, make_token) -> None:
    author = gateway.connect(make_token(seed.student_id, name="Ada Student"))
    watcher = gateway.connect(make_token(seed.instructor_id, Role.INSTRUCTOR))
    elsewhere = gateway.connect(make_token(seed.student_id))
    await gateway.handle(author, _frame("join_lesson", lessonId=str(seed.lesson_id)))
    await gateway.handle(watcher, _frame("join_lesson", lessonId=str(seed.lesson_id)))
    await gateway.handle(elsewhere, _frame("join_lesson", lessonId=str(seed.other_lesson_id)))

    ack = await gateway.handle(
        author, _frame("new_comment", "7", lessonId=str(seed.lesson_id), content="Great shake!")
    )

    assert ack["ref"] == "7"
    result = ack["data"]
    assert result["success"] is True
    assert result["comment"]["content"] == "Great shake!"
    assert result["comment"]["lessonId"] == str(seed.lesson_id)
    assert result["comment"]["userId"] == str(seed.student_id)

    author_frames = author.pending()
    watcher_frames = watcher.pending()
    assert [f["event"] for f in author_frames] == ["comment_added"]
    assert [f["event"] for f in watcher_frames] == ["comment_added"]
    assert elsewhere.pending() == []

    pushed = watcher_frames[0]["data"]["comment"]
    assert pushed == result["comment"]
    assert pushed["replies"] == []
    assert pushed["user"]["name"] == "Ada Student"


@pytest.mark.asyncio
async def test_new_comment_from_unenrolled_student(gateway, seed, make_token, session_factory) -> None:
    outsider = gateway.connect(make_token(seed.outsider_id))
    watcher = gateway.connect(make_token(seed.student_id))
    await gateway.handle(watcher, _frame("join_lesson", lessonId=str(seed.lesson_id)))

    ack = await gateway.handle(outsider, _frame("new_comment", lessonId=str(seed.lesson_id), content="Let me in"))

    assert ack["data"] == {"error": "You must be enrolled in this course to comment"}
    assert watcher.pending() == []
    assert await _count(session_factory, Comment) == 0


@pytest.mark.asyncio
async def test_new_comment_unknown_lesson(gateway, seed, make_token) -> None:
    connection = gateway.connect(make_token(seed.student_id))
    ack = await gateway.handle(connection, _frame("new_comment", lessonId=str(uuid.uuid4()), content="hi"))
    assert ack["data"] == {"error": "Lesson not found"}


@pytest.mark.asyncio
async def test_overlong_content_never_reaches_the_store(gateway, seed, make_token, monkeypatch) -> None:
    calls = []

    async def _spy(*args, **kwargs):
        calls.append(args)

    monkeypatch.setattr(service, "create_comment", _spy)
    for user_id in (seed.student_id, seed.outsider_id):
        connection = gateway.connect(make_token(user_id))
        ack = await gateway.handle(
            connection, _frame("new_comment", lessonId=str(seed.lesson_id), content="x" * 1001)
        )
        assert ack["event"] == "new_comment"
        assert ack["data"]["error"] == "Invalid message"
        assert ack["data"]["details"]
    assert calls == []


@pytest.mark.asyncio
async def test_new_reply_goes_to_the_parent_comment_room(gateway, seed, make_token) -> None:
    student = gateway.connect(make_token(seed.student_id))
    instructor = gateway.connect(make_token(seed.instructor_id, Role.INSTRUCTOR))
    await gateway.handle(student, _frame("join_lesson", lessonId=str(seed.lesson_id)))
    created = await gateway.handle(student, _frame("new_comment", lessonId=str(seed.lesson_id), content="Q?"))
    comment_id = created["data"]["comment"]["id"]
    student.pending()

    # lessonId sent by the client is wrong; the persisted comment decides the room
    ack = await gateway.handle(
        instructor,
        _frame("new_reply", commentId=comment_id, content="A.", lessonId=str(seed.other_lesson_id)),
    )

    assert ack["data"]["success"] is True
    assert ack["data"]["reply"]["commentId"] == comment_id
    frames = student.pending()
    assert [f["event"] for f in frames] == ["reply_added"]
    assert frames[0]["data"]["reply"]["content"] == "A."


@pytest.mark.asyncio
async def test_new_reply_enrollment_rules(gateway, seed, make_token, session_factory) -> None:
    student = gateway.connect(make_token(seed.student_id))
    outsider = gateway.connect(make_token(seed.outsider_id))
    created = await gateway.handle(student, _frame("new_comment", lessonId=str(seed.lesson_id), content="Q?"))
    comment_id = created["data"]["comment"]["id"]

    ack = await gateway.handle(outsider, _frame("new_reply", commentId=comment_id, content="me?"))
    assert ack["data"] == {"error": "You must be enrolled in this course to reply to this comment"}

    ack = await gateway.handle(student, _frame("new_reply", commentId=str(uuid.uuid4()), content="?"))
    assert ack["data"] == {"error": "Comment not found"}
    assert await _count(session_factory, Reply) == 0


# ---------------------------------------------------------------------------
# get_comments
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_comments_answers_the_sender_only(gateway, seed, make_token) -> None:
    asker = gateway.connect(make_token(seed.student_id))
    bystander = gateway.connect(make_token(seed.student_id))
    await gateway.handle(bystander, _frame("join_lesson", lessonId=str(seed.lesson_id)))
    await gateway.handle(asker, _frame("new_comment", lessonId=str(seed.lesson_id), content="one"))
    await gateway.handle(asker, _frame("new_comment", lessonId=str(seed.lesson_id), content="two"))
    bystander.pending()

    ack = await gateway.handle(asker, _frame("get_comments", lessonId=str(seed.lesson_id), limit=1))

    assert ack["data"]["success"] is True
    assert ack["data"]["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert len(ack["data"]["comments"]) == 1
    frames = asker.pending()
    assert [f["event"] for f in frames] == ["comments_loaded"]
    assert frames[0]["data"]["pagination"]["total"] == 2
    assert bystander.pending() == []


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transient_store_error_is_retried(gateway, seed, make_token, monkeypatch, session_factory) -> None:
    real_create = service.create_comment
    attempts = []

    async def _flaky(db, *args, **kwargs):
        attempts.append(1)
        if len(attempts) == 1:
            raise _stale_statement()
        return await real_create(db, *args, **kwargs)

    monkeypatch.setattr(service, "create_comment", _flaky)
    connection = gateway.connect(make_token(seed.student_id))
    await gateway.handle(connection, _frame("join_lesson", lessonId=str(seed.lesson_id)))

    ack = await gateway.handle(connection, _frame("new_comment", lessonId=str(seed.lesson_id), content="again"))

    assert ack["data"]["success"] is True
    assert len(attempts) == 2
    assert _events(connection) == ["comment_added"]
    assert await _count(session_factory, Comment) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_report_failure_without_broadcast(gateway, seed, make_token, monkeypatch) -> None:
    attempts = []

    async def _broken(*args, **kwargs):
        attempts.append(1)
        raise _stale_statement()

    monkeypatch.setattr(service, "create_comment", _broken)
    connection = gateway.connect(make_token(seed.student_id))
    await gateway.handle(connection, _frame("join_lesson", lessonId=str(seed.lesson_id)))

    ack = await gateway.handle(connection, _frame("new_comment", lessonId=str(seed.lesson_id), content="x"))

    assert ack["data"] == {"error": "Failed to create comment"}
    assert len(attempts) == 3
    assert connection.pending() == []


@pytest.mark.asyncio
async def test_disconnect_does_not_cancel_in_flight_comment(gateway, seed, make_token, monkeypatch) -> None:
    real_create = service.create_comment
    started = asyncio.Event()
    release = asyncio.Event()

    async def _slow(db, *args, **kwargs):
        started.set()
        await release.wait()
        return await real_create(db, *args, **kwargs)

    monkeypatch.setattr(service, "create_comment", _slow)
    author = gateway.connect(make_token(seed.student_id))
    watcher = gateway.connect(make_token(seed.student_id))
    for connection in (author, watcher):
        await gateway.handle(connection, _frame("join_lesson", lessonId=str(seed.lesson_id)))

    pending = asyncio.create_task(
        gateway.handle(author, _frame("new_comment", lessonId=str(seed.lesson_id), content="bye"))
    )
    await started.wait()
    gateway.disconnect(author.id)
    release.set()
    ack = await pending

    assert ack["data"]["success"] is True
    assert _events(watcher) == ["comment_added"]
    assert author.pending() == []
