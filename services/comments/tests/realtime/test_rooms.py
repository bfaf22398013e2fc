import uuid

import pytest

from app.realtime.rooms import room_key
from app.realtime.sessions import UnauthenticatedError


def test_room_key() -> None:
    lesson_id = uuid.UUID("00000000-0000-0000-0000-000000000001")
    assert room_key(lesson_id) == "lesson_00000000-0000-0000-0000-000000000001"
    assert room_key(str(lesson_id)) == room_key(lesson_id)


def test_join_is_idempotent(registry, rooms, identity) -> None:
    connection = registry.open(identity(uuid.uuid4()))
    lesson_id = uuid.uuid4()

    rooms.join(connection.id, lesson_id)
    rooms.join(connection.id, lesson_id)

    assert rooms.members_of(lesson_id) == frozenset({connection.id})
    assert rooms.rooms_of(connection.id) == frozenset({room_key(lesson_id)})


def test_join_requires_authenticated_connection(registry, rooms) -> None:
    lesson_id = uuid.uuid4()
    with pytest.raises(UnauthenticatedError):
        rooms.join("not-a-connection", lesson_id)
    assert rooms.members_of(lesson_id) == frozenset()
    assert rooms.room_count() == 0


def test_leave_removes_empty_room(registry, rooms, identity) -> None:
    first = registry.open(identity(uuid.uuid4()))
    second = registry.open(identity(uuid.uuid4()))
    lesson_id = uuid.uuid4()
    rooms.join(first.id, lesson_id)
    rooms.join(second.id, lesson_id)

    rooms.leave(first.id, lesson_id)
    assert rooms.members_of(lesson_id) == frozenset({second.id})

    rooms.leave(second.id, lesson_id)
    rooms.leave(second.id, lesson_id)
    assert rooms.members_of(lesson_id) == frozenset()
    assert rooms.room_count() == 0
    assert rooms.rooms_of(second.id) == frozenset()


def test_remove_connection_leaves_every_room(registry, rooms, identity) -> None:
    connection = registry.open(identity(uuid.uuid4()))
    other = registry.open(identity(uuid.uuid4()))
    l1, l2 = uuid.uuid4(), uuid.uuid4()
    rooms.join(connection.id, l1)
    rooms.join(connection.id, l2)
    rooms.join(other.id, l2)

    rooms.remove_connection(connection.id)

    assert rooms.members_of(l1) == frozenset()
    assert rooms.members_of(l2) == frozenset({other.id})
    assert rooms.rooms_of(connection.id) == frozenset()
    assert rooms.room_count() == 1


def test_members_of_is_a_snapshot(registry, rooms, identity) -> None:
    connection = registry.open(identity(uuid.uuid4()))
    lesson_id = uuid.uuid4()
    rooms.join(connection.id, lesson_id)

    snapshot = rooms.members_of(lesson_id)
    rooms.leave(connection.id, lesson_id)
    assert snapshot == frozenset({connection.id})
