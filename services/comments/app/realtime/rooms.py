"""Lesson rooms: which connections follow which lesson's comment stream.

Every mutation is a single synchronous step, so interleaved handlers on the
event loop never observe a half-updated membership.
"""

import logging
from uuid import UUID

from app.realtime.sessions import SessionRegistry, UnauthenticatedError

logger = logging.getLogger(__name__)


def room_key(lesson_id: UUID | str) -> str:
    return f"lesson_{lesson_id}"


class RoomManager:
    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        self._members: dict[str, set[str]] = {}
        self._rooms_by_connection: dict[str, set[str]] = {}

    def join(self, connection_id: str, lesson_id: UUID | str) -> str:
        if self._registry.identity_of(connection_id) is None:
            raise UnauthenticatedError("Connection is not authenticated")
        key = room_key(lesson_id)
        self._members.setdefault(key, set()).add(connection_id)
        self._rooms_by_connection.setdefault(connection_id, set()).add(key)
        logger.debug("Connection %s joined %s", connection_id, key)
        return key

    def leave(self, connection_id: str, lesson_id: UUID | str) -> str:
        key = room_key(lesson_id)
        self._discard(connection_id, key)
        rooms = self._rooms_by_connection.get(connection_id)
        if rooms is not None:
            rooms.discard(key)
            if not rooms:
                del self._rooms_by_connection[connection_id]
        logger.debug("Connection %s left %s", connection_id, key)
        return key

    def members_of(self, lesson_id: UUID | str) -> frozenset[str]:
        return frozenset(self._members.get(room_key(lesson_id), ()))

    def rooms_of(self, connection_id: str) -> frozenset[str]:
        return frozenset(self._rooms_by_connection.get(connection_id, ()))

    def remove_connection(self, connection_id: str) -> None:
        for key in self._rooms_by_connection.pop(connection_id, set()):
            self._discard(connection_id, key)

    def room_count(self) -> int:
        return len(self._members)

    def _discard(self, connection_id: str, key: str) -> None:
        members = self._members.get(key)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._members[key]
