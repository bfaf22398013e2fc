"""Fan-out of comment events to the connections in a lesson room.

Broadcasting never awaits: each recipient gets the frame queued on its own
outbox and a per-connection writer task delivers it. A slow client therefore
loses frames instead of stalling the room.
"""

import logging
from uuid import UUID

from app.comments.schemas import CommentResponse, ReplyResponse
from app.realtime.messages import event_frame
from app.realtime.rooms import RoomManager, room_key
from app.realtime.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class BroadcastDispatcher:
    def __init__(self, registry: SessionRegistry, rooms: RoomManager) -> None:
        self._registry = registry
        self._rooms = rooms

    def broadcast(self, lesson_id: UUID | str, event: str, payload: dict) -> int:
        """Queue ``event`` for every current member of the lesson room.

        Returns the number of connections the frame was queued for.
        """
        frame = event_frame(event, payload)
        delivered = 0
        for connection_id in self._rooms.members_of(lesson_id):
            connection = self._registry.get(connection_id)
            if connection is None:
                continue
            if connection.push(frame):
                delivered += 1
        logger.debug("Broadcast %s to %s: %d deliveries", event, room_key(lesson_id), delivered)
        return delivered

    def send_to(self, connection_id: str, event: str, payload: dict) -> bool:
        connection = self._registry.get(connection_id)
        if connection is None:
            return False
        return connection.push(event_frame(event, payload))

    # -- comment events ------------------------------------------------------

    def comment_added(self, lesson_id: UUID, comment: CommentResponse) -> int:
        return self.broadcast(lesson_id, "comment_added", {"comment": comment.model_dump(by_alias=True)})

    def reply_added(self, lesson_id: UUID, reply: ReplyResponse) -> int:
        return self.broadcast(lesson_id, "reply_added", {"reply": reply.model_dump(by_alias=True)})

    def comment_updated(self, lesson_id: UUID, comment: CommentResponse) -> int:
        return self.broadcast(lesson_id, "comment_updated", {"comment": comment.model_dump(by_alias=True)})

    def reply_updated(self, lesson_id: UUID, reply: ReplyResponse) -> int:
        return self.broadcast(lesson_id, "reply_updated", {"reply": reply.model_dump(by_alias=True)})

    def comment_deleted(self, lesson_id: UUID, comment_id: UUID) -> int:
        return self.broadcast(lesson_id, "comment_deleted", {"commentId": comment_id})

    def reply_deleted(self, lesson_id: UUID, reply_id: UUID) -> int:
        return self.broadcast(lesson_id, "reply_deleted", {"replyId": reply_id})
