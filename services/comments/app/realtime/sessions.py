"""Session registry for realtime comment connections.

A connection exists only once its bearer token has been verified; failed
authentication never produces a session. The registry is created with the
application and injected into the gateway.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator

from shared.auth.config import AuthSettings
from shared.auth.dependencies import InvalidTokenError, decode_access_token
from shared.models.user import CurrentUser

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


class UnauthenticatedError(Exception):
    """Raised when a connection or message has no verified identity."""


class Connection:
    """One realtime socket: its identity and a bounded queue of outbound frames."""

    def __init__(self, identity: CurrentUser | None, *, outbox_size: int = 256) -> None:
        self.id = uuid.uuid4().hex
        self.identity = identity
        self.closed = False
        self._outbox: asyncio.Queue[dict | None] = asyncio.Queue(maxsize=outbox_size)

    @property
    def user_id(self):
        return self.identity.id if self.identity else None

    def push(self, frame: dict) -> bool:
        """Queue a frame without waiting; False if closed or the client is too slow."""
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Outbox full for connection %s, dropping %s", self.id, frame.get("event"))
            return False
        return True

    def pending(self) -> list[dict]:
        """Drain queued frames without waiting (used by tests and shutdown)."""
        frames = []
        while not self._outbox.empty():
            frame = self._outbox.get_nowait()
            if frame is not None:
                frames.append(frame)
        return frames

    async def outgoing(self) -> AsyncIterator[dict]:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                return
            yield frame

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._outbox.put_nowait(None)
        except asyncio.QueueFull:
            # Writer is behind; make room for the stop marker
            self._outbox.get_nowait()
            self._outbox.put_nowait(None)


def extract_token(auth_token: str | None, authorization: str | None) -> str | None:
    """Handshake token first, then an ``Authorization: Bearer`` header."""
    if auth_token:
        return auth_token
    if authorization and authorization.lower().startswith(_BEARER_PREFIX):
        return authorization[len(_BEARER_PREFIX):].strip() or None
    return None


class SessionRegistry:
    def __init__(self, auth_settings: AuthSettings, *, outbox_size: int = 256) -> None:
        self._auth_settings = auth_settings
        self._outbox_size = outbox_size
        self._connections: dict[str, Connection] = {}

    def authenticate(self, token: str | None) -> CurrentUser:
        try:
            return decode_access_token(token, self._auth_settings)
        except InvalidTokenError as exc:
            raise UnauthenticatedError(str(exc)) from exc

    def open(self, identity: CurrentUser) -> Connection:
        connection = Connection(identity, outbox_size=self._outbox_size)
        self._connections[connection.id] = connection
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def identity_of(self, connection_id: str) -> CurrentUser | None:
        connection = self._connections.get(connection_id)
        return connection.identity if connection else None

    def close(self, connection_id: str) -> Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.close()
        return connection

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
