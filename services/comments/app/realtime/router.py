"""WebSocket endpoint for the "comments" channel.

Handshake: ``/api/v1/ws/comments?token=<jwt>`` or an ``Authorization: Bearer``
header. An invalid token closes the socket with 1008 before it is accepted.

Frames from one socket, text or binary, are handled strictly in order.
Everything sent to the client (acks and room broadcasts) goes through the
connection's outbox and is written by a single writer task.
"""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.realtime.gateway import CommentsGateway
from app.realtime.sessions import Connection, UnauthenticatedError, extract_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


async def _write_outbox(websocket: WebSocket, connection: Connection) -> None:
    try:
        async for frame in connection.outgoing():
            await websocket.send_json(frame)
    except (WebSocketDisconnect, RuntimeError):
        logger.debug("Writer for %s stopped: socket closed", connection.id)


@router.websocket("/ws/comments")
async def comments_socket(websocket: WebSocket) -> None:
    gateway: CommentsGateway = websocket.app.state.gateway
    token = extract_token(
        websocket.query_params.get("token"),
        websocket.headers.get("authorization"),
    )
    try:
        connection = gateway.connect(token)
    except UnauthenticatedError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    writer = asyncio.create_task(_write_outbox(websocket, connection))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            # Text and binary frames both carry JSON
            raw = message.get("text") or message.get("bytes") or ""
            ack = await gateway.handle(connection, raw)
            connection.push(ack)
    except WebSocketDisconnect:
        pass
    finally:
        gateway.disconnect(connection.id)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
