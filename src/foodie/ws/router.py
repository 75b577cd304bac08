"""WebSocket endpoint for the messaging namespace."""

import json
import uuid

import jwt
import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from foodie.auth.jwt import user_id_from_token
from foodie.cache.store import CacheStore
from foodie.dependencies import get_cache, get_fanout, get_session_factory
from foodie.ws.fanout import FanoutAdapter
from foodie.ws.gateway import MessagesGateway

logger = structlog.get_logger()

router = APIRouter()

AUTH_FAILED_CLOSE_CODE = 4001


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        return None
    return credentials.strip()


@router.websocket("/messages")
async def messages_endpoint(
    websocket: WebSocket,
    token: str | None = Query(None),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    cache: CacheStore = Depends(get_cache),
    fanout: FanoutAdapter = Depends(get_fanout),
) -> None:
    """Direct messaging socket.

    A verified access token is required, either as the ``token`` query
    parameter or as an ``Authorization: Bearer`` header.

    Protocol:
        Client -> Server:
            {"event": "sendMessage", "data": {"receiverId": 2, "content": "hi"}, "ref": "1"}
            {"event": "markAsRead", "data": {"senderId": 2}, "ref": "2"}
            {"event": "typing", "data": {"receiverId": 2, "isTyping": true}}
            {"event": "ping"}

        Server -> Client:
            {"event": "ack", "ref": "1", "for": "sendMessage", "success": true, "data": {...}}
            {"event": "newMessage", "data": {...}}
            {"event": "messagesRead", "data": {"readerId": 1}}
            {"event": "userTyping", "data": {"userId": 1, "isTyping": true}}
            {"event": "pong"}
            {"event": "error", "data": {"message": "..."}}
    """
    credentials = token or _bearer_token(websocket.headers.get("authorization"))
    if not credentials:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication required")
        return
    try:
        user_id = user_id_from_token(credentials)
    except jwt.InvalidTokenError as e:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=f"Authentication failed: {e}")
        return

    rooms = fanout.rooms
    conn_id = str(uuid.uuid4())
    await rooms.connect(websocket, conn_id, user_id)
    gateway = MessagesGateway(user_id, session_factory, cache, fanout)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON"}})
                continue

            event = frame.get("event") if isinstance(frame, dict) else None
            if not isinstance(event, str):
                await websocket.send_json({"event": "error", "data": {"message": "Frame needs an event name"}})
                continue

            if event == "ping":
                await websocket.send_json({"event": "pong"})
                continue

            if event not in gateway.events:
                await websocket.send_json({"event": "error", "data": {"message": f"Unknown event: {event}"}})
                continue

            data = frame.get("data")
            result = await gateway.handle(event, {} if data is None else data)
            await websocket.send_json({"event": "ack", "ref": frame.get("ref"), "for": event, **result})

    except WebSocketDisconnect:
        await rooms.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await rooms.disconnect(conn_id)
