"""
Realtime fan-out over websockets.

Connections join named rooms (`user:<id>` for app users, `admin_support` for
the admin inbox). Emitting never raises into the caller: a send that fails
drops the socket and is logged.
"""

import asyncio
from collections import defaultdict
from typing import Dict, Optional, Protocol, Set

import structlog
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = structlog.get_logger()

ADMIN_SUPPORT_ROOM = "admin_support"

EVENT_MESSAGE_NEW = "message:new"
EVENT_CHAT_UPDATE = "chat:update"
EVENT_ADMIN_MESSAGE_NEW = "admin_support:message:new"
EVENT_ADMIN_CHAT_UPDATE = "admin_support:chat:update"


def user_room(user_id) -> str:
    return f"user:{user_id}"


class RealtimeNotifier(Protocol):
    async def emit_to_room(self, room: str, event: str, payload: dict) -> None:
        ...


class RoomBroadcaster:
    """In-process room registry for websocket connections."""

    def __init__(self):
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def join(self, room: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._rooms[room].add(websocket)
        logger.debug("realtime_room_joined", room=room, members=self.member_count(room))

    async def leave(self, room: str, websocket: WebSocket) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self._rooms[room]

    def member_count(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def emit_to_room(self, room: str, event: str, payload: dict) -> None:
        frame = {"type": event, "data": jsonable_encoder(payload)}
        async with self._lock:
            members = list(self._rooms.get(room, ()))

        for websocket in members:
            try:
                await websocket.send_json(frame)
            except Exception as e:
                logger.warning("realtime_send_failed", room=room, event_name=event, error=str(e))
                await self.leave(room, websocket)


async def publish_support_message(
    notifier: Optional[RealtimeNotifier],
    conversation_id,
    user_id,
    official_id,
    message: dict,
) -> None:
    """
    Emit a newly appended support message to the user's room and the admin
    support room. Failures are logged only.
    """
    if notifier is None:
        return

    text = message.get("text")
    timestamp = message.get("timestamp")
    try:
        room = user_room(user_id)
        await notifier.emit_to_room(room, EVENT_MESSAGE_NEW, {
            "chatId": conversation_id,
            "message": message,
        })
        await notifier.emit_to_room(room, EVENT_CHAT_UPDATE, {
            "chatId": conversation_id,
            "lastMessage": text,
            "timestamp": timestamp,
        })

        await notifier.emit_to_room(ADMIN_SUPPORT_ROOM, EVENT_ADMIN_MESSAGE_NEW, {
            "chatId": conversation_id,
            "message": message,
            "userId": str(user_id),
            "otherUserId": str(official_id),
        })
        await notifier.emit_to_room(ADMIN_SUPPORT_ROOM, EVENT_ADMIN_CHAT_UPDATE, {
            "chatId": conversation_id,
            "lastMessage": text,
            "timestamp": timestamp,
            "userId": str(user_id),
        })
    except Exception as e:
        logger.warning("support_message_emit_failed", conversation_id=str(conversation_id), error=str(e))
