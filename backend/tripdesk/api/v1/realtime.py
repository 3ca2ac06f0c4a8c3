from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from tripdesk.api.deps import active_admin, active_user, read_token
from tripdesk.core import security
from tripdesk.core.errors import AppError, AuthorizationError
from tripdesk.db.session import get_db
from tripdesk.services.realtime import ADMIN_SUPPORT_ROOM, user_room

router = APIRouter()
logger = structlog.get_logger()


async def room_for_token(db: AsyncSession, token: str) -> str:
    """
    Room for the token's principal. The admin or user must exist and be
    active, same as for the HTTP routes.
    """
    token_data = read_token(token)
    if token_data.scope == security.SCOPE_ADMIN:
        await active_admin(db, token_data)
        return ADMIN_SUPPORT_ROOM
    if token_data.scope == security.SCOPE_USER:
        user = await active_user(db, token_data)
        return user_room(user.id)
    raise AuthorizationError(f"Unsupported scope {token_data.scope}")


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Admin tokens join the admin support room, user tokens their own room.
    Inbound frames are ignored apart from keeping the connection open.
    """
    try:
        room = await room_for_token(db, token)
    except AppError as e:
        logger.warning("realtime_auth_failed", error=e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    finally:
        await db.close()

    broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    await broadcaster.join(room, websocket)
    await websocket.send_json({"type": "connected", "data": {"room": room}})
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.leave(room, websocket)
        logger.debug("realtime_room_left", room=room, members=broadcaster.member_count(room))
