from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.api.deps import get_current_user, get_notifier, get_official_identity
from tripdesk.core.errors import server_error_boundary
from tripdesk.db.session import get_db
from tripdesk.models.user import User
from tripdesk.schemas.common import success
from tripdesk.schemas.support import SendMessageRequest
from tripdesk.services.official_identity import OfficialIdentity
from tripdesk.services.realtime import RealtimeNotifier
from tripdesk.services.support_chat import SupportChatService

router = APIRouter()


@router.get("/conversations")
async def list_my_support_conversations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    official: OfficialIdentity = Depends(get_official_identity),
):
    chat = SupportChatService(db, official)
    with server_error_boundary("user_support_conversations_failed", "Failed to fetch support conversations", user_id=str(user.id)):
        conversations = await chat.list_for_user(user.id)
    return success("Support conversations fetched successfully", conversations=conversations)


@router.post("/conversations/{conversation_id}/messages")
async def reply_to_support(
    conversation_id: str,
    request: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    official: OfficialIdentity = Depends(get_official_identity),
    notifier: Optional[RealtimeNotifier] = Depends(get_notifier),
):
    chat = SupportChatService(db, official, notifier)
    with server_error_boundary("user_support_message_failed", "Failed to send message", conversation_id=conversation_id):
        message = await chat.send_user_message(conversation_id, user.id, request.text)
    return success("Message sent successfully", message=message)
