from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.api.deps import get_current_admin, get_notifier, get_official_identity
from tripdesk.core.errors import server_error_boundary
from tripdesk.db.session import get_db
from tripdesk.schemas.common import success
from tripdesk.schemas.support import CreateConversationRequest, SendMessageRequest
from tripdesk.services.official_identity import OfficialIdentity
from tripdesk.services.realtime import RealtimeNotifier
from tripdesk.services.support_chat import SupportChatService

router = APIRouter(dependencies=[Depends(get_current_admin)])


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    official: OfficialIdentity = Depends(get_official_identity),
    notifier: Optional[RealtimeNotifier] = Depends(get_notifier),
) -> SupportChatService:
    return SupportChatService(db, official, notifier)


@router.get("")
async def list_support_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    chat: SupportChatService = Depends(get_chat_service),
):
    """
    Admin inbox: support conversations, most recently updated first.
    """
    with server_error_boundary("support_conversations_list_failed", "Failed to fetch support conversations"):
        data = await chat.list_conversations(page, limit, status)
    return success("Support conversations fetched successfully", **data)


@router.post("")
async def create_support_conversation(
    request: CreateConversationRequest,
    chat: SupportChatService = Depends(get_chat_service),
):
    with server_error_boundary("support_conversation_create_failed", "Failed to create support conversation", user_id=request.userId):
        conversation = await chat.create_conversation(
            request.userId, request.reason, request.refId, request.initialMessage
        )
    return success("Support conversation created successfully", conversation=conversation)


@router.get("/{conversation_id}")
async def get_support_conversation(
    conversation_id: str,
    chat: SupportChatService = Depends(get_chat_service),
):
    with server_error_boundary("support_conversation_fetch_failed", "Failed to fetch support conversation", conversation_id=conversation_id):
        conversation = await chat.get_conversation_detail(conversation_id)
    return success("Support conversation fetched successfully", conversation=conversation)


@router.post("/{conversation_id}/messages")
async def send_support_message(
    conversation_id: str,
    request: SendMessageRequest,
    chat: SupportChatService = Depends(get_chat_service),
):
    with server_error_boundary("support_message_send_failed", "Failed to send message", conversation_id=conversation_id):
        message = await chat.send_admin_message(conversation_id, request.text)
    return success("Message sent successfully", message=message)


@router.post("/{conversation_id}/read")
async def mark_support_conversation_read(
    conversation_id: str,
    chat: SupportChatService = Depends(get_chat_service),
):
    with server_error_boundary("support_mark_read_failed", "Failed to mark messages as read", conversation_id=conversation_id):
        await chat.mark_read(conversation_id)
    return success("Messages marked as read", unreadCount=0)
