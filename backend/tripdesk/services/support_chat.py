"""
Support Chat Service.

Conversations between an ordinary user and the official account:
- find-or-create per (user, reason, reference)
- append-only messages (one INSERT per message plus one UPDATE on the
  conversation row)
- read receipts for messages the admin side has seen
- listing/formatting for the admin inbox and the user app
"""

import asyncio
import math
import uuid
from typing import List, Optional

import structlog
from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.core.errors import (
    AuthorizationError,
    InvalidArgumentError,
    NotFoundError,
    ValidationError,
    parse_uuid,
)
from tripdesk.core.time_utils import get_utc_now, format_utc, as_utc
from tripdesk.db.upsert import insert_ignore
from tripdesk.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
    ConversationType,
    SupportReason,
    ref_key,
)
from tripdesk.models.user import User
from tripdesk.services.media_service import generate_signed_url
from tripdesk.services.official_identity import OfficialIdentity
from tripdesk.services.realtime import RealtimeNotifier, publish_support_message

logger = structlog.get_logger()

VALID_REASONS = {reason.value for reason in SupportReason}


def clean_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Message text is required")
    return text.strip()


def format_message(message: ConversationMessage) -> dict:
    return {
        "_id": str(message.id),
        "sender": str(message.sender_id),
        "text": message.text,
        "timestamp": format_utc(message.timestamp),
        "seen": message.seen,
    }


def sort_messages(messages: List[ConversationMessage]) -> List[ConversationMessage]:
    # Display order is by timestamp then id, whatever order rows come back in
    return sorted(messages, key=lambda m: (as_utc(m.timestamp), str(m.id)))


async def format_user_summary(user: User) -> dict:
    profile_pic = user.profile_pic
    if user.profile_pic_storage_key:
        profile_pic = await generate_signed_url(user.profile_pic_storage_key, "PROFILE") or user.profile_pic
    return {
        "_id": str(user.id),
        "fullName": user.full_name,
        "profilePic": profile_pic,
        "email": user.email,
        "username": user.username,
    }


class SupportChatService:
    def __init__(
        self,
        session: AsyncSession,
        official: OfficialIdentity,
        notifier: Optional[RealtimeNotifier] = None,
    ):
        self.session = session
        self.official = official
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Lookup / creation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_reason(reason: str) -> str:
        if reason not in VALID_REASONS:
            raise InvalidArgumentError('Invalid reason. Must be "trip_verification" or "support"')
        return reason

    async def _require_user(self, user_id) -> User:
        try:
            user_uuid = parse_uuid(user_id, "userId")
        except ValidationError:
            raise InvalidArgumentError("Invalid userId provided")
        user = await self.session.get(User, user_uuid)
        if user is None:
            raise InvalidArgumentError("Invalid userId provided")
        return user

    async def _find(self, user_id: uuid.UUID, reason: str, ref_id: Optional[uuid.UUID]) -> Optional[Conversation]:
        stmt = select(Conversation).where(
            Conversation.type == ConversationType.ADMIN_SUPPORT,
            Conversation.user_id == user_id,
            Conversation.official_id == self.official.id,
            Conversation.related_type == reason,
        )
        if ref_id is not None:
            stmt = stmt.where(Conversation.related_ref_id == ref_id)
        stmt = stmt.order_by(Conversation.updated_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id, reason: str, ref_id=None) -> Conversation:
        """
        Return the support conversation for (user, reason, ref_id), creating
        it when absent. Without ref_id the most recently active conversation
        for the reason is used.
        """
        user = await self._require_user(user_id)
        reason = self._validate_reason(reason)
        ref_uuid = parse_uuid(ref_id, "refId") if ref_id else None

        conversation = await self._find(user.id, reason, ref_uuid)
        if conversation:
            logger.debug("support_conversation_found", conversation_id=str(conversation.id), user_id=str(user.id))
            return conversation

        now = get_utc_now()
        await insert_ignore(
            self.session,
            Conversation,
            {
                "id": uuid.uuid4(),
                "type": ConversationType.ADMIN_SUPPORT,
                "user_id": user.id,
                "official_id": self.official.id,
                "related_type": reason,
                "related_ref_id": ref_uuid,
                "related_ref_key": ref_key(ref_uuid),
                "status": ConversationStatus.OPEN.value,
                "created_at": now,
                "updated_at": now,
            },
            ["user_id", "official_id", "type", "related_type", "related_ref_key"],
        )
        await self.session.commit()

        conversation = await self._find(user.id, reason, ref_uuid)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        logger.info("support_conversation_created", conversation_id=str(conversation.id), user_id=str(user.id), reason=reason)
        return conversation

    async def find_by_trip_visit(self, visit_id) -> Optional[Conversation]:
        visit_uuid = parse_uuid(visit_id, "tripVisitId")
        stmt = select(Conversation).where(
            Conversation.type == ConversationType.ADMIN_SUPPORT,
            Conversation.related_type == SupportReason.TRIP_VERIFICATION.value,
            Conversation.related_ref_id == visit_uuid,
        ).order_by(Conversation.updated_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_support_conversation(self, conversation_id) -> Conversation:
        conversation_uuid = parse_uuid(conversation_id, "conversation ID")
        conversation = await self.session.get(Conversation, conversation_uuid)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if conversation.type != ConversationType.ADMIN_SUPPORT:
            raise NotFoundError("Not a support conversation")
        return conversation

    async def set_status(self, conversation_id, status: str) -> None:
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(status=status, updated_at=get_utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _message_by_dedupe_key(self, dedupe_key: str) -> Optional[ConversationMessage]:
        result = await self.session.execute(
            select(ConversationMessage).where(ConversationMessage.dedupe_key == dedupe_key)
        )
        return result.scalar_one_or_none()

    async def _append(
        self,
        conversation: Conversation,
        sender_id: uuid.UUID,
        text: str,
        next_status: ConversationStatus,
        dedupe_key: Optional[str] = None,
    ) -> ConversationMessage:
        now = get_utc_now()

        if dedupe_key:
            existing = await self._message_by_dedupe_key(dedupe_key)
            if existing:
                logger.debug("support_message_deduplicated", dedupe_key=dedupe_key)
                return existing
            await insert_ignore(
                self.session,
                ConversationMessage,
                {
                    "id": uuid.uuid4(),
                    "conversation_id": conversation.id,
                    "sender_id": sender_id,
                    "text": text,
                    "timestamp": now,
                    "seen": False,
                    "dedupe_key": dedupe_key,
                },
                ["dedupe_key"],
            )
        else:
            message = ConversationMessage(
                conversation_id=conversation.id,
                sender_id=sender_id,
                text=text,
                timestamp=now,
                seen=False,
            )
            self.session.add(message)
            await self.session.flush()

        # Resolved conversations keep their status
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values(
                last_message_at=now,
                updated_at=now,
                status=case(
                    (Conversation.status == ConversationStatus.RESOLVED.value, Conversation.status),
                    else_=next_status.value,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(conversation)

        if dedupe_key:
            message = await self._message_by_dedupe_key(dedupe_key)
        return message

    async def append_system_message(self, conversation_id, text, dedupe_key: Optional[str] = None) -> ConversationMessage:
        """
        Append a message authored by the official account.
        """
        conversation_uuid = parse_uuid(conversation_id, "conversation ID")
        text = clean_text(text)
        conversation = await self.get_support_conversation(conversation_uuid)

        message = await self._append(
            conversation, self.official.id, text, ConversationStatus.WAITING_USER, dedupe_key
        )
        logger.info("support_system_message_sent", conversation_id=str(conversation.id), message_id=str(message.id))
        return message

    async def append_user_message(self, conversation_id, user_id, text) -> ConversationMessage:
        conversation_uuid = parse_uuid(conversation_id, "conversation ID")
        text = clean_text(text)
        conversation = await self.get_support_conversation(conversation_uuid)
        if conversation.user_id != parse_uuid(user_id, "userId"):
            raise AuthorizationError("Not a participant of this conversation")

        message = await self._append(
            conversation, conversation.user_id, text, ConversationStatus.WAITING_ADMIN
        )
        logger.info("support_user_message_sent", conversation_id=str(conversation.id), message_id=str(message.id))
        return message

    async def list_messages(self, conversation_id: uuid.UUID) -> List[ConversationMessage]:
        result = await self.session.execute(
            select(ConversationMessage)
            .where(ConversationMessage.conversation_id == conversation_id)
            .order_by(ConversationMessage.timestamp.asc(), ConversationMessage.id.asc())
        )
        return sort_messages(list(result.scalars().all()))

    async def mark_read(self, conversation_id) -> int:
        """
        Flip `seen` on every unseen message not authored by the official
        account. Returns the number of flipped messages; nothing is written
        when there is nothing to flip.
        """
        conversation = await self.get_support_conversation(conversation_id)
        result = await self.session.execute(
            update(ConversationMessage)
            .where(
                ConversationMessage.conversation_id == conversation.id,
                ConversationMessage.sender_id != self.official.id,
                ConversationMessage.seen.is_(False),
            )
            .values(seen=True)
            .execution_options(synchronize_session=False)
        )
        flipped = result.rowcount or 0
        if flipped:
            await self.session.commit()
            logger.debug("support_messages_marked_read", conversation_id=str(conversation.id), count=flipped)
        return flipped

    # ------------------------------------------------------------------
    # Admin inbox
    # ------------------------------------------------------------------

    async def list_conversations(self, page: int = 1, limit: int = 20, status: Optional[str] = None) -> dict:
        page = max(int(page), 1)
        limit = max(int(limit), 1)
        skip = (page - 1) * limit

        # Conversations whose user row is gone are skipped by the inner join
        filters = [Conversation.type == ConversationType.ADMIN_SUPPORT]
        if status:
            filters.append(Conversation.status == status)

        total = (await self.session.execute(
            select(func.count(Conversation.id))
            .join(User, User.id == Conversation.user_id)
            .where(*filters)
        )).scalar_one()

        rows = (await self.session.execute(
            select(Conversation, User)
            .join(User, User.id == Conversation.user_id)
            .where(*filters)
            .order_by(Conversation.updated_at.desc())
            .offset(skip)
            .limit(limit)
        )).all()
        conversation_ids = [conversation.id for conversation, _ in rows]

        last_messages = {}
        unread_counts = {}
        if conversation_ids:
            # Latest by timestamp; id breaks ties the same way display order does
            ranked = (
                select(
                    ConversationMessage.id.label("message_id"),
                    func.row_number().over(
                        partition_by=ConversationMessage.conversation_id,
                        order_by=(ConversationMessage.timestamp.desc(), ConversationMessage.id.desc()),
                    ).label("position"),
                )
                .where(ConversationMessage.conversation_id.in_(conversation_ids))
                .subquery()
            )
            result = await self.session.execute(
                select(ConversationMessage)
                .join(ranked, ConversationMessage.id == ranked.c.message_id)
                .where(ranked.c.position == 1)
            )
            for message in result.scalars().all():
                last_messages[message.conversation_id] = message

            # Unread = unseen messages written by the user
            result = await self.session.execute(
                select(ConversationMessage.conversation_id, func.count())
                .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
                .where(
                    ConversationMessage.conversation_id.in_(conversation_ids),
                    ConversationMessage.seen.is_(False),
                    ConversationMessage.sender_id == Conversation.user_id,
                )
                .group_by(ConversationMessage.conversation_id)
            )
            unread_counts = {conversation_id: count for conversation_id, count in result.all()}

        users = await asyncio.gather(*(format_user_summary(user) for _, user in rows))

        conversations = []
        for (conversation, _), user in zip(rows, users):
            last_message = last_messages.get(conversation.id)
            conversations.append({
                "_id": str(conversation.id),
                "user": user,
                "lastMessage": {
                    "text": last_message.text,
                    "timestamp": format_utc(last_message.timestamp),
                    "sender": str(last_message.sender_id),
                } if last_message else None,
                "reason": conversation.related_type or SupportReason.SUPPORT.value,
                "refId": str(conversation.related_ref_id) if conversation.related_ref_id else None,
                "status": conversation.status,
                "unreadCount": unread_counts.get(conversation.id, 0),
                "updatedAt": format_utc(conversation.updated_at),
                "createdAt": format_utc(conversation.created_at),
            })

        return {
            "conversations": conversations,
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total / limit),
                "total": total,
                "hasNextPage": skip + limit < total,
                "limit": limit,
            },
        }

    async def _format_detail(self, conversation: Conversation, user: User) -> dict:
        messages = await self.list_messages(conversation.id)
        return {
            "_id": str(conversation.id),
            "user": await format_user_summary(user),
            "participants": [str(p) for p in conversation.participants],
            "messages": [format_message(m) for m in messages],
            "reason": conversation.related_type or SupportReason.SUPPORT.value,
            "refId": str(conversation.related_ref_id) if conversation.related_ref_id else None,
            "status": conversation.status,
            "updatedAt": format_utc(conversation.updated_at),
            "createdAt": format_utc(conversation.created_at),
        }

    async def get_conversation_detail(self, conversation_id) -> dict:
        conversation = await self.get_support_conversation(conversation_id)
        user = await self.session.get(User, conversation.user_id)
        if user is None:
            logger.warning("support_conversation_user_missing", conversation_id=str(conversation.id))
            raise NotFoundError("User not found for this conversation")
        return await self._format_detail(conversation, user)

    async def send_admin_message(self, conversation_id, text) -> dict:
        """
        Append an official message and push it to the user and admin rooms.
        """
        message = await self.append_system_message(conversation_id, text)
        conversation = await self.session.get(Conversation, message.conversation_id)
        payload = format_message(message)
        await publish_support_message(
            self.notifier, str(conversation.id), conversation.user_id, self.official.id, payload
        )
        return payload

    async def create_conversation(self, user_id, reason: str = "support", ref_id=None, initial_message: Optional[str] = None) -> dict:
        if not user_id:
            raise ValidationError("Valid userId is required")
        try:
            user_uuid = parse_uuid(user_id, "userId")
        except ValidationError:
            raise ValidationError("Valid userId is required")
        self._validate_reason(reason or SupportReason.SUPPORT.value)

        user = await self.session.get(User, user_uuid)
        if user is None:
            raise NotFoundError("User not found")

        conversation = await self.get_or_create(user.id, reason or SupportReason.SUPPORT.value, ref_id)

        if initial_message and initial_message.strip():
            await self.send_admin_message(conversation.id, initial_message)

        return await self._format_detail(conversation, user)

    # ------------------------------------------------------------------
    # User app
    # ------------------------------------------------------------------

    async def list_for_user(self, user_id) -> List[dict]:
        user = await self._require_user(user_id)
        result = await self.session.execute(
            select(Conversation)
            .where(
                Conversation.type == ConversationType.ADMIN_SUPPORT,
                Conversation.user_id == user.id,
            )
            .order_by(Conversation.updated_at.desc())
        )
        return [await self._format_detail(conversation, user) for conversation in result.scalars().all()]

    async def send_user_message(self, conversation_id, user_id, text) -> dict:
        message = await self.append_user_message(conversation_id, user_id, text)
        payload = format_message(message)
        await publish_support_message(
            self.notifier, str(message.conversation_id), message.sender_id, self.official.id, payload
        )
        return payload
