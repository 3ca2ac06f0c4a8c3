import unittest
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, func

from tests.support import DatabaseTestCase
from tripdesk.core.errors import AuthorizationError, InvalidArgumentError, NotFoundError, ValidationError
from tripdesk.models import Conversation, ConversationMessage, ConversationStatus, ConversationType
from tripdesk.services.realtime import (
    ADMIN_SUPPORT_ROOM,
    EVENT_ADMIN_CHAT_UPDATE,
    EVENT_ADMIN_MESSAGE_NEW,
    EVENT_CHAT_UPDATE,
    EVENT_MESSAGE_NEW,
    user_room,
)
from tripdesk.services.support_chat import SupportChatService


class TestConversationLookup(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.user = await self.make_user()
        self.chat = SupportChatService(self.session, self.official, self.notifier)

    async def test_get_or_create_is_idempotent(self):
        ref_id = uuid.uuid4()
        first = await self.chat.get_or_create(self.user.id, "trip_verification", ref_id)
        second = await self.chat.get_or_create(str(self.user.id), "trip_verification", str(ref_id))

        self.assertEqual(first.id, second.id)
        self.assertEqual(first.type, ConversationType.ADMIN_SUPPORT)
        self.assertEqual(first.participants, [self.user.id, self.official.id])
        self.assertEqual(first.status, ConversationStatus.OPEN.value)

        count = (await self.session.execute(select(func.count()).select_from(Conversation))).scalar_one()
        self.assertEqual(count, 1)

    async def test_different_reference_gets_its_own_conversation(self):
        first = await self.chat.get_or_create(self.user.id, "trip_verification", uuid.uuid4())
        second = await self.chat.get_or_create(self.user.id, "trip_verification", uuid.uuid4())
        self.assertNotEqual(first.id, second.id)

    async def test_without_reference_reuses_latest_for_reason(self):
        created = await self.chat.get_or_create(self.user.id, "support")
        again = await self.chat.get_or_create(self.user.id, "support")
        self.assertEqual(created.id, again.id)
        self.assertIsNone(created.related_ref_id)

    async def test_rejects_unknown_user(self):
        with self.assertRaises(InvalidArgumentError):
            await self.chat.get_or_create(uuid.uuid4(), "support")
        with self.assertRaises(InvalidArgumentError):
            await self.chat.get_or_create("not-a-uuid", "support")

    async def test_rejects_unknown_reason(self):
        with self.assertRaises(InvalidArgumentError) as ctx:
            await self.chat.get_or_create(self.user.id, "billing")
        self.assertIsInstance(ctx.exception, ValidationError)

    async def test_find_by_trip_visit(self):
        visit_id = uuid.uuid4()
        self.assertIsNone(await self.chat.find_by_trip_visit(visit_id))
        created = await self.chat.get_or_create(self.user.id, "trip_verification", visit_id)
        found = await self.chat.find_by_trip_visit(visit_id)
        self.assertEqual(found.id, created.id)


class TestMessageAppend(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.user = await self.make_user()
        self.chat = SupportChatService(self.session, self.official, self.notifier)
        self.conversation = await self.chat.get_or_create(self.user.id, "support")

    async def test_blank_text_is_rejected_and_nothing_written(self):
        for text in ("", "   ", "\n\t"):
            with self.assertRaises(ValidationError):
                await self.chat.append_system_message(self.conversation.id, text)

        await self.session.refresh(self.conversation)
        self.assertIsNone(self.conversation.last_message_at)
        self.assertEqual(self.conversation.status, ConversationStatus.OPEN.value)
        self.assertEqual(await self.chat.list_messages(self.conversation.id), [])

    async def test_system_message_updates_conversation(self):
        message = await self.chat.append_system_message(self.conversation.id, "  Hello there  ")

        self.assertEqual(message.text, "Hello there")
        self.assertEqual(message.sender_id, self.official.id)
        self.assertFalse(message.seen)

        await self.session.refresh(self.conversation)
        self.assertEqual(self.conversation.status, ConversationStatus.WAITING_USER.value)
        self.assertIsNotNone(self.conversation.last_message_at)

    async def test_resolved_status_is_kept(self):
        await self.chat.set_status(self.conversation.id, ConversationStatus.RESOLVED.value)
        await self.chat.append_system_message(self.conversation.id, "Follow-up")

        await self.session.refresh(self.conversation)
        self.assertEqual(self.conversation.status, ConversationStatus.RESOLVED.value)

    async def test_dedupe_key_appends_once(self):
        first = await self.chat.append_system_message(self.conversation.id, "Approved", dedupe_key="k1")
        second = await self.chat.append_system_message(self.conversation.id, "Approved", dedupe_key="k1")

        self.assertEqual(first.id, second.id)
        self.assertEqual(len(await self.chat.list_messages(self.conversation.id)), 1)

    async def test_missing_or_direct_conversation(self):
        with self.assertRaises(NotFoundError):
            await self.chat.append_system_message(uuid.uuid4(), "hi")
        with self.assertRaises(ValidationError):
            await self.chat.append_system_message("bogus", "hi")

        direct = Conversation(
            type=ConversationType.DIRECT,
            user_id=self.user.id,
            official_id=self.official.id,
            related_type="support",
            related_ref_key="direct",
        )
        self.session.add(direct)
        await self.session.commit()
        with self.assertRaises(NotFoundError):
            await self.chat.append_system_message(direct.id, "hi")

    async def test_user_message_marks_waiting_admin(self):
        await self.chat.append_user_message(self.conversation.id, self.user.id, "I have a question")
        await self.session.refresh(self.conversation)
        self.assertEqual(self.conversation.status, ConversationStatus.WAITING_ADMIN.value)

    async def test_user_message_from_stranger_is_forbidden(self):
        stranger = await self.make_user()
        with self.assertRaises(AuthorizationError):
            await self.chat.append_user_message(self.conversation.id, stranger.id, "hello")

    async def test_messages_display_oldest_first(self):
        # Inserted newest first
        await self.add_message(self.conversation, self.user.id, "third", minutes_ago=1)
        await self.add_message(self.conversation, self.official.id, "first", minutes_ago=30)
        await self.add_message(self.conversation, self.user.id, "second", minutes_ago=10)

        messages = await self.chat.list_messages(self.conversation.id)
        self.assertEqual([m.text for m in messages], ["first", "second", "third"])

        detail = await self.chat.get_conversation_detail(self.conversation.id)
        self.assertEqual([m["text"] for m in detail["messages"]], ["first", "second", "third"])

    async def test_send_admin_message_emits_to_user_and_admin_rooms(self):
        payload = await self.chat.send_admin_message(self.conversation.id, "We are looking into it")

        self.assertEqual(payload["text"], "We are looking into it")
        self.assertEqual(payload["sender"], str(self.official.id))

        rooms = {(room, event) for room, event, _ in self.notifier.events}
        self.assertIn((user_room(self.user.id), EVENT_MESSAGE_NEW), rooms)
        self.assertIn((user_room(self.user.id), EVENT_CHAT_UPDATE), rooms)
        self.assertIn((ADMIN_SUPPORT_ROOM, EVENT_ADMIN_MESSAGE_NEW), rooms)
        self.assertIn((ADMIN_SUPPORT_ROOM, EVENT_ADMIN_CHAT_UPDATE), rooms)


class TestMarkRead(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.user = await self.make_user()
        self.chat = SupportChatService(self.session, self.official)
        self.conversation = await self.chat.get_or_create(self.user.id, "support")

    async def test_flips_only_user_messages(self):
        for i in range(3):
            await self.add_message(self.conversation, self.user.id, f"user {i}", minutes_ago=10 - i)
        for i in range(2):
            await self.add_message(self.conversation, self.official.id, f"system {i}", minutes_ago=5 - i)

        self.assertEqual(await self.chat.mark_read(self.conversation.id), 3)

        rows = (await self.session.execute(
            select(ConversationMessage).where(ConversationMessage.conversation_id == self.conversation.id)
        )).scalars().all()
        for message in rows:
            await self.session.refresh(message)
        seen_by_sender = {(m.sender_id, m.seen) for m in rows}
        self.assertEqual(seen_by_sender, {(self.user.id, True), (self.official.id, False)})

        # Nothing left to flip
        self.assertEqual(await self.chat.mark_read(self.conversation.id), 0)

    async def test_empty_conversation_is_a_no_op(self):
        self.assertEqual(await self.chat.mark_read(self.conversation.id), 0)


class TestAdminInbox(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.chat = SupportChatService(self.session, self.official)

    async def test_list_conversations(self):
        alice = await self.make_user(full_name="Alice")
        bob = await self.make_user(full_name="Bob")
        alice_chat = await self.chat.get_or_create(alice.id, "support")
        bob_chat = await self.chat.get_or_create(bob.id, "trip_verification", uuid.uuid4())

        await self.add_message(alice_chat, alice.id, "old question", minutes_ago=20)
        await self.add_message(alice_chat, alice.id, "latest question", minutes_ago=2)
        await self.add_message(alice_chat, self.official.id, "answer", minutes_ago=5)
        await self.chat.append_system_message(bob_chat.id, "Your trip was verified")

        result = await self.chat.list_conversations(page=1, limit=10)

        self.assertEqual(result["pagination"], {
            "currentPage": 1, "totalPages": 1, "total": 2, "hasNextPage": False, "limit": 10,
        })
        by_user = {c["user"]["fullName"]: c for c in result["conversations"]}
        self.assertEqual(by_user["Alice"]["unreadCount"], 2)
        self.assertEqual(by_user["Alice"]["lastMessage"]["text"], "latest question")
        self.assertEqual(by_user["Alice"]["reason"], "support")
        self.assertEqual(by_user["Bob"]["unreadCount"], 0)
        self.assertEqual(by_user["Bob"]["reason"], "trip_verification")
        self.assertEqual(by_user["Bob"]["status"], ConversationStatus.WAITING_USER.value)

    async def test_last_message_tie_matches_display_order(self):
        user = await self.make_user(full_name="Tie")
        conversation = await self.chat.get_or_create(user.id, "support")
        stamp = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        # Inserted higher id first so row order alone would pick the wrong one
        for message_id, text in ((uuid.UUID(int=2), "second"), (uuid.UUID(int=1), "first")):
            self.session.add(ConversationMessage(
                id=message_id, conversation_id=conversation.id, sender_id=user.id, text=text, timestamp=stamp,
            ))
        await self.session.commit()

        for _ in range(3):
            result = await self.chat.list_conversations()
            self.assertEqual(result["conversations"][0]["lastMessage"]["text"], "second")

        detail = await self.chat.get_conversation_detail(conversation.id)
        self.assertEqual([m["text"] for m in detail["messages"]], ["first", "second"])

    async def test_list_conversations_pagination_and_status_filter(self):
        for _ in range(3):
            user = await self.make_user()
            await self.chat.get_or_create(user.id, "support")

        page = await self.chat.list_conversations(page=1, limit=2)
        self.assertEqual(len(page["conversations"]), 2)
        self.assertTrue(page["pagination"]["hasNextPage"])
        self.assertEqual(page["pagination"]["totalPages"], 2)

        resolved = await self.chat.list_conversations(status="resolved")
        self.assertEqual(resolved["pagination"]["total"], 0)

    async def test_get_conversation_errors(self):
        with self.assertRaises(ValidationError):
            await self.chat.get_conversation_detail("123")
        with self.assertRaises(NotFoundError):
            await self.chat.get_conversation_detail(uuid.uuid4())

    async def test_create_conversation_with_initial_message(self):
        user = await self.make_user()
        detail = await self.chat.create_conversation(str(user.id), "support", None, "Welcome!")

        self.assertEqual(detail["user"]["_id"], str(user.id))
        self.assertEqual([m["text"] for m in detail["messages"]], ["Welcome!"])
        self.assertEqual(detail["reason"], "support")

    async def test_create_conversation_validation(self):
        with self.assertRaises(ValidationError):
            await self.chat.create_conversation(None)
        with self.assertRaises(ValidationError):
            await self.chat.create_conversation("not-an-id")
        with self.assertRaises(NotFoundError):
            await self.chat.create_conversation(str(uuid.uuid4()))

    async def test_list_for_user(self):
        user = await self.make_user()
        conversation = await self.chat.get_or_create(user.id, "support")
        await self.chat.append_system_message(conversation.id, "Hi")

        conversations = await self.chat.list_for_user(user.id)
        self.assertEqual(len(conversations), 1)
        self.assertEqual(conversations[0]["messages"][0]["text"], "Hi")


if __name__ == "__main__":
    unittest.main()
