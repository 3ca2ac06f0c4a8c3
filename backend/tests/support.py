import unittest
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tripdesk.db.base import Base
from tripdesk.models import (
    Admin,
    AdminRole,
    Conversation,
    ConversationMessage,
    TripVisit,
    TrustLevel,
    User,
    VerificationStatus,
    VisitSource,
)
from tripdesk.services.official_identity import OfficialIdentity

OFFICIAL_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def emit_to_room(self, room, event, payload):
        self.events.append((room, event, payload))

    def events_named(self, event):
        return [(room, payload) for room, name, payload in self.events if name == event]


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh in-memory database per test, with the official account seeded."""

    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.session = self.session_factory()

        official_user = await self.make_user(
            id=OFFICIAL_ID, username="official", email="official@example.com", is_official=True
        )
        self.official = OfficialIdentity.from_user(official_user)
        self.notifier = RecordingNotifier()

    async def asyncTearDown(self):
        await self.session.close()
        await self.engine.dispose()

    async def make_user(self, **fields) -> User:
        suffix = uuid.uuid4().hex[:8]
        values = {
            "username": f"user_{suffix}",
            "email": f"user_{suffix}@example.com",
            "full_name": "Test User",
            "password_hash": "not-a-real-hash",
        }
        values.update(fields)
        user = User(**values)
        self.session.add(user)
        await self.session.commit()
        return user

    async def make_admin(self, **fields) -> Admin:
        values = {
            "email": f"admin_{uuid.uuid4().hex[:8]}@example.com",
            "password_hash": "not-a-real-hash",
            "role": AdminRole.MODERATOR,
        }
        values.update(fields)
        admin = Admin(**values)
        self.session.add(admin)
        await self.session.commit()
        return admin

    async def make_visit(self, user: User, **fields) -> TripVisit:
        values = {
            "user_id": user.id,
            "lat": 48.8566,
            "lng": 2.3522,
            "continent": "EUROPE",
            "country": "France",
            "city": "Paris",
            "address": "Paris, France",
            "source": VisitSource.CAMERA_LIVE,
            "trust_level": TrustLevel.HIGH,
            "verification_status": VerificationStatus.PENDING_REVIEW,
        }
        values.update(fields)
        visit = TripVisit(**values)
        self.session.add(visit)
        await self.session.commit()
        return visit

    async def add_message(self, conversation: Conversation, sender_id, text, minutes_ago=0, seen=False) -> ConversationMessage:
        message = ConversationMessage(
            conversation_id=conversation.id,
            sender_id=sender_id,
            text=text,
            timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
            seen=seen,
        )
        self.session.add(message)
        await self.session.commit()
        return message
