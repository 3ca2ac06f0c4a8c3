"""
Support Conversation Models.

A conversation pairs one ordinary user with the official account. Messages
live in their own append-only table so an append is a single INSERT and two
concurrent appends can never overwrite each other.
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Text, Enum, ForeignKey, Uuid, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from tripdesk.db.base import Base


class ConversationType(str, enum.Enum):
    ADMIN_SUPPORT = 'admin_support'
    DIRECT = 'direct'


class SupportReason(str, enum.Enum):
    TRIP_VERIFICATION = 'trip_verification'
    SUPPORT = 'support'


class ConversationStatus(str, enum.Enum):
    OPEN = 'open'
    WAITING_USER = 'waiting_user'
    WAITING_ADMIN = 'waiting_admin'
    RESOLVED = 'resolved'


# Stored in related_ref_key when a conversation has no reference id
NO_REF_KEY = "-"


def ref_key(ref_id) -> str:
    return str(ref_id) if ref_id else NO_REF_KEY


class Conversation(Base):
    """
    Two-party support conversation (user + official account).
    """
    __tablename__ = "conversations"
    __table_args__ = (
        # One conversation per (user, official, reason, reference)
        UniqueConstraint(
            "user_id", "official_id", "type", "related_type", "related_ref_key",
            name="uq_conversation_participants_related",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(
        Enum(ConversationType, values_callable=lambda e: [m.value for m in e]),
        default=ConversationType.ADMIN_SUPPORT,
        nullable=False,
        index=True,
    )

    # Participants
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    official_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)

    # relatedEntity: {type, refId}
    related_type = Column(String(50), nullable=False, default=SupportReason.SUPPORT.value)
    related_ref_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    related_ref_key = Column(String(64), nullable=False, default=NO_REF_KEY)

    # Free-form; not validated against ConversationStatus
    status = Column(String(50), nullable=False, default=ConversationStatus.OPEN.value)

    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    user = relationship("User", foreign_keys=[user_id], lazy="raise")
    messages = relationship(
        "ConversationMessage",
        back_populates="conversation",
        order_by="ConversationMessage.timestamp",
        lazy="raise",
    )

    @property
    def participants(self) -> list:
        return [self.user_id, self.official_id]


class ConversationMessage(Base):
    """
    Single message in a conversation. Rows are only ever inserted, apart from
    the `seen` flag.
    """
    __tablename__ = "conversation_messages"
    __table_args__ = (
        Index("ix_conversation_messages_conversation_timestamp", "conversation_id", "timestamp"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)

    text = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    seen = Column(Boolean, default=False, nullable=False)

    # Set by notification delivery so a retried job never appends twice
    dedupe_key = Column(String(255), unique=True, nullable=True)

    conversation = relationship("Conversation", back_populates="messages", lazy="raise")
