"""
Notification outbox.

A row is written in the same transaction as the review decision it reports,
so a decision that commits always leaves a job behind. The worker sets
`delivered_at` once the support message has been appended.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Uuid, Index
from tripdesk.db.base import Base


class NotificationOutbox(Base):
    __tablename__ = "notification_jobs"
    __table_args__ = (
        Index("ix_notification_jobs_delivered_created", "delivered_at", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    visit_id = Column(Uuid(as_uuid=True), ForeignKey("trip_visits.id"), nullable=False)

    event = Column(String(50), nullable=False)
    text = Column(Text, nullable=False)

    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
