"""
User Model - ordinary app accounts plus the single official account.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Text, Uuid
from tripdesk.db.base import Base


class User(Base):
    """
    End-user account. Owned by the main application; this service reads it
    and only ever writes the official account.
    """
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(120), nullable=False, default="")
    password_hash = Column(String(255), nullable=False)

    # Legacy permanent URL; storage key is resolved to a signed URL at read time
    profile_pic = Column(String(1024), nullable=True)
    profile_pic_storage_key = Column(String(512), nullable=True)
    bio = Column(Text, nullable=True)

    is_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_official = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
