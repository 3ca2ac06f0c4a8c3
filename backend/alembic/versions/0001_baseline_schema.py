"""baseline schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("profile_pic", sa.String(1024), nullable=True),
        sa.Column("profile_pic_storage_key", sa.String(512), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_official", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "admins",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("SUPER_ADMIN", "MODERATOR", "ANALYST", name="adminrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_admins_email", "admins", ["email"], unique=True)

    op.create_table(
        "conversations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.Enum("admin_support", "direct", name="conversationtype"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("official_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("related_type", sa.String(50), nullable=False),
        sa.Column("related_ref_id", sa.Uuid(), nullable=True),
        sa.Column("related_ref_key", sa.String(64), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "user_id", "official_id", "type", "related_type", "related_ref_key",
            name="uq_conversation_participants_related",
        ),
    )
    op.create_index("ix_conversations_type", "conversations", ["type"])
    op.create_index("ix_conversations_user_id", "conversations", ["user_id"])
    op.create_index("ix_conversations_related_ref_id", "conversations", ["related_ref_id"])
    op.create_index("ix_conversations_updated_at", "conversations", ["updated_at"])

    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("conversation_id", sa.Uuid(), sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("sender_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seen", sa.Boolean(), nullable=False),
        sa.Column("dedupe_key", sa.String(255), nullable=True, unique=True),
    )
    op.create_index(
        "ix_conversation_messages_conversation_timestamp",
        "conversation_messages",
        ["conversation_id", "timestamp"],
    )

    op.create_table(
        "trip_visits",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content_type", sa.Enum("post", "short", name="contenttype"), nullable=False),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("media_storage_keys", sa.JSON(), nullable=True),
        sa.Column("media_urls", sa.JSON(), nullable=True),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("continent", sa.String(20), nullable=False),
        sa.Column("country", sa.String(120), nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column(
            "source",
            sa.Enum("taatom_camera_live", "gallery_exif", "gallery_no_exif", "manual_only", name="visitsource"),
            nullable=False,
        ),
        sa.Column(
            "trust_level",
            sa.Enum("high", "medium", "low", "unverified", "suspicious", name="trustlevel"),
            nullable=False,
        ),
        sa.Column(
            "verification_status",
            sa.Enum("auto_verified", "pending_review", "approved", "rejected", name="verificationstatus"),
            nullable=False,
        ),
        sa.Column(
            "verification_reason",
            sa.Enum(
                "no_exif", "manual_location", "suspicious_pattern", "photo_requires_review",
                "gallery_exif_requires_review", "photo_from_camera_requires_review", "requires_admin_review",
                name="verificationreason",
            ),
            nullable=True,
        ),
        sa.Column("reviewed_by", sa.Uuid(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_trip_visits_user_id", "trip_visits", ["user_id"])
    op.create_index("ix_trip_visits_trust_level", "trip_visits", ["trust_level"])
    op.create_index("ix_trip_visits_status_active", "trip_visits", ["verification_status", "is_active"])
    op.create_index(
        "ix_trip_visits_user_active_status", "trip_visits", ["user_id", "is_active", "verification_status"]
    )


def downgrade() -> None:
    op.drop_table("trip_visits")
    op.drop_table("conversation_messages")
    op.drop_table("conversations")
    op.drop_table("admins")
    op.drop_table("users")
    for enum_name in (
        "verificationreason", "verificationstatus", "trustlevel", "visitsource",
        "contenttype", "conversationtype", "adminrole",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
