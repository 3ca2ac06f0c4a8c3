"""notification outbox

Revision ID: 0003_notification_outbox
Revises: 0002_backfill_pending
Create Date: 2026-10-19 10:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0003_notification_outbox"
down_revision: Union[str, None] = "0002_backfill_pending"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "notification_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("visit_id", sa.Uuid(), sa.ForeignKey("trip_visits.id"), nullable=False),
        sa.Column("event", sa.String(50), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_notification_jobs_delivered_created", "notification_jobs", ["delivered_at", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_notification_jobs_delivered_created", table_name="notification_jobs")
    op.drop_table("notification_jobs")
