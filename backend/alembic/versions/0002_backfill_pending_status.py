"""backfill pending_review for legacy auto_verified visits

Visits stored before verification_status was set explicitly are all
auto_verified. Those matching the legacy pending proxy (unverified trust,
manual or no-EXIF source, or 0,0 coordinates) are moved to pending_review
and stamped with backfilled_at. Downgrade returns stamped rows that are
still pending to auto_verified.

Revision ID: 0002_backfill_pending
Revises: 0001_baseline
Create Date: 2026-10-18 09:30:00

"""
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0002_backfill_pending"
down_revision: Union[str, None] = "0001_baseline"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


trip_visits = sa.table(
    "trip_visits",
    sa.column("is_active", sa.Boolean),
    sa.column("verification_status", sa.String),
    sa.column("trust_level", sa.String),
    sa.column("source", sa.String),
    sa.column("lat", sa.Float),
    sa.column("lng", sa.Float),
    sa.column("backfilled_at", sa.DateTime(timezone=True)),
)


def upgrade() -> None:
    with op.batch_alter_table("trip_visits") as batch_op:
        batch_op.add_column(sa.Column("backfilled_at", sa.DateTime(timezone=True), nullable=True))

    op.execute(
        trip_visits.update()
        .where(
            sa.and_(
                trip_visits.c.is_active.is_(True),
                trip_visits.c.verification_status == "auto_verified",
                sa.or_(
                    trip_visits.c.trust_level == "unverified",
                    trip_visits.c.source == "manual_only",
                    trip_visits.c.source == "gallery_no_exif",
                    sa.and_(trip_visits.c.lat == 0, trip_visits.c.lng == 0),
                ),
            )
        )
        .values(verification_status="pending_review", backfilled_at=datetime.now(timezone.utc))
    )


def downgrade() -> None:
    # Rows reviewed since the backfill keep their decision
    op.execute(
        trip_visits.update()
        .where(
            sa.and_(
                trip_visits.c.backfilled_at.isnot(None),
                trip_visits.c.verification_status == "pending_review",
            )
        )
        .values(verification_status="auto_verified")
    )

    with op.batch_alter_table("trip_visits") as batch_op:
        batch_op.drop_column("backfilled_at")
