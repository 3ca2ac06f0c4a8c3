"""
TripVisit Model - a submitted visit/location claim.

Visits created before the explicit `verification_status` column existed were
all stored as `auto_verified`. The legacy pending proxy below is how those
records are still recognised as awaiting review.
"""

import uuid
import enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime, Float, Text, JSON, Enum, ForeignKey, Uuid, Index, and_, or_
from sqlalchemy.orm import relationship
from tripdesk.db.base import Base


class VerificationStatus(str, enum.Enum):
    AUTO_VERIFIED = 'auto_verified'
    PENDING_REVIEW = 'pending_review'
    APPROVED = 'approved'
    REJECTED = 'rejected'


TERMINAL_STATUSES = (VerificationStatus.APPROVED, VerificationStatus.REJECTED)


class VisitSource(str, enum.Enum):
    CAMERA_LIVE = 'taatom_camera_live'
    GALLERY_EXIF = 'gallery_exif'
    GALLERY_NO_EXIF = 'gallery_no_exif'
    MANUAL_ONLY = 'manual_only'


class TrustLevel(str, enum.Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'
    UNVERIFIED = 'unverified'
    SUSPICIOUS = 'suspicious'


class VerificationReason(str, enum.Enum):
    NO_EXIF = 'no_exif'
    MANUAL_LOCATION = 'manual_location'
    SUSPICIOUS_PATTERN = 'suspicious_pattern'
    PHOTO_REQUIRES_REVIEW = 'photo_requires_review'
    GALLERY_EXIF_REQUIRES_REVIEW = 'gallery_exif_requires_review'
    PHOTO_FROM_CAMERA_REQUIRES_REVIEW = 'photo_from_camera_requires_review'
    REQUIRES_ADMIN_REVIEW = 'requires_admin_review'


class ContentType(str, enum.Enum):
    POST = 'post'
    SHORT = 'short'


CONTINENTS = [
    'ASIA', 'AFRICA', 'NORTH AMERICA', 'SOUTH AMERICA',
    'AUSTRALIA', 'EUROPE', 'ANTARCTICA', 'Unknown',
]


def canonical_continent(value) -> Optional[str]:
    """Case-insensitive match against CONTINENTS; None when unknown."""
    if not isinstance(value, str):
        return None
    for continent in CONTINENTS:
        if continent.upper() == value.strip().upper():
            return continent
    return None


def _values(enum_cls):
    return [m.value for m in enum_cls]


class TripVisit(Base):
    __tablename__ = "trip_visits"
    __table_args__ = (
        Index("ix_trip_visits_status_active", "verification_status", "is_active"),
        Index("ix_trip_visits_user_active_status", "user_id", "is_active", "verification_status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Content the visit was derived from
    content_type = Column(Enum(ContentType, values_callable=_values), default=ContentType.POST, nullable=False)
    caption = Column(Text, nullable=True)
    media_storage_keys = Column(JSON, default=list)
    media_urls = Column(JSON, default=list)  # legacy permanent URLs

    # Location
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    continent = Column(String(20), nullable=False, default='Unknown')
    country = Column(String(120), nullable=False, default='Unknown')
    city = Column(String(120), nullable=True)
    address = Column(String(512), nullable=True)

    # Source and trust
    source = Column(Enum(VisitSource, values_callable=_values), default=VisitSource.MANUAL_ONLY, nullable=False)
    trust_level = Column(Enum(TrustLevel, values_callable=_values), default=TrustLevel.UNVERIFIED, nullable=False, index=True)

    # Review
    verification_status = Column(
        Enum(VerificationStatus, values_callable=_values),
        default=VerificationStatus.AUTO_VERIFIED,
        nullable=False,
    )
    verification_reason = Column(Enum(VerificationReason, values_callable=_values), nullable=True)
    reviewed_by = Column(Uuid(as_uuid=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    # Set when the legacy backfill moved this row to pending_review
    backfilled_at = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    taken_at = Column(DateTime(timezone=True), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    user = relationship("User", lazy="raise")

    @property
    def has_zero_coordinates(self) -> bool:
        return self.lat == 0 and self.lng == 0

    def matches_legacy_pending_proxy(self) -> bool:
        return (
            self.trust_level == TrustLevel.UNVERIFIED
            or self.source == VisitSource.MANUAL_ONLY
            or self.source == VisitSource.GALLERY_NO_EXIF
            or self.has_zero_coordinates
        )

    def is_reviewable(self) -> bool:
        """
        Explicitly pending, or an old auto_verified record that should have
        been pending.
        """
        if self.verification_status == VerificationStatus.PENDING_REVIEW:
            return True
        return (
            self.verification_status == VerificationStatus.AUTO_VERIFIED
            and self.matches_legacy_pending_proxy()
        )


def legacy_pending_clause():
    """SQL form of TripVisit.matches_legacy_pending_proxy."""
    return or_(
        TripVisit.trust_level == TrustLevel.UNVERIFIED,
        TripVisit.source == VisitSource.MANUAL_ONLY,
        TripVisit.source == VisitSource.GALLERY_NO_EXIF,
        and_(TripVisit.lat == 0, TripVisit.lng == 0),
    )


def pending_review_clause():
    """
    Active, not terminal, and either explicitly pending or matching the
    legacy proxy. Kept as the exact union so old records keep showing up.
    """
    return and_(
        TripVisit.is_active.is_(True),
        TripVisit.verification_status.notin_(TERMINAL_STATUSES),
        or_(
            TripVisit.verification_status == VerificationStatus.PENDING_REVIEW,
            and_(
                TripVisit.verification_status != VerificationStatus.PENDING_REVIEW,
                legacy_pending_clause(),
            ),
        ),
    )


def pending_review_fallback_clause():
    """Simpler query used when the full clause fails. May include processed records."""
    return and_(
        TripVisit.is_active.is_(True),
        or_(
            TripVisit.verification_status == VerificationStatus.PENDING_REVIEW,
            TripVisit.trust_level == TrustLevel.UNVERIFIED,
            TripVisit.source == VisitSource.MANUAL_ONLY,
            TripVisit.source == VisitSource.GALLERY_NO_EXIF,
        ),
    )
