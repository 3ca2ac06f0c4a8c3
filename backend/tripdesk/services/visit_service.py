"""
Visit submission and legacy status backfill.
"""

from typing import Optional, Tuple

import structlog
from sqlalchemy import update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.core.errors import NotFoundError, ValidationError, parse_uuid
from tripdesk.core.time_utils import get_utc_now
from tripdesk.models.trip_visit import (
    TripVisit,
    TrustLevel,
    VerificationReason,
    VerificationStatus,
    VisitSource,
    canonical_continent,
    legacy_pending_clause,
)
from tripdesk.models.user import User
from tripdesk.schemas.visit import VisitCreate

logger = structlog.get_logger()

# Keyword -> continent, checked against the lowercased address
ADDRESS_KEYWORDS = [
    ("ASIA", ("asia", "india", "china", "japan", "thailand", "singapore", "malaysia", "indonesia")),
    ("EUROPE", ("europe", "france", "germany", "italy", "spain", "uk", "england", "london")),
    ("NORTH AMERICA", ("north america", "united states", "usa", "canada", "mexico", "new york", "california", "texas")),
    ("SOUTH AMERICA", ("south america", "brazil", "argentina", "chile", "peru", "colombia")),
    ("AFRICA", ("africa", "egypt", "nigeria", "kenya", "morocco")),
    ("AUSTRALIA", ("australia", "new zealand", "fiji", "papua", "samoa", "tonga")),
    ("ANTARCTICA", ("antarctica",)),
]

DEFAULT_TRUST = {
    VisitSource.CAMERA_LIVE: TrustLevel.HIGH,
    VisitSource.GALLERY_EXIF: TrustLevel.MEDIUM,
    VisitSource.GALLERY_NO_EXIF: TrustLevel.LOW,
    VisitSource.MANUAL_ONLY: TrustLevel.UNVERIFIED,
}


def continent_from_address(address: Optional[str]) -> str:
    if not address:
        return "Unknown"
    lowered = address.lower()
    for continent, keywords in ADDRESS_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return continent
    return "Unknown"


def continent_from_coordinates(lat: float, lng: float) -> str:
    # Bounding boxes overlap; first match wins
    if -10 <= lat <= 80 and 25 <= lng <= 180:
        return "ASIA"
    if 35 <= lat <= 70 and -10 <= lng <= 40:
        return "EUROPE"
    if 5 <= lat <= 85 and -170 <= lng <= -50:
        return "NORTH AMERICA"
    if -60 <= lat <= 15 and -85 <= lng <= -30:
        return "SOUTH AMERICA"
    if -40 <= lat <= 40 and -20 <= lng <= 50:
        return "AFRICA"
    if -50 <= lat <= -10 and 110 <= lng <= 180:
        return "AUSTRALIA"
    if lat <= -60:
        return "ANTARCTICA"
    return "Unknown"


def infer_continent(address: Optional[str], lat: float, lng: float) -> str:
    continent = continent_from_address(address)
    if continent == "Unknown" and not (lat == 0 and lng == 0):
        continent = continent_from_coordinates(lat, lng)
    return continent


def classify(source: VisitSource, trust_level: TrustLevel, lat: float, lng: float) -> Tuple[VerificationStatus, Optional[VerificationReason]]:
    """Initial review status for a new visit."""
    if lat == 0 and lng == 0:
        return VerificationStatus.PENDING_REVIEW, VerificationReason.MANUAL_LOCATION
    if source == VisitSource.MANUAL_ONLY:
        return VerificationStatus.PENDING_REVIEW, VerificationReason.MANUAL_LOCATION
    if source == VisitSource.GALLERY_NO_EXIF:
        return VerificationStatus.PENDING_REVIEW, VerificationReason.NO_EXIF
    if trust_level == TrustLevel.SUSPICIOUS:
        return VerificationStatus.PENDING_REVIEW, VerificationReason.SUSPICIOUS_PATTERN
    if trust_level == TrustLevel.UNVERIFIED:
        return VerificationStatus.PENDING_REVIEW, VerificationReason.REQUIRES_ADMIN_REVIEW
    return VerificationStatus.AUTO_VERIFIED, None


async def record_visit(session: AsyncSession, user_id, payload: VisitCreate) -> TripVisit:
    user_uuid = parse_uuid(user_id, "userId")
    user = await session.get(User, user_uuid)
    if user is None or not user.is_active:
        raise NotFoundError("User not found")

    trust_level = payload.trust_level or DEFAULT_TRUST[payload.source]
    status, reason = classify(payload.source, trust_level, payload.lat, payload.lng)
    if payload.continent:
        continent = canonical_continent(payload.continent)
        if continent is None:
            raise ValidationError("Invalid continent")
    else:
        continent = infer_continent(payload.address, payload.lat, payload.lng)

    now = get_utc_now()
    visit = TripVisit(
        user_id=user.id,
        content_type=payload.content_type,
        caption=payload.caption,
        media_storage_keys=list(payload.media_storage_keys),
        media_urls=[],
        lat=payload.lat,
        lng=payload.lng,
        continent=continent,
        country=payload.country or "Unknown",
        city=payload.city,
        address=payload.address,
        source=payload.source,
        trust_level=trust_level,
        verification_status=status,
        verification_reason=reason,
        is_active=True,
        taken_at=payload.taken_at,
        uploaded_at=now,
    )
    session.add(visit)
    await session.commit()
    await session.refresh(visit)

    logger.info(
        "trip_visit_recorded",
        visit_id=str(visit.id),
        user_id=str(user.id),
        source=payload.source.value,
        verification_status=status.value,
    )
    return visit


async def backfill_pending_status(session: AsyncSession) -> int:
    """
    One-time migration: mark active auto_verified records that match the
    legacy pending proxy as pending_review. Returns the number updated.
    """
    result = await session.execute(
        update(TripVisit)
        .where(
            and_(
                TripVisit.is_active.is_(True),
                TripVisit.verification_status == VerificationStatus.AUTO_VERIFIED,
                legacy_pending_clause(),
            )
        )
        .values(verification_status=VerificationStatus.PENDING_REVIEW, backfilled_at=get_utc_now())
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    updated = result.rowcount or 0
    logger.info("verification_status_backfilled", updated=updated)
    return updated


async def revert_pending_backfill(session: AsyncSession) -> int:
    """
    Undo backfill_pending_status for rows that are still pending. Rows
    reviewed since keep their decision.
    """
    result = await session.execute(
        update(TripVisit)
        .where(
            and_(
                TripVisit.backfilled_at.isnot(None),
                TripVisit.verification_status == VerificationStatus.PENDING_REVIEW,
            )
        )
        .values(verification_status=VerificationStatus.AUTO_VERIFIED, backfilled_at=None)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    reverted = result.rowcount or 0
    logger.info("verification_status_backfill_reverted", reverted=reverted)
    return reverted
