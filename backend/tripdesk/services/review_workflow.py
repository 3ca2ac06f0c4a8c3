"""
ReviewWorkflow - admin review of submitted trip visits.

Responsibilities:
1. List records awaiting review, including legacy records that only match
   the pending proxy.
2. Approve / reject with terminal-state checks and a guarded UPDATE.
3. Resolve the linked support conversation and queue the user notification.
4. Let reviewers correct location details.
"""

import asyncio
import math
import uuid
from typing import Optional, Tuple

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.core.errors import NotFoundError, ValidationError, parse_uuid
from tripdesk.core.time_utils import get_utc_now, format_utc
from tripdesk.models.conversation import ConversationStatus, SupportReason
from tripdesk.models.trip_visit import (
    TERMINAL_STATUSES,
    TripVisit,
    TrustLevel,
    VerificationReason,
    VerificationStatus,
    VisitSource,
    canonical_continent,
    pending_review_clause,
    pending_review_fallback_clause,
)
from tripdesk.models.user import User
from tripdesk.services.media_service import generate_signed_urls
from tripdesk.services.notification_queue import NotificationJob, NotificationQueue, stage_notification
from tripdesk.services.official_identity import OfficialIdentity
from tripdesk.services.support_chat import SupportChatService, format_user_summary

logger = structlog.get_logger()

EVENT_APPROVED = "approved"
EVENT_REJECTED = "rejected"

REJECTION_TEXT = (
    "⚠️ We couldn't verify this post due to missing or unclear location proof.\n"
    "You may upload another photo or capture directly using the in-app camera."
)


def approval_text(visit: TripVisit) -> str:
    city = visit.city or (visit.address or "").split(",")[0].strip() or "this location"
    country = visit.country or ""
    where = f"{city}, {country}" if country else city
    return f"✅ Your trip to {where} has been verified!\nYour TripScore has been updated 🌍"


def rejection_text(note: Optional[str] = None) -> str:
    if note and note.strip():
        return f"{REJECTION_TEXT}\nReviewer note: {note.strip()}"
    return REJECTION_TEXT


def derive_verification_reason(visit: TripVisit) -> str:
    """Reason shown for records stored without one."""
    if visit.verification_reason:
        return VerificationReason(visit.verification_reason).value
    if visit.has_zero_coordinates or visit.source == VisitSource.MANUAL_ONLY:
        return VerificationReason.MANUAL_LOCATION.value
    if visit.source == VisitSource.GALLERY_NO_EXIF:
        return VerificationReason.NO_EXIF.value
    if visit.trust_level == TrustLevel.SUSPICIOUS:
        return VerificationReason.SUSPICIOUS_PATTERN.value
    return VerificationReason.NO_EXIF.value


def review_summary(visit: TripVisit) -> dict:
    return {
        "_id": str(visit.id),
        "verificationStatus": VerificationStatus(visit.verification_status).value,
        "reviewedBy": str(visit.reviewed_by) if visit.reviewed_by else None,
        "reviewedAt": format_utc(visit.reviewed_at),
    }


class ReviewWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        official: Optional[OfficialIdentity] = None,
        queue: Optional[NotificationQueue] = None,
    ):
        self.session = session
        self.official = official
        self.queue = queue

    async def _get_visit(self, visit_id) -> TripVisit:
        visit_uuid = parse_uuid(visit_id, "TripVisit ID")
        visit = await self.session.get(TripVisit, visit_uuid)
        if visit is None:
            raise NotFoundError("TripVisit not found")
        return visit

    # ------------------------------------------------------------------
    # Pending list
    # ------------------------------------------------------------------

    async def _query_pending(self, where, skip: int, limit: int):
        total = (await self.session.execute(
            select(func.count()).select_from(TripVisit).where(where)
        )).scalar_one()
        rows = (await self.session.execute(
            select(TripVisit, User)
            .outerjoin(User, User.id == TripVisit.user_id)
            .where(where)
            .order_by(TripVisit.created_at.desc())
            .offset(skip)
            .limit(limit)
        )).all()
        return total, rows

    async def _format_pending(self, visit: TripVisit, user: Optional[User]) -> dict:
        post = None
        if visit.media_storage_keys:
            images = await generate_signed_urls(visit.media_storage_keys, "IMAGE")
            post = {"imageUrl": images[0] if images else None, "images": images}
        elif visit.media_urls:
            post = {"imageUrl": visit.media_urls[0], "images": list(visit.media_urls)}
        if post is not None or visit.caption:
            post = post or {"imageUrl": None, "images": []}
            post.update({
                "caption": visit.caption,
                "type": visit.content_type.value if visit.content_type else None,
                "createdAt": format_utc(visit.uploaded_at),
            })

        return {
            "_id": str(visit.id),
            "user": await format_user_summary(user) if user else None,
            "post": post,
            "location": {
                "address": visit.address,
                "city": visit.city,
                "country": visit.country,
                "continent": visit.continent,
                "coordinates": {"latitude": visit.lat, "longitude": visit.lng},
            },
            "source": VisitSource(visit.source).value,
            "verificationReason": derive_verification_reason(visit),
            "uploadedAt": format_utc(visit.uploaded_at),
            "createdAt": format_utc(visit.created_at),
        }

    async def list_pending(self, page: int = 1, limit: int = 20) -> dict:
        page = max(int(page), 1)
        limit = max(int(limit), 1)
        skip = (page - 1) * limit

        try:
            total, rows = await self._query_pending(pending_review_clause(), skip, limit)
        except SQLAlchemyError as e:
            # The fallback can include already processed records
            logger.error("pending_reviews_query_failed", error=str(e))
            await self.session.rollback()
            total, rows = await self._query_pending(pending_review_fallback_clause(), skip, limit)

        logger.info("pending_reviews_fetched", total=total, returned=len(rows), page=page)
        reviews = await asyncio.gather(*(self._format_pending(visit, user) for visit, user in rows))
        return {
            "reviews": list(reviews),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @staticmethod
    def _check_reviewable(visit: TripVisit) -> None:
        # Order matters: approved is reported before rejected
        if visit.verification_status == VerificationStatus.APPROVED:
            raise ValidationError("TripVisit has already been approved")
        if visit.verification_status == VerificationStatus.REJECTED:
            raise ValidationError("TripVisit has already been rejected")
        if not visit.is_reviewable():
            raise ValidationError("TripVisit is not pending review")

    async def _decide(self, visit_id, admin_id, outcome: VerificationStatus, event: str, build_text) -> Tuple[TripVisit, NotificationJob]:
        """
        Guarded status change. The notification outbox row commits in the
        same transaction, so a recorded decision always has a pending job.
        """
        visit = await self._get_visit(visit_id)
        self._check_reviewable(visit)

        now = get_utc_now()
        result = await self.session.execute(
            update(TripVisit)
            .where(
                TripVisit.id == visit.id,
                TripVisit.verification_status.notin_(TERMINAL_STATUSES),
            )
            .values(verification_status=outcome, reviewed_by=admin_id, reviewed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Another reviewer got there first
            await self.session.rollback()
            await self.session.refresh(visit)
            self._check_reviewable(visit)
            raise ValidationError("TripVisit is not pending review")

        job = stage_notification(self.session, visit.user_id, visit.id, event, build_text(visit))
        await self.session.commit()
        await self.session.refresh(visit)
        logger.info(
            f"trip_visit_{outcome.value}",
            visit_id=str(visit.id),
            admin_id=str(admin_id),
        )
        return visit, job

    async def _resolve_conversation(self, visit: TripVisit) -> None:
        if self.official is None:
            return
        try:
            chat = SupportChatService(self.session, self.official)
            conversation = await chat.find_by_trip_visit(visit.id)
            if conversation:
                await chat.set_status(conversation.id, ConversationStatus.RESOLVED.value)
                logger.debug("support_conversation_resolved", visit_id=str(visit.id), conversation_id=str(conversation.id))
        except Exception as e:
            await self.session.rollback()
            logger.debug("support_conversation_resolve_failed", visit_id=str(visit.id), error=str(e))

    def _notify(self, job: NotificationJob) -> None:
        # Jobs that are not enqueued here are picked up from the outbox on the next start
        if self.queue is None:
            logger.warning("notification_queue_unavailable", visit_id=str(job.visit_id), event_name=job.event)
            return
        try:
            self.queue.enqueue(job)
        except Exception as e:
            logger.error("notification_enqueue_failed", visit_id=str(job.visit_id), event_name=job.event, error=str(e))

    async def approve(self, visit_id, admin_id: uuid.UUID) -> dict:
        visit, job = await self._decide(visit_id, admin_id, VerificationStatus.APPROVED, EVENT_APPROVED, approval_text)
        await self._resolve_conversation(visit)
        self._notify(job)
        return review_summary(visit)

    async def reject(self, visit_id, admin_id: uuid.UUID, note: Optional[str] = None) -> dict:
        visit, job = await self._decide(
            visit_id, admin_id, VerificationStatus.REJECTED, EVENT_REJECTED, lambda _visit: rejection_text(note)
        )
        await self._resolve_conversation(visit)
        self._notify(job)
        return review_summary(visit)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def update(self, visit_id, admin_id: uuid.UUID, fields: dict) -> dict:
        """
        Apply reviewer corrections. Only keys present in `fields` are
        touched; coordinates change only when both lat and lng are given.
        """
        visit = await self._get_visit(visit_id)

        if fields.get("country") is not None:
            visit.country = fields["country"]
        if fields.get("continent") is not None:
            continent = canonical_continent(fields["continent"])
            if continent is None:
                raise ValidationError("Invalid continent")
            visit.continent = continent
        if fields.get("address") is not None:
            visit.address = fields["address"]
        if fields.get("city") is not None:
            visit.city = fields["city"]
        if fields.get("verificationReason") is not None:
            try:
                visit.verification_reason = VerificationReason(fields["verificationReason"])
            except ValueError:
                raise ValidationError("Invalid verification reason")
        if fields.get("lat") is not None and fields.get("lng") is not None:
            try:
                lat, lng = float(fields["lat"]), float(fields["lng"])
            except (TypeError, ValueError):
                raise ValidationError("Invalid coordinates")
            if not (-90 <= lat <= 90 and -180 <= lng <= 180):
                raise ValidationError("Invalid coordinates")
            visit.lat, visit.lng = lat, lng

        visit.reviewed_by = admin_id
        visit.reviewed_at = get_utc_now()
        await self.session.commit()
        await self.session.refresh(visit)

        logger.info("trip_visit_updated", visit_id=str(visit.id), admin_id=str(admin_id))
        return {
            "_id": str(visit.id),
            "country": visit.country,
            "continent": visit.continent,
            "address": visit.address,
            "city": visit.city,
            "verificationReason": VerificationReason(visit.verification_reason).value if visit.verification_reason else None,
            "lat": visit.lat,
            "lng": visit.lng,
            "reviewedBy": str(visit.reviewed_by),
            "reviewedAt": format_utc(visit.reviewed_at),
        }

    # ------------------------------------------------------------------
    # Support chat link
    # ------------------------------------------------------------------

    async def support_chat_for_visit(self, visit_id) -> dict:
        if self.official is None:
            raise NotFoundError("Official account not available")
        visit = await self._get_visit(visit_id)
        chat = SupportChatService(self.session, self.official)

        conversation = await chat.find_by_trip_visit(visit.id)
        if conversation is None:
            conversation = await chat.get_or_create(
                visit.user_id, SupportReason.TRIP_VERIFICATION.value, visit.id
            )
        return {
            "conversationId": str(conversation.id),
            "userId": str(visit.user_id),
            "tripVisitId": str(visit.id),
        }
