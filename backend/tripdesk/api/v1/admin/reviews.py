from typing import Optional
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.api.deps import get_current_admin, get_notification_queue, get_optional_official
from tripdesk.core.errors import server_error_boundary
from tripdesk.db.session import get_db
from tripdesk.models.admin import Admin
from tripdesk.schemas.common import success
from tripdesk.schemas.review import RejectRequest, UpdateTripVisitRequest
from tripdesk.services.notification_queue import NotificationQueue
from tripdesk.services.official_identity import OfficialIdentity
from tripdesk.services.review_workflow import ReviewWorkflow

router = APIRouter()


def get_review_workflow(
    db: AsyncSession = Depends(get_db),
    official: Optional[OfficialIdentity] = Depends(get_optional_official),
    queue: Optional[NotificationQueue] = Depends(get_notification_queue),
) -> ReviewWorkflow:
    return ReviewWorkflow(db, official, queue)


@router.get("/review/pending")
async def get_pending_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: Admin = Depends(get_current_admin),
    workflow: ReviewWorkflow = Depends(get_review_workflow),
):
    with server_error_boundary("pending_reviews_failed", "Failed to fetch pending reviews"):
        data = await workflow.list_pending(page, limit)
    return success("Pending reviews fetched successfully", **data)


@router.post("/review/{visit_id}/approve")
async def approve_trip_visit(
    visit_id: str,
    admin: Admin = Depends(get_current_admin),
    workflow: ReviewWorkflow = Depends(get_review_workflow),
):
    with server_error_boundary("trip_visit_approve_failed", "Failed to approve TripVisit", visit_id=visit_id):
        trip_visit = await workflow.approve(visit_id, admin.id)
    return success("TripVisit approved successfully", tripVisit=trip_visit)


@router.post("/review/{visit_id}/reject")
async def reject_trip_visit(
    visit_id: str,
    request: Optional[RejectRequest] = Body(None),
    admin: Admin = Depends(get_current_admin),
    workflow: ReviewWorkflow = Depends(get_review_workflow),
):
    note = request.note if request else None
    with server_error_boundary("trip_visit_reject_failed", "Failed to reject TripVisit", visit_id=visit_id):
        trip_visit = await workflow.reject(visit_id, admin.id, note)
    return success("TripVisit rejected successfully", tripVisit=trip_visit)


@router.patch("/review/{visit_id}")
async def update_trip_visit(
    visit_id: str,
    request: UpdateTripVisitRequest,
    admin: Admin = Depends(get_current_admin),
    workflow: ReviewWorkflow = Depends(get_review_workflow),
):
    with server_error_boundary("trip_visit_update_failed", "Failed to update TripVisit", visit_id=visit_id):
        trip_visit = await workflow.update(visit_id, admin.id, request.model_dump(exclude_unset=True))
    return success("TripVisit updated successfully", tripVisit=trip_visit)


@router.get("/{visit_id}/support-chat")
async def get_trip_visit_support_chat(
    visit_id: str,
    admin: Admin = Depends(get_current_admin),
    workflow: ReviewWorkflow = Depends(get_review_workflow),
):
    with server_error_boundary("trip_visit_support_chat_failed", "Failed to get support chat", visit_id=visit_id):
        data = await workflow.support_chat_for_visit(visit_id)
    return success("Support chat retrieved successfully", **data)
