from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tripdesk.api.deps import get_current_user
from tripdesk.core.errors import server_error_boundary
from tripdesk.db.session import get_db
from tripdesk.models.user import User
from tripdesk.schemas.common import success
from tripdesk.schemas.visit import VisitCreate
from tripdesk.services.visit_service import record_visit

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_visit(
    request: VisitCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a visit claim. Weak location proof puts it in the review queue.
    """
    with server_error_boundary("trip_visit_record_failed", "Failed to record TripVisit", user_id=str(user.id)):
        visit = await record_visit(db, user.id, request)
    return success(
        "TripVisit recorded successfully",
        tripVisit={
            "_id": str(visit.id),
            "verificationStatus": visit.verification_status.value,
            "verificationReason": visit.verification_reason.value if visit.verification_reason else None,
            "trustLevel": visit.trust_level.value,
            "continent": visit.continent,
        },
    )
