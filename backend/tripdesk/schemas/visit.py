from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from tripdesk.models.trip_visit import ContentType, TrustLevel, VisitSource


class VisitCreate(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    source: VisitSource = VisitSource.MANUAL_ONLY
    trust_level: Optional[TrustLevel] = None
    content_type: ContentType = ContentType.POST
    caption: Optional[str] = None
    media_storage_keys: List[str] = []
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    continent: Optional[str] = None
    taken_at: Optional[datetime] = None
