from pydantic import BaseModel, Field
from typing import Optional


class RejectRequest(BaseModel):
    note: Optional[str] = None


class UpdateTripVisitRequest(BaseModel):
    """Reviewer corrections. Omitted fields are left unchanged."""
    country: Optional[str] = None
    continent: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    verificationReason: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
