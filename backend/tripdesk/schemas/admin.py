from pydantic import BaseModel, EmailStr
from typing import Optional
from uuid import UUID
from tripdesk.models.admin import AdminRole

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenPayload(BaseModel):
    sub: Optional[str] = None
    scope: Optional[str] = None

class AdminResponse(BaseModel):
    id: UUID
    email: EmailStr
    role: AdminRole
    is_active: bool
