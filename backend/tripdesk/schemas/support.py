from pydantic import BaseModel, Field
from typing import Optional


class SendMessageRequest(BaseModel):
    text: str = Field(..., description="Message body; trimmed, must not be blank")


class CreateConversationRequest(BaseModel):
    """Admin-initiated support conversation"""
    userId: Optional[str] = None
    reason: str = "support"
    refId: Optional[str] = None
    initialMessage: Optional[str] = None
