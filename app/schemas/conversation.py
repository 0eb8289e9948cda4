from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel


class ConversationTurn(BaseModel):
    role: str
    content: Any


class SessionInfo(BaseModel):
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    age_ms: Optional[int] = None
    expires_in_ms: Optional[int] = None


class ConversationResponse(BaseModel):
    conversation_id: str
    messages: List[ConversationTurn]
    token_count: int
    session: SessionInfo


class ConversationResetResponse(BaseModel):
    conversation_id: str
    reset: bool = True
