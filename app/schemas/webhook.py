from typing import Any, Optional

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """Twilio WhatsApp webhook fields used by the bot."""

    sender: str = Field(alias="From", min_length=1)
    body: str = Field(alias="Body", min_length=1)
    message_sid: Optional[str] = Field(default=None, alias="MessageSid")
    profile_name: Optional[str] = Field(default=None, alias="ProfileName")


class WebhookResponse(BaseModel):
    success: bool
    messageSid: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
