from app.schemas.conversation import ConversationResetResponse, ConversationResponse, ConversationTurn, SessionInfo
from app.schemas.webhook import ErrorResponse, InboundMessage, WebhookResponse

__all__ = [
    "ConversationResetResponse",
    "ConversationResponse",
    "ConversationTurn",
    "ErrorResponse",
    "InboundMessage",
    "SessionInfo",
    "WebhookResponse",
]
