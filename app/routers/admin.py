"""Operator endpoints for inspecting and resetting in-memory conversations."""

from fastapi import APIRouter, Depends

from app.dependencies import get_reply_service
from app.logging_config import get_logger
from app.schemas.conversation import ConversationResetResponse, ConversationResponse, ConversationTurn, SessionInfo
from app.services.reply_service import ReplyService

logger = get_logger("admin")

router = APIRouter(prefix="/conversations", tags=["admin"])


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: str, reply_service: ReplyService = Depends(get_reply_service)):
    history = reply_service.conversation_history
    sessions = reply_service.session_manager
    messages = history.get_messages(conversation_id) if history.has_conversation(conversation_id) else []
    return ConversationResponse(
        conversation_id=conversation_id,
        messages=[ConversationTurn(role=turn["role"], content=turn.get("content")) for turn in messages],
        token_count=history.count_tokens(messages),
        session=SessionInfo(
            started_at=sessions.get_session_start_time(conversation_id),
            last_activity_at=sessions.get_last_activity_time(conversation_id),
            age_ms=sessions.get_session_age_ms(conversation_id),
            expires_in_ms=sessions.get_time_until_expiration_ms(conversation_id),
        ),
    )


@router.delete("/{conversation_id}", response_model=ConversationResetResponse)
async def reset_conversation(conversation_id: str, reply_service: ReplyService = Depends(get_reply_service)):
    reply_service.reset_conversation(conversation_id)
    logger.info("conversation.reset", extra={"context": {"conversation_id": conversation_id}})
    return ConversationResetResponse(conversation_id=conversation_id)
