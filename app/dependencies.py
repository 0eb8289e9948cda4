"""Builds the long-lived collaborators from settings; routers receive them via Depends."""

from functools import lru_cache
from typing import Optional

from app.config import settings
from app.logging_config import get_logger
from app.services.alert_service import AlertService
from app.services.conversation_export import ConversationExporter, GoogleDriveClient
from app.services.conversation_history import ConversationHistory, get_tokenizer
from app.services.knowledge_service import KnowledgeBaseService
from app.services.llm import OpenAIProvider
from app.services.reply_normalizer import normalize_assistant_reply
from app.services.reply_service import ReplyService
from app.services.session_manager import SessionManager
from app.services.twilio_service import TwilioService

logger = get_logger("dependencies")


async def _create_chroma_client():
    import chromadb

    return await chromadb.AsyncHttpClient(
        host=settings.chroma_host,
        port=settings.chroma_port,
        ssl=settings.chroma_ssl,
    )


@lru_cache
def get_llm_provider() -> OpenAIProvider:
    return OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        embedding_model=settings.embedding_model,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.openai_timeout_seconds,
    )


@lru_cache
def get_conversation_history() -> ConversationHistory:
    return ConversationHistory(
        model=settings.openai_model,
        token_limit=settings.openai_token_limit,
        system_prompt=settings.system_prompt,
        tokenizer=get_tokenizer(settings.openai_model),
    )


@lru_cache
def get_session_manager() -> SessionManager:
    return SessionManager(session_timeout_ms=settings.session_timeout_ms)


@lru_cache
def get_knowledge_base() -> KnowledgeBaseService:
    return KnowledgeBaseService(
        client_factory=_create_chroma_client,
        collection_name=settings.chroma_collection,
        embedder=get_llm_provider(),
        max_results=settings.chroma_max_results,
        max_characters=settings.chroma_max_characters,
        similarity_threshold=settings.chroma_similarity_threshold,
        include_scores=settings.chroma_include_scores,
    )


@lru_cache
def get_reply_service() -> ReplyService:
    return ReplyService(
        provider=get_llm_provider(),
        conversation_history=get_conversation_history(),
        knowledge_base=get_knowledge_base(),
        session_manager=get_session_manager(),
        model=settings.openai_model,
        token_limit=settings.openai_token_limit,
        factual_keywords=settings.factual_query_keywords,
        fallback_response=settings.fallback_response,
        normalize_reply=normalize_assistant_reply,
        reply_timeout_seconds=settings.reply_timeout_seconds,
    )


@lru_cache
def get_twilio_service() -> TwilioService:
    if not (settings.twilio_account_sid and settings.twilio_auth_token):
        logger.warning("twilio.credentials.missing")
    return TwilioService(
        account_sid=settings.twilio_account_sid or "",
        auth_token=settings.twilio_auth_token or "",
        from_number=settings.twilio_whatsapp_from,
        messaging_service_sid=settings.twilio_messaging_service_sid,
    )


def _build_drive_client() -> Optional[GoogleDriveClient]:
    if not (settings.google_service_account_email and settings.google_service_account_private_key):
        return None
    try:
        return GoogleDriveClient(
            client_email=settings.google_service_account_email,
            private_key=settings.google_service_account_private_key,
        )
    except ValueError as exc:
        logger.error("google.drive.credentials.invalid", extra={"context": {"error": str(exc)}})
        return None


@lru_cache
def get_conversation_exporter() -> ConversationExporter:
    return ConversationExporter(_build_drive_client(), settings.google_drive_folder_id)


@lru_cache
def get_alert_service() -> AlertService:
    return AlertService(settings.alert_bot_token, settings.alert_chat_id)
