from typing import List, Optional

from pydantic_settings import BaseSettings

from app.services.prompts import DEFAULT_SYSTEM_PROMPT, FACTUAL_QUERY_KEYWORDS, FALLBACK_RESPONSE


class Settings(BaseSettings):
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_token_limit: int = 4000
    openai_timeout_seconds: float = 30.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    embedding_model: str = "text-embedding-3-small"

    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_ssl: bool = False
    chroma_collection: str = "knowledge_base"
    chroma_max_results: int = 5
    chroma_max_characters: int = 1500
    chroma_similarity_threshold: float = 0.7
    chroma_include_scores: bool = True

    session_timeout_ms: int = 15 * 60 * 1000
    reply_timeout_seconds: float = 45.0
    factual_query_keywords: List[str] = list(FACTUAL_QUERY_KEYWORDS)
    fallback_response: str = FALLBACK_RESPONSE

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_from: Optional[str] = None
    twilio_messaging_service_sid: Optional[str] = None

    google_service_account_email: Optional[str] = None
    google_service_account_private_key: Optional[str] = None
    google_drive_folder_id: Optional[str] = None

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
