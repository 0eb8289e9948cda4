from app.services.llm.base import (
    EmbeddingError,
    LLMError,
    LLMInvalidRequestError,
    LLMProvider,
    LLMRateLimitError,
    LLMResponse,
    LLMResponseEmptyError,
)
from app.services.llm.openai_provider import OpenAIProvider

__all__ = [
    "EmbeddingError",
    "LLMError",
    "LLMInvalidRequestError",
    "LLMProvider",
    "LLMRateLimitError",
    "LLMResponse",
    "LLMResponseEmptyError",
    "OpenAIProvider",
]
