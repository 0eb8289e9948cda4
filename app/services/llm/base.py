from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Union

from app.services.error_codes import user_message_for


@dataclass
class LLMResponse:
    content: Optional[str]
    model: str
    usage: Optional[dict] = None


class LLMError(Exception):
    """Upstream LLM failure with a message that is safe to show an operator or user."""

    def __init__(
        self,
        message: str,
        *,
        user_message: str = "AI service error",
        status_code: Optional[int] = None,
        error_code: Optional[Union[int, str]] = None,
    ):
        super().__init__(message)
        self.user_message = user_message
        self.status_code = status_code
        self.error_code = error_code


class LLMRateLimitError(LLMError):
    def __init__(self, message: str, *, status_code: Optional[int] = 429):
        super().__init__(
            message,
            user_message=user_message_for(429, "openai", "Rate limit exceeded"),
            status_code=status_code,
            error_code=429,
        )


class LLMInvalidRequestError(LLMError):
    def __init__(self, message: str, *, status_code: Optional[int] = 400):
        super().__init__(
            message,
            user_message=user_message_for(400, "openai", "Invalid request"),
            status_code=status_code,
            error_code=400,
        )


class LLMResponseEmptyError(LLMError):
    def __init__(self, message: str = "No content returned from OpenAI response"):
        super().__init__(
            message,
            user_message=user_message_for("RESPONSE_EMPTY", "system", "Service temporarily unavailable"),
            error_code="RESPONSE_EMPTY",
        )


class EmbeddingError(LLMError):
    def __init__(
        self,
        message: str,
        *,
        is_rate_limit: bool = False,
        status_code: Optional[int] = None,
        error_code: Optional[Union[int, str]] = None,
    ):
        if is_rate_limit:
            user_message = user_message_for(429, "openai", "Rate limit exceeded")
        else:
            user_message = user_message_for("EMBEDDING_INVALID", "system", "Knowledge base processing error")
        super().__init__(message, user_message=user_message, status_code=status_code, error_code=error_code)
        self.is_rate_limit = is_rate_limit


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate a chat completion."""

    @abstractmethod
    async def embed(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """Embed texts, one vector per input."""
