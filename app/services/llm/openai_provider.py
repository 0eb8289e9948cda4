import math
from typing import List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import (
    EmbeddingError,
    LLMError,
    LLMInvalidRequestError,
    LLMProvider,
    LLMRateLimitError,
    LLMResponse,
)

logger = get_logger("llm.openai")


def is_embedding_vector(value) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(
            isinstance(element, (int, float)) and not isinstance(element, bool) and math.isfinite(element)
            for element in value
        )
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message") or response.text
    return response.text


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions and embeddings over the REST API."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.embedding_model = embedding_model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(f"{self.base_url}{path}", headers=self._headers(), json=payload)

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate a chat completion. Missing content is returned as None, never as ""."""
        model = model or self.default_model
        payload: dict = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_completion_tokens"] = max_tokens

        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")
        try:
            response = await self._post("/chat/completions", payload)
        except httpx.HTTPError as exc:
            logger.error(f"OpenAI transport error: {exc}")
            raise LLMError(f"OpenAI API transport error: {exc}") from exc

        if response.status_code != 200:
            detail = _error_detail(response)
            logger.error(
                "openai.request.failed",
                extra={"context": {"status": response.status_code, "error": detail[:500]}},
            )
            if response.status_code == 429:
                raise LLMRateLimitError(f"OpenAI rate limit exceeded: {detail}")
            if response.status_code == 400:
                raise LLMInvalidRequestError(f"OpenAI invalid request: {detail}")
            raise LLMError(
                f"OpenAI API error: {response.status_code} - {detail}",
                status_code=response.status_code,
                error_code=response.status_code,
            )

        data = response.json()
        content = None
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(content=content, model=data.get("model", model), usage=data.get("usage"))

    async def embed(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """Embed texts with the embeddings endpoint, validating every returned vector."""
        model = model or self.embedding_model
        try:
            response = await self._post("/embeddings", {"model": model, "input": texts})
        except httpx.HTTPError as exc:
            logger.error("openai.embedding.api.failed", extra={"context": {"error": str(exc), "input_length": len(texts)}})
            raise EmbeddingError(f"OpenAI embedding API error: {exc}") from exc

        if response.status_code != 200:
            detail = _error_detail(response)
            is_rate_limit = response.status_code == 429 or "rate_limit" in detail
            logger.error(
                "openai.embedding.api.failed",
                extra={
                    "context": {
                        "error": detail[:500],
                        "is_rate_limit": is_rate_limit,
                        "status_code": response.status_code,
                        "input_length": len(texts),
                    }
                },
            )
            if is_rate_limit:
                raise EmbeddingError(
                    "OpenAI embedding API rate limit exceeded. Please try again later.",
                    is_rate_limit=True,
                    status_code=response.status_code,
                    error_code=429,
                )
            raise EmbeddingError(
                f"OpenAI embedding API error: {detail}",
                status_code=response.status_code,
                error_code=response.status_code,
            )

        items = sorted(response.json().get("data") or [], key=lambda item: item.get("index", 0))
        if len(items) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings from OpenAI, got {len(items)}",
                error_code="EMBEDDING_INVALID",
            )

        vectors: List[List[float]] = []
        for index, item in enumerate(items):
            embedding = item.get("embedding")
            if not is_embedding_vector(embedding):
                logger.error(
                    "openai.embedding.invalid",
                    extra={"context": {"index": index, "embedding_type": type(embedding).__name__}},
                )
                raise EmbeddingError(
                    f"Invalid embedding vector received from OpenAI at index {index}",
                    error_code="EMBEDDING_INVALID",
                )
            vectors.append(embedding)
        return vectors
