from typing import Any, Dict, List, Protocol

from app.logging_config import get_logger

logger = get_logger("conversation_history")

# Per-turn framing overhead and reply priming, as counted by OpenAI chat models.
TOKENS_PER_MESSAGE = 3
TOKENS_REPLY_PRIMING = 3
FALLBACK_ENCODING = "cl100k_base"

ChatMessage = Dict[str, Any]


class Tokenizer(Protocol):
    def encode(self, text: str) -> List[int]: ...


def get_tokenizer(model: str) -> Tokenizer:
    """Resolve the tiktoken encoding for a model, falling back to cl100k_base."""
    import tiktoken

    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        logger.warning(f"No tiktoken encoding for model {model}, using {FALLBACK_ENCODING}")
        return tiktoken.get_encoding(FALLBACK_ENCODING)


def content_to_text(content: Any) -> str:
    """Flatten string or multi-part chat content to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "\n".join(parts)
    return str(content)


class ConversationHistory:
    """Bounded in-memory chat log per conversation id.

    Every conversation starts with exactly one system turn, which trimming never removes.
    """

    def __init__(self, model: str, token_limit: int, system_prompt: str, tokenizer: Tokenizer):
        self.model = model
        self.token_limit = token_limit
        self.system_prompt = system_prompt
        self._tokenizer = tokenizer
        self._conversations: Dict[str, List[ChatMessage]] = {}

    def _system_message(self) -> ChatMessage:
        return {"role": "system", "content": self.system_prompt}

    def get_messages(self, conversation_id: str) -> List[ChatMessage]:
        messages = self._conversations.get(conversation_id)
        if messages is None:
            messages = [self._system_message()]
            self._conversations[conversation_id] = messages
        return messages

    def add_message(self, conversation_id: str, message: ChatMessage) -> None:
        self.get_messages(conversation_id).append(message)

    def has_conversation(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def conversation_ids(self) -> List[str]:
        return list(self._conversations)

    def _count_content_tokens(self, content: Any) -> int:
        if isinstance(content, list):
            return sum(self._count_content_tokens(part) for part in content)
        if isinstance(content, dict):
            return self._count_content_tokens(content.get("text"))
        text = content_to_text(content)
        if not text:
            return 0
        return len(self._tokenizer.encode(text))

    def count_tokens(self, messages: List[ChatMessage]) -> int:
        if not messages:
            return 0
        total = TOKENS_REPLY_PRIMING
        for message in messages:
            total += TOKENS_PER_MESSAGE + self._count_content_tokens(message.get("content"))
        return total

    def trim_context(self, messages: List[ChatMessage], keep_latest: bool = False) -> bool:
        """Drop oldest non-system turns in place until the list fits the token limit.

        With ``keep_latest`` the final turn is never dropped, even if the list still
        exceeds the limit afterwards.
        """
        trimmed = False
        while self.count_tokens(messages) > self.token_limit:
            candidates = messages[:-1] if keep_latest else messages
            index = next((i for i, m in enumerate(candidates) if m.get("role") != "system"), None)
            if index is None:
                break
            del messages[index]
            trimmed = True

        if trimmed:
            logger.info(
                "conversation.trimmed",
                extra={
                    "context": {
                        "remaining_messages": len(messages),
                        "tokens": self.count_tokens(messages),
                        "token_limit": self.token_limit,
                    }
                },
            )
        return trimmed

    def reset_conversation(self, conversation_id: str) -> None:
        self._conversations[conversation_id] = [self._system_message()]
        logger.info("conversation.reset", extra={"context": {"conversation_id": conversation_id}})
