"""Reply generation pipeline: history, knowledge retrieval, token budgeting, LLM call."""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from app.logging_config import LoggerAdapter, bind_conversation, get_logger
from app.services.conversation_history import ChatMessage, ConversationHistory
from app.services.knowledge_service import KnowledgeBaseService, KnowledgeContext, KnowledgeEntry
from app.services.llm.base import LLMError, LLMProvider, LLMResponse, LLMResponseEmptyError
from app.services.session_manager import SessionManager

logger = get_logger("reply_service")

# Knowledge chunk counts tried after the full context fails to fit, most relevant first.
DEGRADATION_TIERS = (3, 1)

NormalizeReply = Callable[[str, Sequence[KnowledgeEntry]], str]


class ReplyError(Exception):
    """Base class for failures raised by the reply pipeline itself."""


class ReplyTimeoutError(ReplyError):
    pass


class HistoryPersistError(ReplyError):
    pass


class MessageTooLongError(ReplyError):
    """The incoming user turn cannot fit the token limit next to the system prompt."""


@dataclass
class TokenUsage:
    total_tokens: int = 0
    usage_tokens: Optional[int] = None
    request_tokens: int = 0
    conversation_tokens: int = 0
    knowledge_tokens: int = 0
    user_tokens: int = 0
    duration_ms: int = 0


@dataclass
class KnowledgeSummary:
    applied: bool = False
    chunks_used: int = 0
    original_chunks: int = 0
    entries: List[KnowledgeEntry] = field(default_factory=list)


@dataclass
class GenerateReplyResult:
    response: str
    tokens: TokenUsage
    knowledge: KnowledgeSummary
    fallback: bool = False


@dataclass
class AppliedKnowledge:
    messages: List[ChatMessage]
    chunks_used: int = 0
    message: Optional[ChatMessage] = None

    @property
    def applied(self) -> bool:
        return self.chunks_used > 0 and self.message is not None


@dataclass
class TokenBreakdown:
    request_tokens: int
    knowledge_tokens: int
    user_tokens: int
    conversation_tokens: int


def _last_user_index(messages: List[ChatMessage]) -> int:
    """Index of the newest user turn, or ``len(messages)`` when there is none."""
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].get("role") == "user":
            return index
    return len(messages)


class _KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ReplyService:
    def __init__(
        self,
        provider: LLMProvider,
        conversation_history: ConversationHistory,
        knowledge_base: KnowledgeBaseService,
        session_manager: SessionManager,
        *,
        model: str,
        token_limit: int,
        factual_keywords: Sequence[str],
        fallback_response: str,
        normalize_reply: NormalizeReply,
        reply_timeout_seconds: float = 0.0,
    ):
        self.provider = provider
        self.conversation_history = conversation_history
        self.knowledge_base = knowledge_base
        self.session_manager = session_manager
        self.model = model
        self.token_limit = token_limit
        self.factual_keywords = [keyword.lower() for keyword in factual_keywords if keyword]
        self.fallback_response = fallback_response
        self.normalize_reply = normalize_reply
        self.reply_timeout_seconds = reply_timeout_seconds
        self._locks = _KeyedLocks()

    def is_factual_query(self, message: str) -> bool:
        lowered = message.lower()
        return any(keyword in lowered for keyword in self.factual_keywords)

    def _ensure_fresh_session(self, conversation_id: str) -> None:
        if self.session_manager.is_session_expired(conversation_id):
            self.conversation_history.reset_conversation(conversation_id)
            self.session_manager.reset_session(conversation_id)
        self.session_manager.update_activity(conversation_id)

    def _record_user_message(self, conversation_id: str, message: str) -> List[ChatMessage]:
        self._ensure_fresh_session(conversation_id)
        messages = self.conversation_history.get_messages(conversation_id)
        self.conversation_history.add_message(conversation_id, {"role": "user", "content": message})
        return messages

    def _ensure_user_turn_fits(self, messages: List[ChatMessage], log: LoggerAdapter) -> None:
        tokens = self.conversation_history.count_tokens(messages)
        if tokens <= self.token_limit:
            return
        # Drop the user turn recorded above.
        messages.pop()
        log.warning(
            "conversation.user_message.too_long",
            context={"tokens": tokens, "token_limit": self.token_limit},
        )
        raise MessageTooLongError(f"User message needs {tokens} tokens, limit is {self.token_limit}")

    async def _retrieve_knowledge(self, conversation_id: str, message: str, log: LoggerAdapter):
        try:
            return await self.knowledge_base.build_knowledge_context(conversation_id, message)
        except Exception as exc:
            log.error("knowledge.retrieval.failed", context={"error": str(exc)}, exc_info=True)
            return None

    def _with_context(self, request_messages: List[ChatMessage], context_message: ChatMessage) -> List[ChatMessage]:
        index = _last_user_index(request_messages)
        return [*request_messages[:index], context_message, *request_messages[index:]]

    def apply_knowledge_context(
        self,
        request_messages: List[ChatMessage],
        knowledge_context: Optional[KnowledgeContext],
        log: Optional[LoggerAdapter] = None,
    ) -> AppliedKnowledge:
        """Fit knowledge into the token budget: all chunks, then 3, then 1, then none."""
        log = log or LoggerAdapter(logger, {})
        if knowledge_context is None or not knowledge_context.snippets:
            return AppliedKnowledge(messages=list(request_messages))

        original_chunks = len(knowledge_context.snippets)
        tiers = [original_chunks] + [tier for tier in DEGRADATION_TIERS if original_chunks > tier]

        for chunks in tiers:
            context_message = knowledge_context.render(chunks)
            candidate = self._with_context(request_messages, context_message)
            if self.conversation_history.count_tokens(candidate) <= self.token_limit:
                if chunks < original_chunks:
                    log.warning(
                        "chroma.context.degraded",
                        context={
                            "reason": "token_limit",
                            "original_chunks": original_chunks,
                            "reduced_chunks": chunks,
                        },
                    )
                return AppliedKnowledge(messages=candidate, chunks_used=chunks, message=context_message)

        log.warning(
            "chroma.context.dropped_all",
            context={"reason": "token_limit", "original_chunks": original_chunks},
        )
        return AppliedKnowledge(messages=list(request_messages))

    def calculate_token_breakdown(self, request_messages: List[ChatMessage], applied: AppliedKnowledge) -> TokenBreakdown:
        count = self.conversation_history.count_tokens
        request_tokens = count(request_messages)
        knowledge_tokens = count([applied.message]) if applied.applied else 0
        index = _last_user_index(request_messages)
        user_turn = request_messages[index] if index < len(request_messages) else {"role": "user", "content": ""}
        user_tokens = count([user_turn])
        return TokenBreakdown(
            request_tokens=request_tokens,
            knowledge_tokens=knowledge_tokens,
            user_tokens=user_tokens,
            conversation_tokens=max(0, request_tokens - knowledge_tokens - user_tokens),
        )

    async def _call_llm(self, request_messages: List[ChatMessage], log: LoggerAdapter) -> LLMResponse:
        try:
            return await self.provider.generate(request_messages, model=self.model)
        except LLMError as exc:
            log.error(
                "openai.request.failed",
                context={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "status_code": exc.status_code,
                },
            )
            raise
        except Exception as exc:
            log.error("openai.request.failed", context={"error": str(exc), "error_type": "unexpected"})
            raise LLMError(f"OpenAI request failed: {exc}") from exc

    def _extract_content(self, response: LLMResponse, log: LoggerAdapter) -> str:
        if not response.content or not response.content.strip():
            log.error("openai.response.empty", context={"usage": response.usage})
            raise LLMResponseEmptyError()
        return response.content

    def _save_assistant_reply(self, conversation_id: str, content: str) -> None:
        try:
            self.conversation_history.add_message(conversation_id, {"role": "assistant", "content": content})
        except Exception as exc:
            raise HistoryPersistError(f"Failed to store assistant reply for {conversation_id}") from exc

    def _fallback_result(
        self,
        message: str,
        user_tokens: int,
        knowledge: KnowledgeSummary,
        log: LoggerAdapter,
    ) -> GenerateReplyResult:
        log.info(
            "fallback.response.triggered",
            context={"message": message[:200], "reason": "missing_knowledge_context"},
        )
        return GenerateReplyResult(
            response=self.fallback_response,
            tokens=TokenUsage(user_tokens=user_tokens),
            knowledge=knowledge,
            fallback=True,
        )

    async def _generate(self, conversation_id: str, message: str, log: LoggerAdapter) -> GenerateReplyResult:
        messages = self._record_user_message(conversation_id, message)
        trimmed_before_call = self.conversation_history.trim_context(messages, keep_latest=True)
        self._ensure_user_turn_fits(messages, log)

        knowledge_context = await self._retrieve_knowledge(conversation_id, message, log)
        is_factual = self.is_factual_query(message)

        applied = self.apply_knowledge_context(list(messages), knowledge_context, log)
        request_messages = applied.messages
        trimmed_request = self.conversation_history.trim_context(request_messages, keep_latest=True)
        breakdown = self.calculate_token_breakdown(request_messages, applied)

        entries = knowledge_context.entries[: applied.chunks_used] if applied.applied else []
        knowledge = KnowledgeSummary(
            applied=applied.applied,
            chunks_used=applied.chunks_used,
            original_chunks=len(knowledge_context.snippets) if knowledge_context else 0,
            entries=entries,
        )

        if is_factual and not applied.applied:
            return self._fallback_result(message, breakdown.user_tokens, knowledge, log)

        log.info(
            "openai.tokens.breakdown",
            context={
                "request_tokens": breakdown.request_tokens,
                "conversation_tokens": breakdown.conversation_tokens,
                "knowledge_tokens": breakdown.knowledge_tokens,
                "user_tokens": breakdown.user_tokens,
                "token_limit": self.token_limit,
                "chunks_used": applied.chunks_used,
                "original_chunks": knowledge.original_chunks,
                "is_factual": is_factual,
            },
        )

        started_at = time.monotonic()
        response = await self._call_llm(request_messages, log)
        content = self._extract_content(response, log)

        normalized = self.normalize_reply(content, entries)
        self._save_assistant_reply(conversation_id, normalized)
        trimmed_after_call = self.conversation_history.trim_context(messages, keep_latest=True)

        usage_tokens = (response.usage or {}).get("total_tokens")
        tokens = TokenUsage(
            total_tokens=self.conversation_history.count_tokens(messages),
            usage_tokens=usage_tokens,
            request_tokens=breakdown.request_tokens,
            conversation_tokens=breakdown.conversation_tokens,
            knowledge_tokens=breakdown.knowledge_tokens,
            user_tokens=breakdown.user_tokens,
            duration_ms=int((time.monotonic() - started_at) * 1000),
        )
        log.info(
            "openai.tokens",
            context={
                "total_tokens": tokens.total_tokens,
                "usage_tokens": tokens.usage_tokens,
                "duration_ms": tokens.duration_ms,
                "trimmed": trimmed_before_call or trimmed_request or trimmed_after_call,
                "knowledge_applied": knowledge.applied,
                "request_tokens": tokens.request_tokens,
            },
        )
        return GenerateReplyResult(response=normalized, tokens=tokens, knowledge=knowledge)

    async def _generate_serialized(self, conversation_id: str, message: str, log: LoggerAdapter) -> GenerateReplyResult:
        async with self._locks.hold(conversation_id):
            return await self._generate(conversation_id, message, log)

    async def generate_reply(self, conversation_id: str, message: str) -> GenerateReplyResult:
        """Produce the assistant reply for one inbound message.

        Calls for the same conversation id are serialised. Missing or oversized knowledge
        degrades silently; upstream and invariant failures are logged and re-raised.
        """
        log = bind_conversation(logger, conversation_id, self.model)
        try:
            if self.reply_timeout_seconds and self.reply_timeout_seconds > 0:
                return await asyncio.wait_for(
                    self._generate_serialized(conversation_id, message, log),
                    timeout=self.reply_timeout_seconds,
                )
            return await self._generate_serialized(conversation_id, message, log)
        except asyncio.TimeoutError as exc:
            log.error("reply.generate.timeout", context={"timeout_seconds": self.reply_timeout_seconds})
            raise ReplyTimeoutError(
                f"Reply generation exceeded {self.reply_timeout_seconds}s for {conversation_id}"
            ) from exc
        except Exception as exc:
            log.error(
                "reply.generate.failed",
                context={"message": message[:200], "error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise

    def reset_conversation(self, conversation_id: str) -> None:
        self.conversation_history.reset_conversation(conversation_id)
        self.session_manager.reset_session(conversation_id)

    def get_conversation_history(self, conversation_id: str) -> List[ChatMessage]:
        return self.conversation_history.get_messages(conversation_id)
