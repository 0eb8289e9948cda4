from app.services.conversation_history import ConversationHistory, get_tokenizer
from app.services.knowledge_service import (
    KnowledgeBaseService,
    KnowledgeContext,
    KnowledgeEntry,
    KnowledgeSnippet,
)
from app.services.reply_normalizer import normalize_assistant_reply
from app.services.reply_service import (
    GenerateReplyResult,
    HistoryPersistError,
    KnowledgeSummary,
    MessageTooLongError,
    ReplyError,
    ReplyService,
    ReplyTimeoutError,
    TokenUsage,
)
from app.services.session_manager import SessionManager
