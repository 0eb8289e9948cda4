from unittest.mock import AsyncMock, Mock

import pytest

from app.services.conversation_history import ConversationHistory
from app.services.session_manager import SessionManager
from tests.helpers import SYSTEM_PROMPT, FakeClock, WordTokenizer


@pytest.fixture
def tokenizer():
    return WordTokenizer()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(tokenizer):
    return ConversationHistory(model="gpt-4o-mini", token_limit=1000, system_prompt=SYSTEM_PROMPT, tokenizer=tokenizer)


@pytest.fixture
def session_manager(clock):
    return SessionManager(session_timeout_ms=15 * 60 * 1000, clock=clock)


@pytest.fixture
def knowledge_base():
    """Mock knowledge base that finds nothing."""
    kb = Mock()
    kb.build_knowledge_context = AsyncMock(return_value=None)
    return kb
