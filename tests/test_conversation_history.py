from app.services.conversation_history import ConversationHistory, content_to_text
from tests.helpers import SYSTEM_PROMPT, WordTokenizer


def _history(token_limit: int) -> ConversationHistory:
    return ConversationHistory(
        model="gpt-4o-mini",
        token_limit=token_limit,
        system_prompt=SYSTEM_PROMPT,
        tokenizer=WordTokenizer(),
    )


class TestGetMessages:
    def test_new_conversation_starts_with_system_prompt(self, history):
        messages = history.get_messages("c1")
        assert messages == [{"role": "system", "content": SYSTEM_PROMPT}]

    def test_returns_live_list(self, history):
        messages = history.get_messages("c1")
        history.add_message("c1", {"role": "user", "content": "hi"})
        assert messages[-1] == {"role": "user", "content": "hi"}

    def test_conversations_are_isolated(self, history):
        history.add_message("a", {"role": "user", "content": "for a"})
        assert history.get_messages("b") == [{"role": "system", "content": SYSTEM_PROMPT}]

    def test_has_conversation(self, history):
        assert history.has_conversation("c1") is False
        history.get_messages("c1")
        assert history.has_conversation("c1") is True
        assert history.conversation_ids() == ["c1"]


class TestCountTokens:
    def test_empty_list_is_zero(self, history):
        assert history.count_tokens([]) == 0

    def test_counts_overhead_per_message_plus_priming(self, history):
        messages = [
            {"role": "system", "content": "one two three"},
            {"role": "user", "content": "four five"},
        ]
        assert history.count_tokens(messages) == 3 + (3 + 3) + (3 + 2)

    def test_empty_content_counts_only_overhead(self, history):
        assert history.count_tokens([{"role": "user", "content": ""}]) == 6
        assert history.count_tokens([{"role": "assistant", "content": None}]) == 6

    def test_multipart_content(self, history):
        messages = [{"role": "user", "content": [{"type": "text", "text": "a b"}, {"type": "text", "text": "c"}]}]
        assert history.count_tokens(messages) == 3 + 3 + 3

    def test_monotone_in_messages(self, history):
        messages = [{"role": "system", "content": "x"}]
        before = history.count_tokens(messages)
        messages.append({"role": "user", "content": ""})
        assert history.count_tokens(messages) > before


class TestTrimContext:
    def test_no_trim_within_limit(self, history):
        history.add_message("c1", {"role": "user", "content": "hello"})
        messages = history.get_messages("c1")
        assert history.trim_context(messages) is False
        assert len(messages) == 2

    def test_drops_oldest_non_system_turns(self):
        history = _history(token_limit=30)
        messages = history.get_messages("c1")
        for index in range(5):
            history.add_message("c1", {"role": "user", "content": f"message number {index}"})

        assert history.trim_context(messages) is True
        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert history.count_tokens(messages) <= 30
        assert messages[-1]["content"] == "message number 4"
        assert "message number 0" not in [m["content"] for m in messages]

    def test_keeps_system_turns_when_nothing_else_left(self):
        history = _history(token_limit=5)
        messages = history.get_messages("c1")
        history.add_message("c1", {"role": "user", "content": "too long for the budget"})

        history.trim_context(messages)

        assert messages == [{"role": "system", "content": SYSTEM_PROMPT}]

    def test_keep_latest_preserves_oversized_final_turn(self):
        history = _history(token_limit=12)
        messages = history.get_messages("c1")
        history.add_message("c1", {"role": "user", "content": "earlier question"})
        history.add_message("c1", {"role": "user", "content": "hello " * 20})

        assert history.trim_context(messages, keep_latest=True) is True

        assert messages == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "hello " * 20},
        ]
        assert history.count_tokens(messages) > 12

    def test_never_removes_inserted_system_context(self):
        history = _history(token_limit=25)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "old question with several words"},
            {"role": "assistant", "content": "old answer with several words"},
            {"role": "system", "content": "knowledge context here"},
            {"role": "user", "content": "new question"},
        ]

        history.trim_context(messages)

        assert {"role": "system", "content": "knowledge context here"} in messages
        assert messages[-1] == {"role": "user", "content": "new question"}
        assert history.count_tokens(messages) <= 25


class TestResetConversation:
    def test_reset_restores_single_system_turn(self, history):
        history.add_message("c1", {"role": "user", "content": "hello"})
        history.add_message("c1", {"role": "assistant", "content": "hi"})

        history.reset_conversation("c1")

        assert history.get_messages("c1") == [{"role": "system", "content": SYSTEM_PROMPT}]

    def test_reset_is_idempotent(self, history):
        history.reset_conversation("c1")
        history.reset_conversation("c1")
        assert history.get_messages("c1") == [{"role": "system", "content": SYSTEM_PROMPT}]


class TestContentToText:
    def test_handles_strings_lists_and_none(self):
        assert content_to_text("plain") == "plain"
        assert content_to_text(None) == ""
        assert content_to_text(["a", {"text": "b"}, {"image": "x"}]) == "a\nb"
