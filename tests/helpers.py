from datetime import datetime, timedelta, timezone

from app.services.knowledge_service import KnowledgeContext, KnowledgeSnippet

SYSTEM_PROMPT = "You are a helpful assistant"


class WordTokenizer:
    """One token per whitespace-separated word."""

    def encode(self, text: str) -> list:
        return list(range(len(text.split())))


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now = self.now + timedelta(milliseconds=ms)


def make_snippets(count: int, words_per_snippet: int = 5) -> list:
    return [
        KnowledgeSnippet(
            title=f"Doc {index + 1}",
            source=f"doc-{index + 1}.md",
            content=" ".join(["word"] * words_per_snippet),
            distance=0.1,
            similarity=0.9,
        )
        for index in range(count)
    ]


def make_context(count: int, words_per_snippet: int = 5) -> KnowledgeContext:
    return KnowledgeContext(snippets=make_snippets(count, words_per_snippet), per_document_limit=1000)
