import logging
from unittest.mock import AsyncMock, Mock

import pytest

from app.services.knowledge_service import (
    CONTEXT_HEADER,
    KnowledgeBaseService,
    KnowledgeContext,
    KnowledgeSnippet,
    render_knowledge_message,
    truncate_text,
)


def _query_result(rows):
    """rows: (document, metadata, distance) tuples for a single query."""
    return {
        "ids": [[f"id-{index}" for index in range(len(rows))]],
        "documents": [[row[0] for row in rows]],
        "metadatas": [[row[1] for row in rows]],
        "distances": [[row[2] for row in rows]],
    }


def _service(rows=None, query_side_effect=None, embed_side_effect=None, **kwargs):
    collection = Mock()
    collection.query = AsyncMock(return_value=_query_result(rows or []), side_effect=query_side_effect)
    client = Mock()
    client.get_or_create_collection = AsyncMock(return_value=collection)
    client.heartbeat = AsyncMock(return_value=1)
    embedder = Mock()
    embedder.embed = AsyncMock(return_value=[[0.1, 0.2, 0.3]], side_effect=embed_side_effect)
    service = KnowledgeBaseService(
        client_factory=AsyncMock(return_value=client),
        collection_name="knowledge_base",
        embedder=embedder,
        **kwargs,
    )
    return service, client, collection, embedder


class TestRendering:
    def test_truncate_text_adds_ellipsis(self):
        assert truncate_text("abcdefghij", 6) == "abc..."
        assert truncate_text("short", 10) == "short"

    def test_render_includes_title_source_and_score(self):
        snippet = KnowledgeSnippet(title="Hours", source="faq.md", content="Open 9-5", distance=0.25, similarity=0.75)
        message = render_knowledge_message([snippet], per_document_limit=300)

        assert message["role"] == "system"
        assert message["content"] == f"{CONTEXT_HEADER}\n- (Hours | source: faq.md | score: 0.2500) Open 9-5"

    def test_render_without_scores(self):
        snippet = KnowledgeSnippet(title="Hours", source="faq.md", content="Open", distance=0.1, similarity=0.9)
        message = render_knowledge_message([snippet], per_document_limit=300, include_scores=False)
        assert "score" not in message["content"]

    def test_context_render_limits_snippets(self):
        snippets = [
            KnowledgeSnippet(title=f"T{i}", source="s", content=f"content {i}", distance=0.1, similarity=0.9)
            for i in range(5)
        ]
        context = KnowledgeContext(snippets=snippets, per_document_limit=300)

        assert context.message["content"].count("\n- ") == 5
        assert context.render(3)["content"].count("\n- ") == 3
        assert "T0" in context.render(1)["content"]
        assert "T1" not in context.render(1)["content"]


class TestPerDocumentLimit:
    def test_splits_character_budget_across_results(self):
        service, *_ = _service(max_results=5, max_characters=1500)
        assert service.per_document_limit == 300

    def test_has_floor_of_two_hundred(self):
        service, *_ = _service(max_results=5, max_characters=500)
        assert service.per_document_limit == 200


class TestBuildKnowledgeContext:
    @pytest.mark.asyncio
    async def test_returns_snippets_above_threshold(self):
        service, _, collection, embedder = _service(
            rows=[
                ("Refunds within 30 days", {"title": "Refunds", "source": "policy.md"}, 0.1),
                ("Shipping is free", {"title": "Shipping", "source": "faq.md"}, 0.25),
                ("Unrelated", {"title": "Other", "source": "x.md"}, 0.6),
            ]
        )

        context = await service.build_knowledge_context("c1", "how do refunds work?")

        assert [s.title for s in context.snippets] == ["Refunds", "Shipping"]
        assert context.snippets[0].similarity == pytest.approx(0.9)
        embedder.embed.assert_awaited_once_with(["how do refunds work?"])
        kwargs = collection.query.call_args.kwargs
        assert kwargs["query_embeddings"] == [[0.1, 0.2, 0.3]]
        assert kwargs["n_results"] == 5
        assert set(kwargs["include"]) == {"documents", "metadatas", "distances"}

    @pytest.mark.asyncio
    async def test_falls_back_to_raw_results_when_all_filtered(self, caplog):
        service, *_ = _service(
            rows=[
                ("Far one", {"title": "A", "source": "a.md"}, 0.5),
                ("Far two", {"title": "B", "source": "b.md"}, 0.6),
            ]
        )

        with caplog.at_level(logging.WARNING, logger="concierge.knowledge_service"):
            context = await service.build_knowledge_context("c1", "question")

        assert [s.title for s in context.snippets] == ["A", "B"]
        records = [r for r in caplog.records if r.getMessage() == "chroma.query.all_filtered"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert records[0].context["conversation_id"] == "c1"
        assert records[0].context["threshold"] == 0.7
        assert records[0].context["max_similarity"] == pytest.approx(0.5)
        assert records[0].context["total_results"] == 2

    @pytest.mark.asyncio
    async def test_fallback_respects_max_results(self):
        rows = [(f"doc {i}", {"title": f"T{i}", "source": "s"}, 0.9) for i in range(4)]
        service, *_ = _service(rows=rows, max_results=2)

        context = await service.build_knowledge_context("c1", "question")

        assert len(context.snippets) == 2

    @pytest.mark.asyncio
    async def test_missing_metadata_gets_defaults(self):
        service, *_ = _service(rows=[("Some text", None, 0.1)])

        context = await service.build_knowledge_context("c1", "question")

        assert context.snippets[0].title == "snippet-1"
        assert context.snippets[0].source == "unknown"

    @pytest.mark.asyncio
    async def test_no_results_returns_none(self):
        service, *_ = _service(rows=[])
        assert await service.build_knowledge_context("c1", "question") is None

    @pytest.mark.asyncio
    async def test_empty_documents_are_dropped(self):
        service, *_ = _service(rows=[("", {"title": "Empty"}, 0.1)])
        assert await service.build_knowledge_context("c1", "question") is None

    @pytest.mark.asyncio
    async def test_embedding_failure_returns_none(self):
        service, _, collection, _ = _service(embed_side_effect=RuntimeError("rate limited"))

        assert await service.build_knowledge_context("c1", "question") is None
        collection.query.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_failure_returns_none(self):
        service, *_ = _service(query_side_effect=ConnectionError("ECONNREFUSED"))
        assert await service.build_knowledge_context("c1", "question") is None

    @pytest.mark.asyncio
    async def test_unavailable_collection_returns_none(self):
        embedder = Mock()
        embedder.embed = AsyncMock(return_value=[[0.1]])
        service = KnowledgeBaseService(
            client_factory=AsyncMock(side_effect=ConnectionError("refused")),
            collection_name="knowledge_base",
            embedder=embedder,
        )

        assert await service.build_knowledge_context("c1", "question") is None
        embedder.embed.assert_not_called()


class TestCollectionResolution:
    @pytest.mark.asyncio
    async def test_collection_is_resolved_once(self):
        service, client, *_ = _service(rows=[("Text", {"title": "T", "source": "s"}, 0.1)])

        await service.build_knowledge_context("c1", "one")
        await service.build_knowledge_context("c1", "two")

        client.get_or_create_collection.assert_awaited_once_with(name="knowledge_base")

    @pytest.mark.asyncio
    async def test_failed_resolution_is_retried(self):
        collection = Mock()
        collection.query = AsyncMock(return_value=_query_result([("Text", {"title": "T"}, 0.1)]))
        client = Mock()
        client.get_or_create_collection = AsyncMock(side_effect=[ConnectionError("down"), collection])
        embedder = Mock()
        embedder.embed = AsyncMock(return_value=[[0.1]])
        service = KnowledgeBaseService(
            client_factory=AsyncMock(return_value=client),
            collection_name="knowledge_base",
            embedder=embedder,
        )

        assert await service.get_collection() is None
        assert await service.get_collection() is collection

    @pytest.mark.asyncio
    async def test_warm_up_reports_ready(self):
        service, client, *_ = _service()

        assert await service.warm_up() is True
        client.heartbeat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_warm_up_never_raises(self):
        embedder = Mock()
        service = KnowledgeBaseService(
            client_factory=AsyncMock(side_effect=ConnectionError("refused")),
            collection_name="knowledge_base",
            embedder=embedder,
        )

        assert await service.warm_up() is False
