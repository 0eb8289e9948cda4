import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from app.logging_config import get_logger

logger = get_logger("knowledge_service")

CONTEXT_HEADER = "Knowledge base context:"
MIN_DOCUMENT_CHARS = 200
CONNECTION_ERROR_MARKERS = ("ECONNREFUSED", "ENOTFOUND", "timeout", "connection", "Connect")


class Embedder(Protocol):
    async def embed(self, texts: List[str]) -> List[List[float]]: ...


@dataclass(frozen=True)
class KnowledgeEntry:
    title: str
    source: str


@dataclass(frozen=True)
class KnowledgeSnippet:
    title: str
    source: str
    content: str
    distance: Optional[float] = None
    similarity: Optional[float] = None

    @property
    def entry(self) -> KnowledgeEntry:
        return KnowledgeEntry(title=self.title, source=self.source)


def truncate_text(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return f"{value[: max(0, limit - 3)]}..."


def render_knowledge_message(
    snippets: List[KnowledgeSnippet],
    per_document_limit: int,
    include_scores: bool = True,
) -> dict:
    """Render snippets into one system-role chat turn, one line per snippet."""
    lines = [CONTEXT_HEADER]
    for snippet in snippets:
        score = f" | score: {snippet.distance:.4f}" if include_scores and snippet.distance is not None else ""
        lines.append(
            f"- ({snippet.title} | source: {snippet.source}{score}) "
            f"{truncate_text(snippet.content, per_document_limit)}"
        )
    return {"role": "system", "content": "\n".join(lines)}


@dataclass
class KnowledgeContext:
    snippets: List[KnowledgeSnippet]
    per_document_limit: int
    include_scores: bool = True
    message: dict = field(init=False)

    def __post_init__(self) -> None:
        self.message = self.render()

    @property
    def entries(self) -> List[KnowledgeEntry]:
        return [snippet.entry for snippet in self.snippets]

    def render(self, limit: Optional[int] = None) -> dict:
        """Render the first ``limit`` snippets (all when None) fresh from the structured list."""
        selected = self.snippets if limit is None else self.snippets[:limit]
        return render_knowledge_message(selected, self.per_document_limit, self.include_scores)


def _is_connection_error(exc: BaseException) -> bool:
    text = f"{type(exc).__name__}: {exc}"
    return any(marker in text for marker in CONNECTION_ERROR_MARKERS)


def _first_row(value: Any) -> list:
    if not value:
        return []
    row = value[0]
    return list(row) if row is not None else []


class KnowledgeBaseService:
    """Retrieve ranked knowledge snippets from a Chroma collection.

    Every external failure degrades to ``None``; callers treat that as "answer without knowledge".
    """

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[Any]],
        collection_name: str,
        embedder: Embedder,
        max_results: int = 5,
        max_characters: int = 1500,
        similarity_threshold: float = 0.7,
        include_scores: bool = True,
    ):
        self._client_factory = client_factory
        self.collection_name = collection_name
        self._embedder = embedder
        self.max_results = max_results
        self.max_characters = max_characters
        self.similarity_threshold = similarity_threshold
        self.include_scores = include_scores
        self._client = None
        self._collection = None
        self._lock = asyncio.Lock()

    @property
    def per_document_limit(self) -> int:
        return max(MIN_DOCUMENT_CHARS, self.max_characters // max(1, self.max_results))

    async def _get_client(self):
        if self._client is None:
            self._client = await self._client_factory()
        return self._client

    async def get_collection(self):
        """Resolve the collection once; a failed resolution is retried on the next call."""
        async with self._lock:
            if self._collection is not None:
                return self._collection
            try:
                client = await self._get_client()
                self._collection = await client.get_or_create_collection(name=self.collection_name)
            except Exception as exc:
                self._client = None
                logger.error(
                    "chroma.collection.resolve.failed",
                    extra={
                        "context": {
                            "collection": self.collection_name,
                            "error": str(exc),
                            "is_connection_error": _is_connection_error(exc),
                        }
                    },
                    exc_info=True,
                )
                return None
            return self._collection

    async def warm_up(self) -> bool:
        """Check the backend and resolve the collection at startup. Never raises."""
        try:
            client = await self._get_client()
            await client.heartbeat()
            logger.info("chroma.heartbeat.success", extra={"context": {"collection": self.collection_name}})
        except Exception as exc:
            self._client = None
            logger.error("chroma.heartbeat.failed", extra={"context": {"error": str(exc)}})

        collection = await self.get_collection()
        if collection is not None:
            logger.info("chroma.collection.ready", extra={"context": {"collection": self.collection_name}})
        return collection is not None

    def _to_snippets(self, documents: list, metadatas: list, distances: list) -> List[KnowledgeSnippet]:
        snippets = []
        for index, document in enumerate(documents):
            metadata = (metadatas[index] if index < len(metadatas) else None) or {}
            title = metadata.get("title")
            source = metadata.get("source")
            distance = distances[index] if index < len(distances) else None
            if not isinstance(distance, (int, float)):
                distance = None
            snippets.append(
                KnowledgeSnippet(
                    title=title if isinstance(title, str) else f"snippet-{index + 1}",
                    source=source if isinstance(source, str) else "unknown",
                    content=document or "",
                    distance=distance,
                    similarity=1 - distance if distance is not None else None,
                )
            )
        return snippets

    async def build_knowledge_context(self, conversation_id: str, user_message: str) -> Optional[KnowledgeContext]:
        log_context = {"conversation_id": conversation_id, "collection": self.collection_name}

        collection = await self.get_collection()
        if collection is None:
            logger.warning("chroma.collection.unavailable", extra={"context": log_context})
            return None

        try:
            query_embeddings = await self._embedder.embed([user_message])
        except Exception as exc:
            logger.warning("openai.embedding.failed", extra={"context": {**log_context, "error": str(exc)}})
            return None

        if not query_embeddings:
            logger.warning("openai.embedding.empty", extra={"context": log_context})
            return None

        try:
            result = await collection.query(
                query_embeddings=query_embeddings,
                n_results=self.max_results,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            logger.error(
                "chroma.query.failed",
                extra={
                    "context": {
                        **log_context,
                        "error": str(exc),
                        "is_connection_error": _is_connection_error(exc),
                    }
                },
                exc_info=True,
            )
            return None

        candidates = self._to_snippets(
            _first_row(result.get("documents")),
            _first_row(result.get("metadatas")),
            _first_row(result.get("distances")),
        )
        if not candidates:
            logger.info(
                "chroma.query.empty",
                extra={"context": {**log_context, "requested_results": self.max_results}},
            )
            return None

        selected = []
        for snippet in candidates:
            if snippet.similarity is not None and snippet.similarity >= self.similarity_threshold:
                selected.append(snippet)
            else:
                logger.info(
                    "chroma.query.result.filtered",
                    extra={
                        "context": {
                            "conversation_id": conversation_id,
                            "title": snippet.title,
                            "similarity": snippet.similarity,
                            "threshold": self.similarity_threshold,
                        }
                    },
                )

        if not selected:
            similarities = [s.similarity for s in candidates if s.similarity is not None]
            logger.warning(
                "chroma.query.all_filtered",
                extra={
                    "context": {
                        **log_context,
                        "threshold": self.similarity_threshold,
                        "max_similarity": max(similarities) if similarities else None,
                        "total_results": len(candidates),
                        "requested_results": self.max_results,
                    }
                },
            )
            selected = candidates[: self.max_results]

        selected = [snippet for snippet in selected if snippet.content]
        if not selected:
            return None

        context = KnowledgeContext(
            snippets=selected,
            per_document_limit=self.per_document_limit,
            include_scores=self.include_scores,
        )
        logger.info(
            "chroma.query.success",
            extra={
                "context": {
                    **log_context,
                    "results": len(selected),
                    "threshold": self.similarity_threshold,
                }
            },
        )
        return context
