"""Load knowledge documents from JSON, embed them, and upsert them into Chroma."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests

from app.logging_config import get_logger

logger = get_logger("knowledge_loader")

EMBEDDING_BATCH_SIZE = 64
OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"


class DocumentFileError(ValueError):
    pass


@dataclass
class KnowledgeDocument:
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def normalize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Chroma metadata values must be scalars; lists are stored as JSON strings."""
    if not metadata:
        return {}
    normalized = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = json.dumps(list(value), ensure_ascii=False)
        elif not isinstance(value, (str, int, float, bool)):
            raise DocumentFileError(f"Unsupported metadata value for {key!r}: {type(value).__name__}")
        normalized[key] = value
    return normalized


def _require_text(item: dict, id_key: str, text_key: str, index: int) -> Tuple[str, str]:
    doc_id, text = item.get(id_key), item.get(text_key)
    if not isinstance(doc_id, str) or not doc_id:
        raise DocumentFileError(f"Record {index}: document id is required")
    if not isinstance(text, str) or not text:
        raise DocumentFileError(f"Record {index}: document text is required")
    return doc_id, text


def parse_documents(payload: Any) -> Tuple[Optional[str], List[KnowledgeDocument]]:
    """Accept ``{"collection": {...}, "records": [{id, document, metadata}]}`` or ``[{id, text, metadata}]``."""
    if isinstance(payload, dict) and isinstance(payload.get("records"), list):
        collection = payload.get("collection") or {}
        name = collection.get("name") if isinstance(collection, dict) else None
        documents = []
        for index, record in enumerate(payload["records"]):
            doc_id, text = _require_text(record, "id", "document", index)
            documents.append(KnowledgeDocument(doc_id, text, normalize_metadata(record.get("metadata"))))
        return name, documents

    if isinstance(payload, list):
        documents = []
        for index, item in enumerate(payload):
            doc_id, text = _require_text(item, "id", "text", index)
            documents.append(KnowledgeDocument(doc_id, text, normalize_metadata(item.get("metadata"))))
        return None, documents

    raise DocumentFileError("Expected a records file or a list of documents")


def load_documents(path: Path) -> Tuple[Optional[str], List[KnowledgeDocument]]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_documents(json.load(f))


def get_embeddings(
    texts: List[str],
    api_key: str,
    model: str = "text-embedding-3-small",
    batch_size: int = EMBEDDING_BATCH_SIZE,
    url: str = OPENAI_EMBEDDINGS_URL,
) -> List[List[float]]:
    if batch_size <= 0:
        raise ValueError(f"Invalid batch size: {batch_size}")

    embeddings: List[List[float]] = []
    for start in range(0, len(texts), batch_size):
        batch = [text.replace("\n", " ") for text in texts[start : start + batch_size]]
        response = requests.post(
            url,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={"model": model, "input": batch},
            timeout=60,
        )
        response.raise_for_status()
        data = sorted(response.json()["data"], key=lambda item: item.get("index", 0))
        embeddings.extend(item["embedding"] for item in data)
    return embeddings


def upsert_documents(collection, documents: List[KnowledgeDocument], embeddings: List[List[float]]) -> int:
    if len(documents) != len(embeddings):
        raise ValueError(f"Expected {len(documents)} embeddings, got {len(embeddings)}")
    if not documents:
        return 0
    collection.upsert(
        ids=[document.id for document in documents],
        documents=[document.text for document in documents],
        metadatas=[document.metadata or {"document_id": document.id} for document in documents],
        embeddings=embeddings,
    )
    logger.info(
        "chroma.documents.upserted",
        extra={"context": {"collection": getattr(collection, "name", None), "count": len(documents)}},
    )
    return len(documents)
