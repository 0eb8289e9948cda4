#!/usr/bin/env python3
"""
Load knowledge documents into Chroma with OpenAI embeddings.
Usage: python scripts/load_knowledge.py <documents.json>
"""

import sys
from pathlib import Path

import chromadb

from app.config import settings
from app.logging_config import setup_logging
from app.services.knowledge_loader import get_embeddings, load_documents, upsert_documents


def main():
    setup_logging(settings.log_level)
    if not settings.openai_api_key:
        print("Missing OPENAI_API_KEY env var", file=sys.stderr)
        sys.exit(1)
    if len(sys.argv) < 2:
        print("Usage: python scripts/load_knowledge.py <documents.json>")
        sys.exit(1)

    path = Path(sys.argv[1]).resolve()
    collection_name, documents = load_documents(path)
    collection_name = collection_name or settings.chroma_collection
    print(f"Loaded {len(documents)} documents from {path}")
    if not documents:
        print("Nothing to embed.")
        return

    embeddings = get_embeddings(
        [document.text for document in documents],
        settings.openai_api_key,
        model=settings.embedding_model,
        url=f"{settings.openai_base_url.rstrip('/')}/embeddings",
    )

    client = chromadb.HttpClient(host=settings.chroma_host, port=settings.chroma_port, ssl=settings.chroma_ssl)
    client.heartbeat()
    collection = client.get_or_create_collection(name=collection_name)
    total = upsert_documents(collection, documents, embeddings)

    print(f"\nDone! Upserted {total} documents into '{collection_name}'")


if __name__ == "__main__":
    main()
