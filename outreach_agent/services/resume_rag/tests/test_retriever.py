from __future__ import annotations

import asyncio
from typing import Dict, List

import pytest
from langchain_core.embeddings import Embeddings

from outreach_agent.services.resume_rag.config import EmbeddingConfig, RetrievalConfig
from outreach_agent.services.resume_rag.embeddings import Embedder
from outreach_agent.services.resume_rag.errors import EmbeddingFailed
from outreach_agent.services.resume_rag.retriever import (
    NO_CONTEXT_TEXT,
    RetrievedChunk,
    Retriever,
    format_context,
)
from outreach_agent.services.resume_rag.vector_store import InMemoryVectorStore, VectorRecord


class _StaticEmbeddings(Embeddings):
    def __init__(self, vectors: Dict[str, List[float]]):
        self.vectors = vectors

    def embed_documents(self, texts):
        return [self.vectors[t] for t in texts]

    def embed_query(self, text):
        return self.vectors[text]


def _retriever(min_score: float = 0.1) -> Retriever:
    embedder = Embedder(
        _StaticEmbeddings({"python": [1.0, 0.0], "wrong": [1.0, 0.0, 0.0]}),
        EmbeddingConfig(dimensions=2),
    )
    store = InMemoryVectorStore()
    asyncio.run(
        store.upsert(
            [
                VectorRecord(
                    id="d1_chunk_0",
                    values=[1.0, 0.0],
                    metadata={"docId": "d1", "userId": "u1", "section": "skills", "chunkIndex": 0},
                    text="Python, Go, SQL",
                ),
                VectorRecord(
                    id="d1_chunk_1",
                    values=[0.05, 1.0],
                    metadata={
                        "docId": "d1",
                        "userId": "u1",
                        "chunkIndex": 1,
                        "text": "Hobbies: sailing",
                    },
                ),
                VectorRecord(
                    id="d2_chunk_0",
                    values=[0.8, 0.6],
                    metadata={"docId": "d2", "userId": "u2", "section": "experience", "chunkIndex": 0},
                    text="Python at Acme",
                ),
            ]
        )
    )
    return Retriever(embedder, store, RetrievalConfig(min_score_threshold=min_score))


def test_retrieve_context_filters_low_scores() -> None:
    chunks = asyncio.run(_retriever().retrieve_context("python", top_k=5))

    assert [c.id for c in chunks] == ["d1_chunk_0", "d2_chunk_0"]
    assert chunks[0].score == pytest.approx(1.0)
    assert chunks[0].section == "skills"
    assert chunks[0].doc_id == "d1"
    assert chunks[1].score == pytest.approx(0.8)


def test_retrieve_context_with_filter_and_metadata_text() -> None:
    chunks = asyncio.run(
        _retriever(min_score=0.0).retrieve_context(
            "python", top_k=5, where={"userId": {"$eq": "u1"}}
        )
    )

    assert [c.id for c in chunks] == ["d1_chunk_0", "d1_chunk_1"]
    assert chunks[1].content == "Hobbies: sailing"
    assert chunks[1].section == "unknown"


def test_query_dimension_mismatch_is_an_embedding_failure() -> None:
    with pytest.raises(EmbeddingFailed):
        asyncio.run(_retriever().retrieve_context("wrong"))


def test_format_context() -> None:
    chunks = [
        RetrievedChunk(id="a", content="Python, Go", section="skills", score=0.9123),
        RetrievedChunk(id="b", content="Acme Corp", section="experience", score=0.5),
    ]

    rendered = format_context(chunks)

    assert rendered == (
        "### Section 1: SKILLS (Relevance: 91.2%)\nPython, Go\n---\n\n"
        "### Section 2: EXPERIENCE (Relevance: 50.0%)\nAcme Corp\n---"
    )
    assert format_context([]) == NO_CONTEXT_TEXT
