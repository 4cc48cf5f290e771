from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .config import RetrievalConfig
from .embeddings import Embedder
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

NO_CONTEXT_TEXT = "No relevant resume content found."


@dataclass(frozen=True)
class RetrievedChunk:
    """A scored chunk as handed to the analyzer."""

    id: str
    content: str
    section: str
    score: float
    chunk_index: Optional[int] = None
    doc_id: Optional[str] = None


class Retriever:
    """Embed a query, fetch top-K chunks and drop low-relevance hits."""

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        retrieval_config: Optional[RetrievalConfig] = None,
    ):
        self.embedder = embedder
        self.store = store
        self.config = retrieval_config or RetrievalConfig()

    async def retrieve_context(
        self,
        query: str,
        *,
        top_k: Optional[int] = None,
        where: Optional[Dict[str, Any]] = None,
        min_score: Optional[float] = None,
    ) -> List[RetrievedChunk]:
        top_k = self.config.default_top_k if top_k is None else top_k
        min_score = self.config.min_score_threshold if min_score is None else min_score

        vector = await self.embedder.embed_query(query)
        matches = await self.store.query(vector, top_k, where or None)

        chunks = [
            RetrievedChunk(
                id=m.id,
                content=m.text or m.metadata.get("text") or "",
                section=m.metadata.get("section") or "unknown",
                score=m.score,
                chunk_index=m.metadata.get("chunkIndex"),
                doc_id=m.metadata.get("docId"),
            )
            for m in matches
            if m.score >= min_score
        ]
        logger.info(
            f"Retrieved {len(chunks)}/{len(matches)} chunks above min_score={min_score} "
            f"filter={where or {}}"
        )
        return chunks


def format_context(chunks: Sequence[RetrievedChunk]) -> str:
    """Render chunks as numbered, relevance-tagged blocks for the prompt."""
    if not chunks:
        return NO_CONTEXT_TEXT
    return "\n\n".join(
        f"### Section {i}: {chunk.section.upper()} "
        f"(Relevance: {chunk.score * 100:.1f}%)\n{chunk.content}\n---"
        for i, chunk in enumerate(chunks, start=1)
    )
