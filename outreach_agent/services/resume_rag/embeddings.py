"""Embedding adapter over LangChain ``Embeddings`` implementations."""

from __future__ import annotations

import asyncio
import logging
import re
import zlib
from typing import List, Optional, Sequence

import numpy as np
from langchain_core.embeddings import Embeddings

from .config import EmbeddingConfig
from .errors import EmbeddingFailed

logger = logging.getLogger(__name__)


class HashingEmbeddings(Embeddings):
    """Offline bag-of-words embeddings.

    Each token is hashed (crc32) into one of ``size - 1`` buckets and the
    histogram is L2-normalized; component 0 is a constant bias. Texts sharing
    words score higher, and every pair scores at least 0.5, so retrieval keeps
    working without an embedding provider.
    """

    def __init__(self, size: int = 1536):
        self.size = size

    def _embed(self, text: str) -> List[float]:
        bow = np.zeros(self.size - 1)
        for token in re.findall(r"\w+", text.lower()):
            bow[zlib.crc32(token.encode("utf-8")) % (self.size - 1)] += 1.0
        norm = np.linalg.norm(bow)
        if norm:
            bow = bow / norm
        return [1.0] + bow.tolist()

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._embed(text)


def build_default_embeddings(embedding_config: EmbeddingConfig) -> Embeddings:
    # In offline/dev mode (no OPENAI_API_KEY) use hashing embeddings so ingestion
    # and retrieval still run without network calls, keeping dimensions fixed.
    if not embedding_config.openai_api_key:
        logger.warning("OPENAI_API_KEY not set - using offline HashingEmbeddings")
        return HashingEmbeddings(size=embedding_config.dimensions)

    # Lazy import so tests and offline runs never need the OpenAI client
    from langchain_openai import OpenAIEmbeddings

    return OpenAIEmbeddings(
        model=embedding_config.model,
        dimensions=embedding_config.dimensions,
        max_retries=3,
    )


class Embedder:
    """Batch and query embedding with shape checks and timeouts.

    A whole batch either succeeds with one vector per input, in input order,
    or fails with :class:`EmbeddingFailed`.
    """

    def __init__(
        self,
        embeddings: Optional[Embeddings] = None,
        embedding_config: Optional[EmbeddingConfig] = None,
    ):
        self.config = embedding_config or EmbeddingConfig()
        self.embeddings = embeddings or build_default_embeddings(self.config)
        self.dimensions = self.config.dimensions

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            vectors = await asyncio.wait_for(
                self.embeddings.aembed_documents(list(texts)),
                timeout=self.config.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingFailed(
                f"Embedding timed out after {self.config.timeout_s}s"
            ) from exc
        except Exception as exc:
            logger.error(f"Embedding batch of {len(texts)} failed: {exc}")
            raise EmbeddingFailed(f"Embedding failed: {exc}") from exc

        if len(vectors) != len(texts):
            raise EmbeddingFailed(
                f"Embedding count mismatch: got {len(vectors)} for {len(texts)} texts"
            )
        for vector in vectors:
            self._check_dimensions(vector)
        return [list(v) for v in vectors]

    async def embed_query(self, text: str) -> List[float]:
        try:
            vector = await asyncio.wait_for(
                self.embeddings.aembed_query(text), timeout=self.config.timeout_s
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingFailed(
                f"Query embedding timed out after {self.config.timeout_s}s"
            ) from exc
        except Exception as exc:
            logger.error(f"Query embedding failed: {exc}")
            raise EmbeddingFailed(f"Query embedding failed: {exc}") from exc
        self._check_dimensions(vector)
        return list(vector)

    def _check_dimensions(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimensions:
            raise EmbeddingFailed(
                f"Embedding dimension mismatch: expected={self.dimensions}, got={len(vector)}"
            )
