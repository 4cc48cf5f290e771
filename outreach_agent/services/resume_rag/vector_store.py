"""
Vector store backends for resume chunks.

Two implementations share one async contract:

- ``ChromaVectorStore``: ChromaDB collection (persistent or HTTP client) using
  cosine space. Chroma reports cosine distance, normalized here to
  higher-is-better similarity ``1 - distance``.
- ``InMemoryVectorStore``: process-local flat list with a ``docId -> ids``
  index and exact cosine similarity. Nothing survives a restart.

Filters are equality-only: ``{"field": value}`` or ``{"field": {"$eq": value}}``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import ResumeRAGConfig, VectorStoreConfig
from .errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass
class VectorRecord:
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    text: Optional[str] = None


@dataclass
class QueryMatch:
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    text: Optional[str] = None


def normalize_filter(where: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Collapse both equality forms into ``{field: value}``."""
    normalized: Dict[str, Any] = {}
    for key, value in (where or {}).items():
        if isinstance(value, dict):
            unsupported = set(value) - {"$eq"}
            if unsupported or "$eq" not in value:
                raise ValueError(
                    f"Unsupported filter for '{key}': only equality is allowed"
                )
            value = value["$eq"]
        normalized[key] = value
    return normalized


def matches_filter(metadata: Dict[str, Any], where: Dict[str, Any]) -> bool:
    return all(metadata.get(key) == value for key, value in where.items())


def sort_matches(matches: List[QueryMatch]) -> List[QueryMatch]:
    # Descending score, id as a stable tie-break
    return sorted(matches, key=lambda m: (-m.score, m.id))


class VectorStore(ABC):
    """Async contract the indexer and retriever rely on."""

    backend = "unknown"

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        """Insert or replace records by id; returns the number written."""

    @abstractmethod
    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[QueryMatch]:
        """Up to ``top_k`` matches, strictly descending by cosine score."""

    @abstractmethod
    async def delete_by_filter(self, where: Dict[str, Any]) -> int:
        """Remove every record matching ``where``; zero matches is not an error."""

    @abstractmethod
    async def fetch(self, where: Dict[str, Any]) -> List[VectorRecord]:
        """Records matching ``where`` (vector values may be omitted)."""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Counts for observability."""

    async def exists(self, doc_id: str) -> bool:
        return bool(await self.fetch({"docId": doc_id}))


class InMemoryVectorStore(VectorStore):
    """Exact-cosine, linear-scan store guarded by a single lock."""

    backend = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        self._vectors: List[VectorRecord] = []
        self._doc_index: Dict[str, List[str]] = {}

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        with self._lock:
            incoming = {r.id: r for r in records}
            kept = [v for v in self._vectors if v.id not in incoming]
            self._vectors = kept + list(incoming.values())
            self._rebuild_index()
        return len(records)

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[QueryMatch]:
        criteria = normalize_filter(where)
        with self._lock:
            candidates = [
                v for v in self._vectors if matches_filter(v.metadata, criteria)
            ]
        if not candidates or top_k <= 0:
            return []

        matrix = np.asarray([c.values for c in candidates], dtype=float)
        query_vec = np.asarray(vector, dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        dots = matrix @ query_vec
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        matches = [
            QueryMatch(
                id=c.id, score=float(s), metadata=dict(c.metadata), text=c.text
            )
            for c, s in zip(candidates, scores)
        ]
        return sort_matches(matches)[:top_k]

    async def delete_by_filter(self, where: Dict[str, Any]) -> int:
        criteria = normalize_filter(where)
        with self._lock:
            before = len(self._vectors)
            self._vectors = [
                v for v in self._vectors if not matches_filter(v.metadata, criteria)
            ]
            self._rebuild_index()
            removed = before - len(self._vectors)
        logger.debug(f"In-memory delete removed {removed} vectors for {criteria}")
        return removed

    async def fetch(self, where: Dict[str, Any]) -> List[VectorRecord]:
        criteria = normalize_filter(where)
        with self._lock:
            return [v for v in self._vectors if matches_filter(v.metadata, criteria)]

    async def exists(self, doc_id: str) -> bool:
        with self._lock:
            return bool(self._doc_index.get(doc_id))

    async def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": self.backend,
                "vectorCount": len(self._vectors),
                "documentCount": len(self._doc_index),
            }

    def ids_for_document(self, doc_id: str) -> List[str]:
        with self._lock:
            return list(self._doc_index.get(doc_id, []))

    def _rebuild_index(self) -> None:
        index: Dict[str, List[str]] = {}
        for record in self._vectors:
            doc_id = record.metadata.get("docId")
            if doc_id is not None:
                index.setdefault(doc_id, []).append(record.id)
        self._doc_index = index


def _to_chroma_where(where: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    criteria = normalize_filter(where)
    clauses = [{key: {"$eq": value}} for key, value in criteria.items()]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _to_chroma_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    # Chroma accepts only scalar metadata values
    clean: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            clean[key] = value
        elif isinstance(value, (list, tuple)):
            clean[key] = ", ".join(str(v) for v in value)
        else:
            clean[key] = str(value)
    return clean


class ChromaVectorStore(VectorStore):
    """ChromaDB-backed store; blocking client calls run in worker threads."""

    backend = "external"

    def __init__(
        self,
        vector_config: Optional[VectorStoreConfig] = None,
        client: Any = None,
    ):
        import chromadb

        self.config = vector_config or VectorStoreConfig()
        if client is not None:
            self.client = client
        elif self.config.chroma_host:
            self.client = chromadb.HttpClient(
                host=self.config.chroma_host, port=self.config.chroma_port
            )
        else:
            persist_path = str(
                Path(self.config.persist_directory).expanduser().resolve()
            )
            self.client = chromadb.PersistentClient(path=persist_path)
        self.collection = self.client.get_or_create_collection(
            name=self.config.collection_name, metadata={"hnsw:space": "cosine"}
        )
        logger.info(
            f"Initialized ChromaVectorStore collection='{self.config.collection_name}'"
        )

    async def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs), timeout=self.config.timeout_s
            )
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(
                f"Vector store {operation} timed out after {self.config.timeout_s}s"
            ) from exc
        except Exception as exc:
            logger.error(f"Vector store {operation} failed: {exc}")
            raise StoreUnavailable(f"Vector store {operation} failed: {exc}") from exc

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0
        await self._call(
            "upsert",
            self.collection.upsert,
            ids=[r.id for r in records],
            embeddings=[list(r.values) for r in records],
            metadatas=[_to_chroma_metadata(r.metadata) for r in records],
            documents=[r.text or r.metadata.get("text", "") for r in records],
        )
        return len(records)

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[QueryMatch]:
        if top_k <= 0:
            return []
        result = await self._call(
            "query",
            self.collection.query,
            query_embeddings=[list(vector)],
            n_results=top_k,
            where=_to_chroma_where(where),
            include=["metadatas", "documents", "distances"],
        )
        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0] or []
        documents = (result.get("documents") or [[]])[0] or []
        distances = (result.get("distances") or [[]])[0] or []

        matches = []
        for i, vector_id in enumerate(ids):
            matches.append(
                QueryMatch(
                    id=vector_id,
                    score=1.0 - float(distances[i]),
                    metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
                    text=documents[i] if i < len(documents) else None,
                )
            )
        return sort_matches(matches)

    async def delete_by_filter(self, where: Dict[str, Any]) -> int:
        chroma_where = _to_chroma_where(where)
        existing = await self._call(
            "get", self.collection.get, where=chroma_where, include=[]
        )
        ids = existing.get("ids") or []
        if ids:
            await self._call("delete", self.collection.delete, ids=ids)
        return len(ids)

    async def fetch(self, where: Dict[str, Any]) -> List[VectorRecord]:
        result = await self._call(
            "get",
            self.collection.get,
            where=_to_chroma_where(where),
            include=["metadatas", "documents"],
        )
        ids = result.get("ids") or []
        metadatas = result.get("metadatas") or []
        documents = result.get("documents") or []
        return [
            VectorRecord(
                id=vector_id,
                values=[],
                metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
                text=documents[i] if i < len(documents) else None,
            )
            for i, vector_id in enumerate(ids)
        ]

    async def exists(self, doc_id: str) -> bool:
        result = await self._call(
            "get",
            self.collection.get,
            where=_to_chroma_where({"docId": doc_id}),
            limit=1,
            include=[],
        )
        return bool(result.get("ids"))

    async def stats(self) -> Dict[str, Any]:
        count = await self._call("count", self.collection.count)
        result = await self._call("get", self.collection.get, include=["metadatas"])
        doc_ids = {
            (m or {}).get("docId") for m in (result.get("metadatas") or [])
        } - {None}
        return {
            "backend": self.backend,
            "vectorCount": count,
            "documentCount": len(doc_ids),
            "collection": self.config.collection_name,
        }


def create_vector_store(rag_config: ResumeRAGConfig) -> VectorStore:
    """Pick the backend once at startup, falling back to memory on failure."""
    if rag_config.use_in_memory_store:
        logger.info("Using in-memory vector store (dev mode or no credentials)")
        return InMemoryVectorStore()
    try:
        return ChromaVectorStore(rag_config.vector_store)
    except Exception as exc:
        logger.warning(
            f"Chroma initialization failed, falling back to in-memory store: {exc}"
        )
        return InMemoryVectorStore()
