"""
RAG indexer: validate -> chunk -> (delete previous) -> embed -> upsert.

At most one live copy of a document is kept: any vectors already stored under
the same ``docId`` are removed before the new ones are written. Indexing runs
for the same ``docId`` are serialized; different documents index in parallel.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain_core.documents import Document

from .chunking import ResumeChunker, get_chunk_stats
from .config import VectorStoreConfig
from .embeddings import Embedder
from .validator import ResumeValidator
from .vector_store import VectorRecord, VectorStore

logger = logging.getLogger(__name__)

METADATA_TEXT_LIMIT = 1000


@dataclass(frozen=True)
class IndexResult:
    doc_id: str
    chunks_indexed: int
    stats: Dict[str, Any] = field(default_factory=dict)
    replaced_existing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "docId": self.doc_id,
            "chunksIndexed": self.chunks_indexed,
            "stats": self.stats,
            "replacedExisting": self.replaced_existing,
        }


class DocumentLocks:
    """One asyncio lock per document id, dropped when nobody holds or waits.

    Dropping idle locks keeps the table small and avoids reusing a lock from
    an event loop that has since closed.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, List[Any]] = {}

    @asynccontextmanager
    async def hold(self, doc_id: str) -> AsyncIterator[None]:
        with self._guard:
            entry = self._entries.get(doc_id)
            if entry is None:
                entry = [asyncio.Lock(), 0]
                self._entries[doc_id] = entry
            entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(doc_id, None)

    def active(self) -> List[str]:
        with self._guard:
            return list(self._entries)


def build_document_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Base metadata inherited by every chunk of a document."""
    meta = dict(metadata or {})
    doc_id = meta.get("docId") or str(uuid.uuid4())
    meta.update(
        {
            "docId": doc_id,
            "source": meta.get("source") or "upload",
            "uploadTimestamp": meta.get("uploadTimestamp")
            or datetime.now(timezone.utc).isoformat(),
            "userId": meta.get("userId") or "unknown",
        }
    )
    return meta


class RAGIndexer:
    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        chunker: Optional[ResumeChunker] = None,
        validator: Optional[ResumeValidator] = None,
        vector_config: Optional[VectorStoreConfig] = None,
    ):
        self.embedder = embedder
        self.store = store
        self.chunker = chunker or ResumeChunker()
        self.validator = validator or ResumeValidator()
        self.config = vector_config or VectorStoreConfig()
        self.locks = DocumentLocks()

    async def index_document(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        validate: bool = True,
    ) -> IndexResult:
        """Index ``text`` as a single document, replacing any previous copy.

        Args:
            text: Resume text.
            metadata: Document metadata; ``docId`` is generated when absent.
            validate: Run the resume validator first. Callers that already
                validated the same text can skip it.

        Raises:
            InvalidDocument, EmbeddingFailed, StoreUnavailable
        """
        if validate:
            self.validator.validate(text)

        base = build_document_metadata(metadata)
        doc_id = base["docId"]
        documents = self.chunker.chunk_text(text, base)
        stats = get_chunk_stats(documents)

        async with self.locks.hold(doc_id):
            removed = await self.store.delete_by_filter({"docId": doc_id})
            if removed:
                logger.info(f"Replaced {removed} existing vectors for doc_id={doc_id}")

            started = time.perf_counter()
            vectors = await self.embedder.embed_documents(
                [d.page_content for d in documents]
            )
            embed_ms = (time.perf_counter() - started) * 1000

            records = self._build_records(doc_id, documents, vectors)
            started = time.perf_counter()
            await self._upsert_batches(records)
            upsert_ms = (time.perf_counter() - started) * 1000

        logger.info(
            f"Indexed doc_id={doc_id} user_id={base['userId']} chunks={len(records)} "
            f"embed_ms={embed_ms:.0f} upsert_ms={upsert_ms:.0f}"
        )
        return IndexResult(
            doc_id=doc_id,
            chunks_indexed=len(records),
            stats=stats,
            replaced_existing=bool(removed),
        )

    async def delete_document(self, doc_id: str) -> int:
        async with self.locks.hold(doc_id):
            removed = await self.store.delete_by_filter({"docId": doc_id})
        logger.info(f"Deleted {removed} vectors for doc_id={doc_id}")
        return removed

    def _build_records(
        self, doc_id: str, documents: List[Document], vectors: List[List[float]]
    ) -> List[VectorRecord]:
        records = []
        for i, (doc, values) in enumerate(zip(documents, vectors)):
            metadata = dict(doc.metadata)
            metadata["text"] = doc.page_content[:METADATA_TEXT_LIMIT]
            records.append(
                VectorRecord(
                    id=f"{doc_id}_chunk_{i}",
                    values=values,
                    metadata=metadata,
                    text=doc.page_content,
                )
            )
        return records

    async def _upsert_batches(self, records: List[VectorRecord]) -> None:
        batch_size = max(1, self.config.upsert_batch_size)
        for start in range(0, len(records), batch_size):
            if start:
                await asyncio.sleep(self.config.batch_pause_s)
            batch = records[start : start + batch_size]
            await self.store.upsert(batch)
            logger.debug(f"Upserted batch {start // batch_size + 1} ({len(batch)} vectors)")
