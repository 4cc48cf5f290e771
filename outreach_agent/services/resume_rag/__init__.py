"""
Resume RAG Package

Retrieval-augmented resume analysis:
- extraction.py: PDF text extraction
- validator.py: fail-fast resume detection
- chunking.py: section-aware chunking
- embeddings.py / vector_store.py: embedding and vector storage
- indexer.py: per-document replacement indexing
- retriever.py / analyzer.py: retrieval and structured analysis
- resume_parser.py / user_store.py: parsed profile extraction and storage
- service.py: facade used by the API
"""

import logging
import threading
from typing import Any, Optional

from .config import ResumeRAGConfig
from .service import ResumeRAGService

logger = logging.getLogger(__name__)

_service: Optional[ResumeRAGService] = None
_service_lock = threading.Lock()


def get_resume_rag_service(
    app: Any = None,
    rag_config: Optional[ResumeRAGConfig] = None,
) -> ResumeRAGService:
    """
    Return the process-wide ResumeRAGService, building it on first use.

    Concurrent first calls converge on a single instance. The vector backend is
    chosen once here: Chroma when credentials are present, the in-memory store
    otherwise (or when Chroma cannot be initialized).

    Args:
        app: Flask app; when given, parsed profiles are stored in its database,
             otherwise in memory.
        rag_config: Explicit configuration (defaults to the env-driven config)

    Returns:
        Shared ResumeRAGService instance
    """
    global _service
    if _service is not None:
        return _service

    with _service_lock:
        if _service is None:
            _service = _build_service(app, rag_config)
    return _service


def _build_service(app: Any, rag_config: Optional[ResumeRAGConfig]) -> ResumeRAGService:
    from .config import config
    from .chat_model import StructuredChatModel
    from .embeddings import Embedder
    from .user_store import InMemoryUserStore, SqlUserStore
    from .vector_store import create_vector_store

    rag_config = rag_config or config
    logger.info(f"Building ResumeRAGService config={rag_config.to_dict()}")

    store = create_vector_store(rag_config)
    user_store = SqlUserStore(app) if app is not None else InMemoryUserStore()
    return ResumeRAGService(
        embedder=Embedder(embedding_config=rag_config.embedding),
        store=store,
        chat_model=StructuredChatModel(analysis_config=rag_config.analysis),
        user_store=user_store,
        rag_config=rag_config,
    )


def reset_resume_rag_service() -> None:
    """Drop the shared instance (tests)."""
    global _service
    with _service_lock:
        _service = None


__all__ = [
    "ResumeRAGConfig",
    "ResumeRAGService",
    "get_resume_rag_service",
    "reset_resume_rag_service",
]
