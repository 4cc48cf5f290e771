"""
Services package for the outreach agent.

This package contains the business logic used by the API blueprints:
- resume_rag: Resume ingestion, retrieval and structured analysis
- background_loop: Shared asyncio loop for calling async services from Flask
"""

from .background_loop import BackgroundLoop, run_async
from .resume_rag import (
    ResumeRAGService,
    get_resume_rag_service,
    reset_resume_rag_service,
)

__all__ = [
    "BackgroundLoop",
    "run_async",
    "ResumeRAGService",
    "get_resume_rag_service",
    "reset_resume_rag_service",
]
