"""
Resume RAG service facade.

Wires extraction, validation, indexing, parsing and analysis together and
exposes the entry points used by the API layer. Failures come back as
``{"success": False, "step": ..., "error": ...}`` dicts so the transport can
choose status codes from the ``step`` tag.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import tiktoken

from .analyzer import StructuredAnalyzer, build_filter
from .chat_model import StructuredChatModel
from .chunking import ResumeChunker
from .config import ResumeRAGConfig, config as default_config
from .embeddings import Embedder
from .errors import (
    ExtractionFailed,
    InvalidDocument,
    ParsingFailed,
    ResumeRAGError,
    SavingFailed,
)
from .extraction import TextExtractor
from .indexer import RAGIndexer
from .resume_parser import ResumeParser
from .retriever import Retriever
from .user_store import UserStore
from .validator import ResumeValidator
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

RESUME_SOURCE = "resume_upload"
JOB_FIT_QUERY = (
    "Evaluate this candidate's fit for the following position. "
    "Provide a detailed job_fit_analysis."
)
RED_FLAGS_QUERY = (
    "Identify all potential red flags, concerns, and areas that need "
    "clarification in this resume. Be thorough and cite specific evidence."
)
UNAVAILABLE_FIT = {
    "fit_score": None,
    "matching_skills": [],
    "missing_skills": [],
    "recommendation": "Unable to generate fit analysis",
}


def resume_doc_id(user_id: str) -> str:
    return f"resume_{user_id}"


def tiktoken_len(text: str) -> int:
    """Count tokens using tiktoken for accurate chunk sizing."""
    try:
        encoding = tiktoken.get_encoding("cl100k_base")  # GPT-4 encoding
        return len(encoding.encode(text))
    except Exception as e:
        logger.warning(
            f"Failed to count tokens with tiktoken, falling back to len(): {e}"
        )
        return len(text)


def build_job_description(
    job_description: str,
    job_title: Optional[str] = None,
    required_skills: Optional[Sequence[str]] = None,
    preferred_skills: Optional[Sequence[str]] = None,
) -> str:
    full = f"Position: {job_title}\n\n{job_description}" if job_title else job_description
    if required_skills:
        full += "\n\nRequired Skills: " + ", ".join(required_skills)
    if preferred_skills:
        full += "\n\nPreferred Skills: " + ", ".join(preferred_skills)
    return full


class ResumeRAGService:
    """Entry points for resume ingestion and analysis."""

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        chat_model: StructuredChatModel,
        user_store: UserStore,
        rag_config: Optional[ResumeRAGConfig] = None,
        extractor: Optional[TextExtractor] = None,
    ):
        self.config = rag_config or default_config
        self.store = store
        self.user_store = user_store
        self.extractor = extractor or TextExtractor()
        self.validator = ResumeValidator(self.config.validation)
        self.chunker = ResumeChunker(self.config.chunking)
        self.indexer = RAGIndexer(
            embedder,
            store,
            chunker=self.chunker,
            validator=self.validator,
            vector_config=self.config.vector_store,
        )
        self.retriever = Retriever(embedder, store, self.config.retrieval)
        self.analyzer = StructuredAnalyzer(
            self.retriever, chat_model, self.config.analysis, self.config.retrieval
        )
        self.parser = ResumeParser(chat_model, self.config.analysis)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    async def ingest(
        self, user_id: str, pdf_bytes: bytes, doc_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """PDF bytes -> extract -> validate -> (index || parse + save).

        Returns an ``Ok`` dict (``success: True``) with chunk stats and the
        parsed profile, or an ``Err`` dict tagged with the failing step.
        Parser and save failures are reported under ``profileError`` without
        failing the ingestion.
        """
        doc_id = doc_id or resume_doc_id(user_id)
        started = time.perf_counter()
        try:
            extracted = await self.extractor.extract(pdf_bytes)
        except ExtractionFailed as exc:
            logger.info(f"Extraction failed doc_id={doc_id} user_id={user_id}: {exc}")
            await self._discard_previous(doc_id)
            return exc.to_dict()
        extract_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Extracted doc_id={doc_id} pages={extracted.num_pages} "
            f"chars={len(extracted.text)} extract_ms={extract_ms:.0f}"
        )
        return await self.ingest_text(
            user_id, extracted.text, doc_id=doc_id, num_pages=extracted.num_pages
        )

    async def ingest_text(
        self,
        user_id: str,
        text: str,
        doc_id: Optional[str] = None,
        num_pages: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Ingest already-extracted text (same flow as :meth:`ingest`)."""
        doc_id = doc_id or resume_doc_id(user_id)
        try:
            validation = self.validator.validate(text)
        except InvalidDocument as exc:
            logger.info(
                f"Validation failed doc_id={doc_id} user_id={user_id} check={exc.check}"
            )
            await self._discard_previous(doc_id)
            return exc.to_dict()
        for warning in validation.warnings:
            logger.warning(f"doc_id={doc_id}: {warning}")

        metadata = {
            "docId": doc_id,
            "userId": user_id,
            "source": RESUME_SOURCE,
            "uploadTimestamp": datetime.now(timezone.utc).isoformat(),
        }
        index_outcome, (profile, profile_error) = await asyncio.gather(
            self._index(text, metadata),
            self._parse_and_save(user_id, doc_id, text),
        )
        if isinstance(index_outcome, ResumeRAGError):
            return index_outcome.to_dict()

        result: Dict[str, Any] = {
            "success": True,
            "docId": doc_id,
            "chunksIndexed": index_outcome.chunks_indexed,
            "stats": index_outcome.stats,
            "vectorIndexed": True,
            "profile": profile,
            "metadata": {
                "pagesProcessed": num_pages,
                "charactersExtracted": len(text),
                "keywordsFound": validation.keywords_found,
                "warnings": validation.warnings,
                "replacedExisting": index_outcome.replaced_existing,
                "backend": self.store.backend,
            },
        }
        if profile_error:
            result["profileError"] = profile_error
        return result

    async def _discard_previous(self, doc_id: str) -> None:
        # A rejected upload must not leave the previous copy searchable; a store
        # outage here is logged and the original rejection is still reported
        try:
            await self.indexer.delete_document(doc_id)
        except ResumeRAGError as exc:
            logger.error(f"Could not remove previous vectors doc_id={doc_id}: {exc}")

    async def _index(self, text: str, metadata: Dict[str, Any]):
        try:
            return await self.indexer.index_document(text, metadata, validate=False)
        except ResumeRAGError as exc:
            logger.error(f"Indexing failed doc_id={metadata['docId']}: {exc}")
            return exc

    async def _parse_and_save(
        self, user_id: str, doc_id: str, text: str
    ) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        try:
            parsed = await self.parser.parse(text)
            profile = {**parsed.to_storage(), "docId": doc_id}
            await self.user_store.put_resume_profile(user_id, profile)
        except (ParsingFailed, SavingFailed) as exc:
            logger.warning(f"Profile {exc.step} failed for user_id={user_id}: {exc}")
            return None, {"step": exc.step, "message": exc.message}
        return profile, None

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------
    async def analyze(
        self,
        user_id: Optional[str] = None,
        doc_id: Optional[str] = None,
        query: Optional[str] = None,
        job_description: Optional[str] = None,
        top_k: Optional[int] = None,
    ) -> Dict[str, Any]:
        try:
            return await self.analyzer.analyze_resume(
                query,
                job_description,
                user_id=user_id,
                doc_id=doc_id,
                top_k=top_k,
            )
        except ResumeRAGError as exc:
            logger.info(f"Analysis unsuccessful doc_id={doc_id} user_id={user_id}: {exc}")
            return exc.to_dict()

    async def query(self, user_id: Optional[str], question: str) -> Dict[str, Any]:
        return await self.analyze(
            user_id=user_id, query=question, top_k=self.config.retrieval.default_top_k
        )

    async def skill_match(
        self,
        required_skills: Sequence[str],
        user_id: Optional[str] = None,
        doc_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.analyzer.analyze_skill_match(
            required_skills, where=build_filter(user_id, doc_id)
        )

    async def analyze_job_fit(
        self,
        job_description: str,
        *,
        user_id: Optional[str] = None,
        doc_id: Optional[str] = None,
        job_title: Optional[str] = None,
        required_skills: Optional[Sequence[str]] = None,
        preferred_skills: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        result = await self.analyze(
            user_id=user_id,
            doc_id=doc_id,
            query=JOB_FIT_QUERY,
            job_description=build_job_description(
                job_description, job_title, required_skills, preferred_skills
            ),
            top_k=self.config.retrieval.job_fit_top_k,
        )
        if not result.get("success"):
            return result
        data = result["data"]
        return {
            "success": True,
            "jobTitle": job_title or "Unspecified",
            "candidateName": data.get("candidate_name"),
            "fitAnalysis": data.get("job_fit_analysis") or dict(UNAVAILABLE_FIT),
            "fullAnalysis": data,
            "metadata": result["metadata"],
        }

    async def get_red_flags(
        self, user_id: Optional[str] = None, doc_id: Optional[str] = None
    ) -> Dict[str, Any]:
        result = await self.analyze(
            user_id=user_id,
            doc_id=doc_id,
            query=RED_FLAGS_QUERY,
            top_k=self.config.retrieval.red_flags_top_k,
        )
        if not result.get("success"):
            return result
        data = result["data"]
        red_flags: List[Dict[str, Any]] = data.get("red_flags") or []
        severity_counts = {"low": 0, "medium": 0, "high": 0}
        for flag in red_flags:
            severity_counts[flag.get("severity", "medium")] += 1
        return {
            "success": True,
            "candidateName": data.get("candidate_name"),
            "redFlags": red_flags,
            "strengths": data.get("strengths") or [],
            "totalFlags": len(red_flags),
            "severityCounts": severity_counts,
            "sources": data.get("sources") or [],
        }

    # ------------------------------------------------------------------
    # Documents and stats
    # ------------------------------------------------------------------
    async def exists(self, doc_id: str) -> bool:
        return await self.store.exists(doc_id)

    async def delete_document(self, doc_id: str) -> None:
        await self.indexer.delete_document(doc_id)

    async def stats(self) -> Dict[str, Any]:
        return await self.store.stats()

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.user_store.get_resume_profile(user_id)

    async def document_stats(self, doc_id: str) -> Dict[str, Any]:
        """Chunk and token counts for one indexed document."""
        records = await self.store.fetch({"docId": doc_id})
        token_counts = [
            tiktoken_len(r.text or r.metadata.get("text", "")) for r in records
        ]
        sections: List[str] = []
        for record in sorted(records, key=lambda r: r.metadata.get("chunkIndex", 0)):
            section = record.metadata.get("section", "unknown")
            if section not in sections:
                sections.append(section)
        total_tokens = sum(token_counts)
        return {
            "doc_id": doc_id,
            "chunk_count": len(records),
            "total_tokens": total_tokens,
            "avg_chunk_tokens": total_tokens / len(records) if records else 0,
            "sections": sections,
        }
