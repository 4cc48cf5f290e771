from __future__ import annotations

import asyncio

from langchain_core.embeddings import Embeddings

from outreach_agent.services.resume_rag.chat_model import StructuredChatModel
from outreach_agent.services.resume_rag.embeddings import Embedder
from outreach_agent.services.resume_rag.errors import ExtractionFailed, StoreUnavailable
from outreach_agent.services.resume_rag.extraction import ExtractedText, TextExtractor
from outreach_agent.services.resume_rag.service import (
    ResumeRAGService,
    build_job_description,
    resume_doc_id,
    tiktoken_len,
)
from outreach_agent.services.resume_rag.user_store import InMemoryUserStore
from outreach_agent.services.resume_rag.vector_store import InMemoryVectorStore


class _TextExtractor(TextExtractor):
    """Treats the upload bytes as UTF-8 text instead of a PDF."""

    def extract_sync(self, payload: bytes) -> ExtractedText:
        if not payload:
            raise ExtractionFailed("Empty file.")
        return ExtractedText(text=payload.decode("utf-8"), num_pages=2)


class _UnreachableDeleteStore(InMemoryVectorStore):
    async def delete_by_filter(self, where):
        raise StoreUnavailable("Vector store delete failed: connection refused")


class _BrokenEmbeddings(Embeddings):
    def embed_documents(self, texts):
        raise RuntimeError("quota exceeded")

    def embed_query(self, text):
        raise RuntimeError("quota exceeded")


def test_ingest_text_success(service_factory, sample_resume) -> None:
    service = service_factory()

    result = asyncio.run(service.ingest_text("u1", sample_resume))

    assert result["success"] is True
    assert result["docId"] == "resume_u1"
    assert result["vectorIndexed"] is True
    assert result["chunksIndexed"] == result["stats"]["count"] > 1
    assert result["profile"]["fullName"] == "Sarah Chen"
    assert result["profile"]["docId"] == "resume_u1"
    assert "profileError" not in result
    meta = result["metadata"]
    assert meta["charactersExtracted"] == len(sample_resume)
    assert meta["replacedExisting"] is False
    assert meta["backend"] == "memory"
    assert "experience" in meta["keywordsFound"]

    stored = asyncio.run(service.get_profile("u1"))
    assert stored["skills"] == ["Python", "Go", "Kubernetes"]


def test_ingest_pdf_bytes_through_extractor(service_factory, sample_resume) -> None:
    service = service_factory()
    service.extractor = _TextExtractor()

    result = asyncio.run(service.ingest("u1", sample_resume.encode("utf-8")))

    assert result["success"] is True
    assert result["metadata"]["pagesProcessed"] == 2


def test_reupload_replaces_vectors(service_factory, sample_resume) -> None:
    service = service_factory()
    first = asyncio.run(service.ingest_text("u1", sample_resume))
    second = asyncio.run(service.ingest_text("u1", sample_resume))

    stats = asyncio.run(service.stats())

    assert second["metadata"]["replacedExisting"] is True
    assert stats["documentCount"] == 1
    assert stats["vectorCount"] == first["chunksIndexed"]


def test_parse_failure_is_not_fatal(service_factory, chat_model_factory, sample_resume) -> None:
    service = service_factory(llm=chat_model_factory({"skills": ["Python"]}))

    result = asyncio.run(service.ingest_text("u1", sample_resume))

    assert result["success"] is True
    assert result["profile"] is None
    assert result["profileError"]["step"] == "parsing"
    assert asyncio.run(service.exists("resume_u1")) is True
    assert asyncio.run(service.get_profile("u1")) is None


def test_validation_failure_removes_previous_copy(
    service_factory, sample_resume, cookbook_text
) -> None:
    service = service_factory()
    asyncio.run(service.ingest_text("u1", sample_resume))

    result = asyncio.run(service.ingest_text("u1", cookbook_text))

    assert result["success"] is False
    assert result["step"] == "validation"
    assert result["details"]["check"] == "keywords"
    assert asyncio.run(service.exists("resume_u1")) is False


def test_extraction_failure_removes_previous_copy(service_factory, sample_resume) -> None:
    service = service_factory()
    service.extractor = _TextExtractor()
    asyncio.run(service.ingest("u1", sample_resume.encode("utf-8")))

    result = asyncio.run(service.ingest("u1", b""))

    assert result["success"] is False
    assert result["step"] == "extraction"
    assert result["kind"] == "ExtractionFailed"
    assert asyncio.run(service.exists("resume_u1")) is False


def test_indexing_failure_is_reported(service_factory, sample_resume) -> None:
    service = service_factory(embeddings=_BrokenEmbeddings())

    result = asyncio.run(service.ingest_text("u1", sample_resume))

    assert result["success"] is False
    assert result["step"] == "indexing"
    assert result["kind"] == "EmbeddingFailed"
    assert asyncio.run(service.exists("resume_u1")) is False


def test_document_stats_and_delete(service_factory, sample_resume) -> None:
    service = service_factory()
    ingested = asyncio.run(service.ingest_text("u1", sample_resume))

    stats = asyncio.run(service.document_stats("resume_u1"))

    assert stats["doc_id"] == "resume_u1"
    assert stats["chunk_count"] == ingested["chunksIndexed"]
    assert stats["total_tokens"] > 0
    assert stats["avg_chunk_tokens"] == stats["total_tokens"] / stats["chunk_count"]
    assert stats["sections"][0] == "header"
    assert "certifications" in stats["sections"]

    asyncio.run(service.delete_document("resume_u1"))

    assert asyncio.run(service.exists("resume_u1")) is False
    assert asyncio.run(service.document_stats("resume_u1"))["chunk_count"] == 0


def test_query_uses_retrieval(
    service_factory, chat_model_factory, sample_resume, parser_reply, profile_reply
) -> None:
    llm = chat_model_factory(parser_reply, profile_reply)
    service = service_factory(llm=llm)
    asyncio.run(service.ingest_text("u1", sample_resume))

    result = asyncio.run(service.query("u1", "Which cloud platforms has she used?"))

    assert result["success"] is True
    assert result["metadata"]["queryUsed"] == "Which cloud platforms has she used?"
    assert "Which cloud platforms" in llm.received[-1]["messages"][-1].content


def test_helpers() -> None:
    assert resume_doc_id("abc") == "resume_abc"
    assert tiktoken_len("") == 0
    assert tiktoken_len("hello world") > 0
    assert build_job_description(
        "Build APIs", "Backend Engineer", ["Go"], ["Rust"]
    ) == (
        "Position: Backend Engineer\n\nBuild APIs\n\nRequired Skills: Go"
        "\n\nPreferred Skills: Rust"
    )


def test_rejection_reported_when_cleanup_fails(service_factory, cookbook_text) -> None:
    service = service_factory(store=_UnreachableDeleteStore())
    service.extractor = _TextExtractor()

    invalid = asyncio.run(service.ingest_text("u1", cookbook_text))
    empty = asyncio.run(service.ingest("u1", b""))

    assert invalid["success"] is False
    assert invalid["step"] == "validation"
    assert invalid["kind"] == "InvalidDocument"
    assert empty["success"] is False
    assert empty["step"] == "extraction"


def test_ingest_metadata_names_backend_without_stats_call(service_factory, sample_resume) -> None:
    class _NoStatsStore(InMemoryVectorStore):
        async def stats(self):
            raise StoreUnavailable("Vector store count failed")

    service = service_factory(store=_NoStatsStore())

    result = asyncio.run(service.ingest_text("u1", sample_resume))

    assert result["success"] is True
    assert result["metadata"]["backend"] == "memory"


def test_skill_match_with_offline_default_embeddings(
    rag_config, chat_model_factory, parser_reply, sample_resume
) -> None:
    service = ResumeRAGService(
        embedder=Embedder(embedding_config=rag_config.embedding),
        store=InMemoryVectorStore(),
        chat_model=StructuredChatModel(chat_model_factory(parser_reply), rag_config.analysis),
        user_store=InMemoryUserStore(),
        rag_config=rag_config,
    )
    asyncio.run(service.ingest_text("u1", sample_resume))

    result = asyncio.run(service.skill_match(["Python", "Kubernetes"], doc_id="resume_u1"))

    assert result["foundSkills"] == ["Python", "Kubernetes"]
    assert result["missingSkills"] == []
    assert result["matchRate"] == "100.0%"
