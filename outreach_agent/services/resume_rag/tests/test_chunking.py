from __future__ import annotations

import pytest
from langchain_core.documents import Document

from outreach_agent.services.resume_rag.chunking import (
    FULL_RESUME_SECTION,
    HEADER_SECTION,
    ResumeChunker,
    ResumeTextSplitter,
    get_chunk_stats,
    normalize_section_name,
    normalize_text,
)
from outreach_agent.services.resume_rag.config import ChunkingConfig

MIXED_RESUME = (
    "Li Wei | Backend Engineer | liwei@example.com | Shanghai, China\n\n"
    "EDUCATION\nFudan University, B.S. Computer Science, 2018\n\n"
    "工作经历\n字节跳动 后端工程师 2018-2023，负责推荐系统服务的开发与维护。\n\n"
    "SKILLS\nPython, Go, Redis, Kafka\n\n"
    "证书\nAWS Certified Developer, 2022"
)


def _long_section(sentences: int = 120) -> str:
    lines = [
        f"- Item {i}: delivered feature number {i} for the platform team, on time."
        for i in range(sentences)
    ]
    return "WORK EXPERIENCE\n" + "\n".join(lines)


def _shared_overlap(left: str, right: str) -> int:
    best = 0
    for length in range(1, min(len(left), len(right)) + 1):
        if left.endswith(right[:length]):
            best = length
    return best


def test_sections_detected_in_order(sample_resume: str) -> None:
    sections = ResumeChunker().detect_sections(normalize_text(sample_resume))

    assert [s.name for s in sections] == [
        HEADER_SECTION,
        "summary",
        "education",
        "experience",
        "skills",
        "projects",
        "certifications",
    ]
    assert sections[0].content.startswith("Sarah Chen")
    assert sections[3].content.startswith("WORK EXPERIENCE")


def test_chunk_metadata_numbered_across_document(sample_resume: str) -> None:
    docs = ResumeChunker().chunk_text(sample_resume, {"docId": "d1", "userId": "u1"})

    assert len(docs) > 1
    assert [d.metadata["chunkIndex"] for d in docs] == list(range(len(docs)))
    for doc in docs:
        assert isinstance(doc, Document)
        assert doc.metadata["chunkTotal"] == len(docs)
        assert doc.metadata["docId"] == "d1"
        assert doc.metadata["userId"] == "u1"
        assert doc.metadata["charCount"] == len(doc.page_content)
        assert doc.page_content.strip()


def test_mixed_language_sections() -> None:
    docs = ResumeChunker().chunk_text(MIXED_RESUME)

    sections = [d.metadata["section"] for d in docs]
    assert sections == [
        HEADER_SECTION,
        "education",
        "experience",
        "skills",
        "certifications",
    ]
    assert docs[2].page_content.startswith("工作经历")


def test_no_markers_gives_full_resume() -> None:
    text = "Jane Roe. Ten years building payment systems in Java and Kotlin."

    docs = ResumeChunker().chunk_text(text)

    assert len(docs) == 1
    assert docs[0].metadata["section"] == FULL_RESUME_SECTION
    assert docs[0].page_content == text


def test_marker_requires_line_start() -> None:
    chunker = ResumeChunker()
    text = (
        "Jane Roe, engineer with strong interest in education technology.\n"
        "1. PROJECTS\nBuilt an adaptive quiz engine used by 20 schools."
    )

    markers = chunker.find_markers(text)

    assert [m.marker for m in markers] == ["PROJECTS"]


def test_nearby_markers_are_deduplicated() -> None:
    markers = ResumeChunker().find_markers("x" * 60 + "\nWORK EXPERIENCE\nAcme Corp")

    assert len(markers) == 1
    assert markers[0].marker == "WORK EXPERIENCE"


def test_short_header_is_dropped() -> None:
    text = "Jane Roe\nSKILLS\nPython, SQL, Airflow, dbt, Snowflake"

    sections = ResumeChunker().detect_sections(text)

    assert [s.name for s in sections] == ["skills"]


def test_long_section_respects_size_and_overlap() -> None:
    config = ChunkingConfig(chunk_size=500, chunk_overlap=100)
    text = "Jane Roe\n" + "Contact: jane@example.com, +1 555 0100, Portland\n\n" + _long_section()

    docs = ResumeChunker(config).chunk_text(text)
    experience = [d.page_content for d in docs if d.metadata["section"] == "experience"]

    assert len(experience) > 3
    for chunk in experience:
        assert len(chunk) <= 500
    for left, right in zip(experience, experience[1:]):
        assert _shared_overlap(left, right) >= 100


def test_splitter_hard_cuts_without_separators() -> None:
    splitter = ResumeTextSplitter(chunk_size=100, chunk_overlap=20)
    text = "".join(chr(ord("a") + (i * 7) % 26) for i in range(450))

    chunks = splitter.split_text(text)

    assert all(len(c) <= 100 for c in chunks)
    for left, right in zip(chunks, chunks[1:]):
        assert right[:20] == left[-20:]
    assert chunks[-1].endswith(text[-10:])


def test_splitter_rejects_overlap_not_smaller_than_size() -> None:
    with pytest.raises(ValueError):
        ResumeTextSplitter(chunk_size=100, chunk_overlap=100)


@pytest.mark.parametrize("value", ["", None])
def test_chunk_text_rejects_empty_input(value) -> None:
    with pytest.raises(ValueError):
        ResumeChunker().chunk_text(value)


def test_normalize_text_unifies_whitespace() -> None:
    raw = "Jane\r\nRoe\t\tEngineer\r\n\r\n\r\n\r\n\r\nSKILLS"

    assert normalize_text(raw) == "Jane\nRoe Engineer\n\n\nSKILLS"


def test_normalize_section_name() -> None:
    assert normalize_section_name("TECHNICAL SKILLS") == "skills"
    assert normalize_section_name("PROFILE") == "summary"
    assert normalize_section_name("项目经验") == "projects"
    assert normalize_section_name("EDUCATION") == "education"


def test_chunk_stats(sample_resume: str) -> None:
    docs = ResumeChunker().chunk_text(sample_resume)

    stats = get_chunk_stats(docs)

    assert stats["count"] == len(docs)
    assert stats["minLength"] <= stats["avgLength"] <= stats["maxLength"]
    assert {"summary", "education", "experience", "skills", "projects", "certifications"} <= set(
        stats["sections"]
    )
    assert stats["sectionCount"] == len(stats["sections"])


def test_chunk_stats_empty() -> None:
    assert get_chunk_stats([]) == {
        "count": 0,
        "avgLength": 0,
        "minLength": 0,
        "maxLength": 0,
        "sections": [],
        "sectionCount": 0,
    }
