"""
Section-aware chunking for resumes.

Text is normalized, split into resume sections by scanning for bilingual
(English / Chinese) header markers, and each section is cut into bounded,
overlapping chunks. Chunks are returned as LangChain ``Document`` objects
carrying section metadata for retrieval and citation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.documents import Document
from langchain_text_splitters import TextSplitter

from .config import ChunkingConfig

logger = logging.getLogger(__name__)

# Ordered by priority; "" means hard character cut
RESUME_SEPARATORS = [
    "\n\n\n",
    "\n\n",
    "\n",
    "。",
    ".",
    "；",
    ";",
    "，",
    ",",
    " ",
    "",
]

ENGLISH_SECTION_MARKERS = [
    "EDUCATION",
    "EXPERIENCE",
    "WORK EXPERIENCE",
    "PROFESSIONAL EXPERIENCE",
    "SKILLS",
    "TECHNICAL SKILLS",
    "PROJECTS",
    "CERTIFICATIONS",
    "SUMMARY",
    "OBJECTIVE",
    "PROFILE",
    "ACHIEVEMENTS",
    "AWARDS",
    "PUBLICATIONS",
    "LANGUAGES",
    "INTERESTS",
    "REFERENCES",
]

CHINESE_SECTION_MARKERS = [
    "教育背景",
    "教育经历",
    "学历",
    "工作经历",
    "工作经验",
    "职业经历",
    "项目经验",
    "项目经历",
    "技能",
    "专业技能",
    "技术栈",
    "个人简介",
    "自我评价",
    "获奖经历",
    "证书",
    "语言能力",
]

SECTION_NAME_MAPPING = {
    "WORK EXPERIENCE": "experience",
    "PROFESSIONAL EXPERIENCE": "experience",
    "TECHNICAL SKILLS": "skills",
    "OBJECTIVE": "summary",
    "PROFILE": "summary",
    "教育背景": "education",
    "教育经历": "education",
    "学历": "education",
    "工作经历": "experience",
    "工作经验": "experience",
    "职业经历": "experience",
    "项目经验": "projects",
    "项目经历": "projects",
    "技能": "skills",
    "专业技能": "skills",
    "技术栈": "skills",
    "个人简介": "summary",
    "自我评价": "summary",
    "获奖经历": "awards",
    "证书": "certifications",
    "语言能力": "languages",
}

FULL_RESUME_SECTION = "full_resume"
HEADER_SECTION = "header"
# Non-space characters allowed before a marker on the same line
MAX_MARKER_LEAD = 5


def normalize_text(text: str) -> str:
    """Unify line endings, collapse blank runs and horizontal whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{4,}", "\n\n\n", text)
    return text.strip()


def normalize_section_name(marker: str) -> str:
    mapped = SECTION_NAME_MAPPING.get(marker.upper()) or SECTION_NAME_MAPPING.get(marker)
    if mapped:
        return mapped
    return re.sub(r"\s+", "_", marker.strip()).lower()


@dataclass(frozen=True)
class SectionMarker:
    marker: str
    position: int
    lang: str


@dataclass(frozen=True)
class ResumeSection:
    name: str
    content: str
    start: int


class ResumeTextSplitter(TextSplitter):
    """Character splitter with a hard size cap and a minimum overlap.

    ``RecursiveCharacterTextSplitter`` treats ``chunk_overlap`` as an upper
    bound. Resume chunks need the opposite: adjacent chunks share at least
    ``chunk_overlap`` characters, and no chunk is longer than ``chunk_size``.
    Breaks and restarts are placed after the highest-priority separator
    available in the allowed window, falling back to a hard cut.
    """

    def __init__(
        self,
        separators: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if self._chunk_overlap >= self._chunk_size:
            raise ValueError(
                f"chunk_overlap ({self._chunk_overlap}) must be smaller than "
                f"chunk_size ({self._chunk_size})"
            )
        self._separators = [s for s in (separators or RESUME_SEPARATORS) if s]
        # How far before the overlap boundary a restart may move
        self._restart_slack = min(
            self._chunk_overlap, (self._chunk_size - self._chunk_overlap) // 2
        )

    def split_text(self, text: str) -> List[str]:
        text = text.strip()
        if not text:
            return []

        size = self._chunk_size
        chunks: List[str] = []
        pos = 0
        prev_end = 0
        while len(text) - pos > size:
            end = self._find_break(text, pos, prev_end)
            chunks.append(text[pos:end])
            pos = self._find_restart(text, pos, end)
            prev_end = end
        chunks.append(text[pos:])
        return chunks

    def _find_break(self, text: str, pos: int, prev_end: int) -> int:
        size, overlap = self._chunk_size, self._chunk_overlap
        limit = pos + size
        # Each chunk must extend past the previous one and past its own overlap
        need = max(pos + overlap, prev_end)
        lo = min(max(pos + max(size // 2, overlap + 1), need + 1), limit)
        for sep in self._separators:
            idx = text.rfind(sep, max(lo - len(sep), pos), limit)
            if idx == -1:
                continue
            end = _rstrip_end(text, pos, idx + len(sep))
            if end > need:
                return end
        return limit

    def _find_restart(self, text: str, pos: int, end: int) -> int:
        hi = end - self._chunk_overlap
        lo = max(pos + 1, hi - self._restart_slack)
        for sep in self._separators:
            idx = text.rfind(sep, max(lo - len(sep), pos), hi)
            if idx == -1 or idx + len(sep) < lo:
                continue
            start = idx + len(sep)
            while start < hi and text[start].isspace():
                start += 1
            return start
        return hi


def _rstrip_end(text: str, start: int, end: int) -> int:
    while end > start and text[end - 1].isspace():
        end -= 1
    return end


class ResumeChunker:
    """Normalize, detect sections and chunk resume text."""

    def __init__(self, chunking_config: Optional[ChunkingConfig] = None):
        self.config = chunking_config or ChunkingConfig()
        self.splitter = ResumeTextSplitter(
            chunk_size=self.config.chunk_size,
            chunk_overlap=self.config.chunk_overlap,
        )
        # English markers match case-insensitively, Chinese markers exactly
        self._markers = [
            (m, "en", re.compile(re.escape(m), re.IGNORECASE))
            for m in ENGLISH_SECTION_MARKERS
        ] + [(m, "zh", re.compile(re.escape(m))) for m in CHINESE_SECTION_MARKERS]

    def chunk_text(
        self, text: str, metadata: Optional[Dict[str, Any]] = None
    ) -> List[Document]:
        """Split ``text`` into section-tagged documents.

        Args:
            text: Raw resume text.
            metadata: Base metadata copied onto every chunk.

        Returns:
            Documents with ``chunkIndex``/``chunkTotal`` numbered across the
            whole resume, plus ``section``, ``sectionStart`` and ``charCount``.
        """
        if not text or not isinstance(text, str):
            raise ValueError("Invalid text input for chunking")

        base = dict(metadata or {})
        normalized = normalize_text(text)
        sections = self.detect_sections(normalized)

        pieces = []
        for section in sections:
            if len(section.content) <= self.config.chunk_size:
                parts = [section.content]
            else:
                parts = self.splitter.split_text(section.content)
            pieces.extend((section, part) for part in parts)

        total = len(pieces)
        documents = [
            Document(
                page_content=part,
                metadata={
                    **base,
                    "chunkIndex": index,
                    "chunkTotal": total,
                    "section": section.name,
                    "sectionStart": section.start,
                    "charCount": len(part),
                },
            )
            for index, (section, part) in enumerate(pieces)
        ]
        logger.info(
            f"Chunked resume into {total} chunks across {len(sections)} sections"
        )
        return documents

    def find_markers(self, text: str) -> List[SectionMarker]:
        """All header markers that start a line, sorted and de-duplicated."""
        found: List[SectionMarker] = []
        for marker, lang, pattern in self._markers:
            for match in pattern.finditer(text):
                pos = match.start()
                line_start = text.rfind("\n", 0, pos) + 1
                lead = text[line_start:pos]
                if len("".join(lead.split())) <= MAX_MARKER_LEAD:
                    found.append(SectionMarker(marker, pos, lang))

        # Longer marker wins when two start at the same position
        found.sort(key=lambda m: (m.position, -len(m.marker)))
        unique: List[SectionMarker] = []
        for marker in found:
            if (
                not unique
                or marker.position - unique[-1].position > self.config.marker_proximity
            ):
                unique.append(marker)
        return unique

    def detect_sections(self, text: str) -> List[ResumeSection]:
        markers = self.find_markers(text)
        if not markers:
            return [ResumeSection(FULL_RESUME_SECTION, text, 0)]

        sections: List[ResumeSection] = []
        if markers[0].position > self.config.min_header_length:
            sections.append(
                ResumeSection(HEADER_SECTION, text[: markers[0].position].strip(), 0)
            )

        for i, marker in enumerate(markers):
            end = markers[i + 1].position if i + 1 < len(markers) else len(text)
            content = text[marker.position : end].strip()
            if len(content) > self.config.min_section_length:
                sections.append(
                    ResumeSection(
                        normalize_section_name(marker.marker), content, marker.position
                    )
                )

        if not sections:
            return [ResumeSection(FULL_RESUME_SECTION, text, 0)]
        return sections


def get_chunk_stats(documents: Sequence[Document]) -> Dict[str, Any]:
    """Summary statistics over a chunk list."""
    if not documents:
        return {
            "count": 0,
            "avgLength": 0,
            "minLength": 0,
            "maxLength": 0,
            "sections": [],
            "sectionCount": 0,
        }

    lengths = [len(d.page_content) for d in documents]
    sections: List[str] = []
    for doc in documents:
        name = doc.metadata.get("section", "unknown")
        if name not in sections:
            sections.append(name)

    return {
        "count": len(documents),
        "avgLength": round(sum(lengths) / len(lengths)),
        "minLength": min(lengths),
        "maxLength": max(lengths),
        "sections": sections,
        "sectionCount": len(sections),
    }
