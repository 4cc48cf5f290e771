"""
Resume RAG Configuration

Centralized configuration for validation, chunking, embedding, vector storage,
retrieval and analysis with environment variable support. Every knob can be
tuned without code changes; constructors take these objects explicitly.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


DEFAULT_RESUME_KEYWORDS = [
    # English
    "education",
    "experience",
    "skills",
    "resume",
    "cv",
    "work history",
    "employment",
    "qualifications",
    "professional",
    "career",
    # Chinese
    "教育",
    "经历",
    "工作",
    "技能",
    "项目",
    "简历",
    "履历",
    "职业",
    "经验",
    "学历",
]


def _env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes")


@dataclass
class ValidationConfig:
    """Fail-fast resume validation thresholds."""

    min_length: int = int(os.getenv("RESUME_MIN_LENGTH", "50"))
    max_length: int = int(os.getenv("RESUME_MAX_LENGTH", "100000"))
    keyword_check_length: int = int(os.getenv("KEYWORD_CHECK_LENGTH", "2000"))
    min_keyword_matches: int = int(os.getenv("MIN_KEYWORD_MATCHES", "2"))
    long_document_warning: int = int(os.getenv("RESUME_LONG_WARNING", "50000"))
    keywords: List[str] = field(default_factory=lambda: list(DEFAULT_RESUME_KEYWORDS))


@dataclass
class ChunkingConfig:
    """Section-aware chunking parameters (characters, not tokens)."""

    chunk_size: int = int(os.getenv("CHUNK_SIZE", "2000"))
    chunk_overlap: int = int(os.getenv("CHUNK_OVERLAP", "400"))
    # Minimum prefix before the first marker to keep as a "header" section
    min_header_length: int = int(os.getenv("MIN_HEADER_LENGTH", "50"))
    # Markers closer than this to the previous kept marker are dropped
    marker_proximity: int = int(os.getenv("MARKER_PROXIMITY", "20"))
    min_section_length: int = int(os.getenv("MIN_SECTION_LENGTH", "10"))


@dataclass
class EmbeddingConfig:
    """Embedding model settings."""

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    dimensions: int = int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))
    timeout_s: float = float(os.getenv("EMBEDDING_TIMEOUT_S", "30"))


@dataclass
class VectorStoreConfig:
    """Vector store backend selection and batching."""

    collection_name: str = os.getenv("CHROMA_COLLECTION", "outreach-resumes")
    persist_directory: str = os.getenv("CHROMA_PERSIST_DIR", "./instance/chroma")
    chroma_host: Optional[str] = os.getenv("CHROMA_HOST")
    chroma_port: int = int(os.getenv("CHROMA_PORT", "8000"))
    upsert_batch_size: int = int(os.getenv("UPSERT_BATCH_SIZE", "100"))
    batch_pause_s: float = float(os.getenv("UPSERT_BATCH_PAUSE_S", "0.1"))
    timeout_s: float = float(os.getenv("VECTOR_TIMEOUT_S", "30"))
    # Explicit dev override; the aggregate config also flips this when no
    # OpenAI key is configured.
    use_in_memory_store: bool = _env_flag("DEV_MODE") or _env_flag(
        "USE_IN_MEMORY_STORE"
    )


@dataclass
class RetrievalConfig:
    """Retriever defaults."""

    default_top_k: int = int(os.getenv("DEFAULT_TOP_K", "5"))
    min_score_threshold: float = float(os.getenv("MIN_SCORE_THRESHOLD", "0.1"))
    skill_match_top_k: int = int(os.getenv("SKILL_MATCH_TOP_K", "10"))
    job_fit_top_k: int = int(os.getenv("JOB_FIT_TOP_K", "8"))
    red_flags_top_k: int = int(os.getenv("RED_FLAGS_TOP_K", "10"))


@dataclass
class AnalysisConfig:
    """Chat model settings for analysis and resume parsing."""

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    model: str = os.getenv("ANALYSIS_MODEL", "gpt-4o-mini")
    temperature: float = float(os.getenv("ANALYSIS_TEMPERATURE", "0.3"))
    max_tokens: int = int(os.getenv("ANALYSIS_MAX_TOKENS", "3000"))
    parser_max_tokens: int = int(os.getenv("PARSER_MAX_TOKENS", "2000"))
    parser_max_chars: int = int(os.getenv("PARSER_MAX_CHARS", "15000"))
    timeout_s: float = float(os.getenv("ANALYSIS_TIMEOUT_S", "60"))


@dataclass
class ResumeRAGConfig:
    """Complete resume RAG configuration."""

    validation: ValidationConfig = None
    chunking: ChunkingConfig = None
    embedding: EmbeddingConfig = None
    vector_store: VectorStoreConfig = None
    retrieval: RetrievalConfig = None
    analysis: AnalysisConfig = None

    def __post_init__(self):
        if self.validation is None:
            self.validation = ValidationConfig()
        if self.chunking is None:
            self.chunking = ChunkingConfig()
        if self.embedding is None:
            self.embedding = EmbeddingConfig()
        if self.vector_store is None:
            self.vector_store = VectorStoreConfig()
        if self.retrieval is None:
            self.retrieval = RetrievalConfig()
        if self.analysis is None:
            self.analysis = AnalysisConfig()

    @property
    def use_in_memory_store(self) -> bool:
        """Memory backend when explicitly requested or no credentials exist."""
        return self.vector_store.use_in_memory_store or not self.embedding.openai_api_key

    def to_dict(self) -> dict:
        """Convert to dictionary for logging (no secrets)."""
        return {
            "validation": {
                "min_length": self.validation.min_length,
                "max_length": self.validation.max_length,
                "keyword_check_length": self.validation.keyword_check_length,
                "min_keyword_matches": self.validation.min_keyword_matches,
                "keyword_count": len(self.validation.keywords),
            },
            "chunking": {
                "chunk_size": self.chunking.chunk_size,
                "chunk_overlap": self.chunking.chunk_overlap,
            },
            "embedding": {
                "model": self.embedding.model,
                "dimensions": self.embedding.dimensions,
                "timeout_s": self.embedding.timeout_s,
            },
            "vector_store": {
                "collection_name": self.vector_store.collection_name,
                "persist_directory": self.vector_store.persist_directory,
                "chroma_host": self.vector_store.chroma_host,
                "upsert_batch_size": self.vector_store.upsert_batch_size,
                "use_in_memory_store": self.use_in_memory_store,
            },
            "retrieval": {
                "default_top_k": self.retrieval.default_top_k,
                "min_score_threshold": self.retrieval.min_score_threshold,
            },
            "analysis": {
                "model": self.analysis.model,
                "temperature": self.analysis.temperature,
                "timeout_s": self.analysis.timeout_s,
            },
        }


# Global configuration instance
config = ResumeRAGConfig()
