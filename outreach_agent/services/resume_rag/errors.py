"""Error kinds raised by the resume RAG pipeline.

Each error carries the pipeline ``step`` it belongs to so transport layers can
choose a status code without inspecting messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ResumeRAGError(Exception):
    """Base class for every failure surfaced by the resume pipeline."""

    step = "unknown"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "step": self.step,
            "kind": type(self).__name__,
            "error": self.message,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ExtractionFailed(ResumeRAGError):
    """No usable text could be pulled out of the PDF."""

    step = "extraction"


class InvalidDocument(ResumeRAGError):
    """The validator rejected the text as not being a resume."""

    step = "validation"

    def __init__(
        self, message: str, check: str, details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details={"check": check, **(details or {})})
        self.check = check


class EmbeddingFailed(ResumeRAGError):
    """Embedding batch failed or returned vectors of the wrong shape."""

    step = "indexing"


class StoreUnavailable(ResumeRAGError):
    """Vector store transport error during upsert/query/delete."""

    step = "indexing"


class ParsingFailed(ResumeRAGError):
    """Structured profile extraction failed."""

    step = "parsing"


class SavingFailed(ResumeRAGError):
    """Persisting the parsed profile to the user store failed."""

    step = "saving"


class AnalysisFailed(ResumeRAGError):
    """Chat model call failed or returned something other than a JSON object."""

    step = "analysis"


class NoContext(ResumeRAGError):
    """Retrieval returned zero chunks for the requested resume."""

    step = "analysis"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "No resume content found. Please ensure a resume has been indexed.",
            details={"suggestion": "Upload a resume first using POST /api/resume/upload"},
        )
