"""Fail-fast resume validation.

Rejects documents that are clearly not resumes before any chunking or
embedding work is spent on them. The validator is deterministic and has no
side effects; thresholds come from :class:`ValidationConfig`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import ValidationConfig
from .errors import InvalidDocument

logger = logging.getLogger(__name__)

LONG_DOCUMENT_WARNING = "Document is unusually long for a resume. Consider condensing."


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a passing validation."""

    text_length: int
    keywords_found: List[str]
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "textLength": self.text_length,
            "keywordsFound": list(self.keywords_found),
            "warnings": list(self.warnings),
        }


class ResumeValidator:
    """Length and keyword heuristics for resume detection."""

    def __init__(self, validation_config: Optional[ValidationConfig] = None):
        self.config = validation_config or ValidationConfig()

    def validate(self, text: Any) -> ValidationResult:
        """Validate extracted text or raise :class:`InvalidDocument`.

        Checks run in order: content exists, length bounds, keyword count.
        """
        if not text or not isinstance(text, str):
            raise InvalidDocument(
                "No text content found in document",
                check="content_exists",
                details={"received": type(text).__name__},
            )

        normalized = text.strip()
        text_length = len(normalized)

        if text_length < self.config.min_length:
            raise InvalidDocument(
                f"Document too short ({text_length} characters). Minimum "
                f"{self.config.min_length} characters required. The file may be "
                "empty, corrupted, or image-only without extractable text.",
                check="length",
                details=self._length_details(text_length, "too_short"),
            )
        if text_length > self.config.max_length:
            raise InvalidDocument(
                f"Document too long ({text_length} characters). Maximum "
                f"{self.config.max_length} characters allowed. This appears to be "
                "a book, report, or non-resume document.",
                check="length",
                details=self._length_details(text_length, "too_long"),
            )

        found = self.find_keywords(normalized)
        if len(found) < self.config.min_keyword_matches:
            raise InvalidDocument(
                "Document does not appear to be a resume. Found only "
                f"{len(found)} resume-related keywords (need at least "
                f"{self.config.min_keyword_matches}). Please upload a valid resume or CV.",
                check="keywords",
                details={
                    "foundKeywords": found,
                    "requiredCount": self.config.min_keyword_matches,
                },
            )

        warnings: List[str] = []
        if text_length > self.config.long_document_warning:
            warnings.append(LONG_DOCUMENT_WARNING)

        return ValidationResult(
            text_length=text_length, keywords_found=found, warnings=warnings
        )

    def find_keywords(self, text: str) -> List[str]:
        """Distinct keywords present in the leading window of ``text``.

        Latin keywords match case-insensitively; CJK keywords match exactly.
        """
        window = text[: self.config.keyword_check_length]
        lowered = window.lower()
        found: List[str] = []
        for keyword in self.config.keywords:
            if keyword in found:
                continue
            if keyword.isascii():
                if keyword.lower() in lowered:
                    found.append(keyword)
            elif keyword in window:
                found.append(keyword)
        return found

    def is_valid(self, text: Any) -> bool:
        try:
            self.validate(text)
        except InvalidDocument:
            return False
        return True

    def validate_safe(self, text: Any) -> Dict[str, Any]:
        """Validation result as a dict, never raising for invalid input."""
        try:
            result = self.validate(text)
        except InvalidDocument as exc:
            return {"isValid": False, "error": exc.message, "details": exc.details}
        return {"isValid": True, **result.to_dict()}

    def _length_details(self, text_length: int, kind: str) -> Dict[str, Any]:
        return {
            "type": kind,
            "textLength": text_length,
            "minRequired": self.config.min_length,
            "maxAllowed": self.config.max_length,
        }
