"""Canonical schema definitions for resume analysis payloads.

``ResumeProfile`` is the normalized result returned by the analyzer regardless
of how the chat model chose to name or nest its fields. ``ParsedResume`` is the
profile extracted at upload time and cached in the user store.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


Severity = Literal["low", "medium", "high"]


class KeyProject(BaseModel):
    name: str = ""
    tech_stack: List[str] = Field(default_factory=list)
    impact: str = ""
    source_chunk: Optional[str] = None

    class Config:
        extra = "ignore"


class EducationEntry(BaseModel):
    degree: str = ""
    institution: str = ""
    year: str = ""
    highlights: str = ""

    class Config:
        extra = "ignore"


class RedFlag(BaseModel):
    flag: str = ""
    severity: Severity = "medium"
    evidence: str = ""

    class Config:
        extra = "ignore"


class JobFitAnalysis(BaseModel):
    """Fit of the candidate against a job description, score in [0, 100]."""

    fit_score: float = 0.0
    matching_skills: List[str] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)
    recommendation: str = ""

    class Config:
        extra = "ignore"

    @field_validator("fit_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 0.0
        if score != score:  # NaN
            return 0.0
        return max(0.0, min(100.0, score))


class SourceCitation(BaseModel):
    section: str
    relevance: str
    key_info: str


class ResumeProfile(BaseModel):
    candidate_name: str = "Unknown"
    years_of_experience: float = 0
    current_role: str = ""
    top_skills: List[str] = Field(default_factory=list)
    key_projects: List[KeyProject] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    red_flags: List[RedFlag] = Field(default_factory=list)
    job_fit_analysis: Optional[JobFitAnalysis] = None
    summary: str = ""
    sources: List[SourceCitation] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class ExperienceEntry(BaseModel):
    company: str = ""
    role: str = ""
    highlights: str = ""

    class Config:
        extra = "ignore"


class ParsedResume(BaseModel):
    """Upload-time profile; serialized with the camelCase keys the parser emits."""

    full_name: str = Field(alias="fullName")
    current_role: str = Field(default="", alias="currentRole")
    years_of_experience: float = Field(default=0, alias="yearsOfExperience")
    skills: List[str] = Field(default_factory=list)
    summary: str = ""
    experiences: List[ExperienceEntry] = Field(default_factory=list)
    cleaned_text: str = Field(default="", alias="cleanedText")

    class Config:
        extra = "ignore"
        populate_by_name = True

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
