"""
Tolerant normalization of chat-model JSON into ``ResumeProfile``.

The model varies key casing, nests the payload under wrapper objects and
sometimes returns scalars where lists are expected. Everything funnels through
here so the rest of the code only sees the canonical schema. Unknown keys are
dropped.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .errors import AnalysisFailed
from .schemas import (
    EducationEntry,
    JobFitAnalysis,
    KeyProject,
    RedFlag,
    ResumeProfile,
)

logger = logging.getLogger(__name__)

FIELD_ALIASES: Dict[str, List[str]] = {
    "candidate_name": ["candidate_name", "name", "candidateName", "full_name", "fullName"],
    "years_of_experience": [
        "years_of_experience",
        "yearsOfExperience",
        "experience_years",
        "totalExperience",
    ],
    "current_role": ["current_role", "currentRole", "role", "position", "title"],
    "top_skills": ["top_skills", "topSkills", "skills", "technical_skills", "technicalSkills"],
    "key_projects": ["key_projects", "keyProjects", "projects", "notable_projects"],
    "education": ["education", "educationBackground"],
    "strengths": ["strengths", "highlights", "strong_points"],
    "red_flags": ["red_flags", "redFlags", "concerns", "potential_concerns", "warnings"],
    "job_fit_analysis": ["job_fit_analysis", "jobFitAnalysis", "fit_analysis", "fitAnalysis"],
}

LOOSE_FIT_KEYS = ("fit_score", "matching_skills", "missing_skills", "recommendation")
SEVERITIES = {"low", "medium", "high"}


def parse_json_object(content: str) -> Dict[str, Any]:
    """Decode the model reply; anything but a JSON object is an error."""
    try:
        parsed = json.loads(content)
    except (TypeError, ValueError) as exc:
        raise AnalysisFailed(f"Model returned malformed JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AnalysisFailed("Model returned JSON that is not an object")
    return parsed


def unwrap(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten ``candidateAnalysis`` / ``analysis`` wrapper objects."""
    data = dict(payload)
    for wrapper in ("candidateAnalysis", "analysis"):
        inner = payload.get(wrapper)
        if isinstance(inner, dict):
            data = {**data, **inner}
    return data


def _first(data: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "; ".join(as_text(v) for v in value if v is not None)
    return str(value)


def as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        match = re.search(r"\d+(?:\.\d+)?", value)
        if match:
            number = float(match.group())
            return int(number) if number.is_integer() else number
    return 0


def as_string_list(value: Any) -> List[str]:
    """Coerce lists, comma strings and objects (their keys) to a string list."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [str(k) for k in value.keys()]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        out = []
        for item in value:
            if isinstance(item, dict):
                item = _first(item, ("name", "skill", "title", "value"))
            text = as_text(item)
            if text:
                out.append(text)
        return out
    return []


def _project(item: Any) -> Optional[KeyProject]:
    if isinstance(item, str):
        return KeyProject(name=item) if item.strip() else None
    if not isinstance(item, dict):
        return None
    source = _first(item, ("source_chunk", "sourceChunk", "source", "section"))
    return KeyProject(
        name=as_text(_first(item, ("name", "title", "project_name", "projectName"))),
        tech_stack=as_string_list(
            _first(item, ("tech_stack", "techStack", "technologies", "stack"))
        ),
        impact=as_text(_first(item, ("impact", "description", "outcome", "result"))),
        source_chunk=as_text(source) or None,
    )


def _education(item: Any) -> Optional[EducationEntry]:
    if isinstance(item, str):
        return EducationEntry(degree=item) if item.strip() else None
    if not isinstance(item, dict):
        return None
    return EducationEntry(
        degree=as_text(_first(item, ("degree", "qualification", "major"))),
        institution=as_text(
            _first(item, ("institution", "school", "university", "college"))
        ),
        year=as_text(_first(item, ("year", "graduation_year", "graduationYear", "dates"))),
        highlights=as_text(_first(item, ("highlights", "details", "honors"))),
    )


def _red_flag(item: Any) -> Optional[RedFlag]:
    if isinstance(item, str):
        return RedFlag(flag=item) if item.strip() else None
    if not isinstance(item, dict):
        return None
    severity = as_text(item.get("severity")).lower()
    return RedFlag(
        flag=as_text(_first(item, ("flag", "issue", "concern", "description", "title"))),
        severity=severity if severity in SEVERITIES else "medium",
        evidence=as_text(_first(item, ("evidence", "reason", "details", "source"))),
    )


def _objects(value: Any, build) -> List[Any]:
    if not isinstance(value, list):
        return []
    return [obj for obj in (build(item) for item in value) if obj is not None]


def normalize_job_fit(data: Dict[str, Any]) -> Optional[JobFitAnalysis]:
    fit = _first(data, FIELD_ALIASES["job_fit_analysis"])
    if not isinstance(fit, dict):
        if not any(key in data for key in LOOSE_FIT_KEYS):
            return None
        fit = {key: data.get(key) for key in LOOSE_FIT_KEYS}
    return JobFitAnalysis(
        fit_score=as_number(_first(fit, ("fit_score", "fitScore", "score"))),
        matching_skills=as_string_list(
            _first(fit, ("matching_skills", "matchingSkills", "matched_skills"))
        ),
        missing_skills=as_string_list(
            _first(fit, ("missing_skills", "missingSkills", "skill_gaps"))
        ),
        recommendation=as_text(fit.get("recommendation")),
    )


def _summary(data: Dict[str, Any]) -> str:
    for key in ("summary", "analysis", "overview"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def normalize_profile(payload: Dict[str, Any]) -> ResumeProfile:
    """Map a raw model payload onto the canonical ``ResumeProfile``."""
    data = unwrap(payload)
    logger.debug(f"Normalizing model payload keys: {sorted(payload.keys())}")

    name = as_text(_first(data, FIELD_ALIASES["candidate_name"]))
    return ResumeProfile(
        candidate_name=name or "Unknown",
        years_of_experience=as_number(_first(data, FIELD_ALIASES["years_of_experience"])),
        current_role=as_text(_first(data, FIELD_ALIASES["current_role"])),
        top_skills=as_string_list(_first(data, FIELD_ALIASES["top_skills"])),
        key_projects=_objects(_first(data, FIELD_ALIASES["key_projects"]), _project),
        education=_objects(_first(data, FIELD_ALIASES["education"]), _education),
        strengths=as_string_list(_first(data, FIELD_ALIASES["strengths"])),
        red_flags=_objects(_first(data, FIELD_ALIASES["red_flags"]), _red_flag),
        job_fit_analysis=normalize_job_fit(data),
        summary=_summary(data),
    )
