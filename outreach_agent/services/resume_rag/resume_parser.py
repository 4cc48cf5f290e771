"""LLM resume parser producing the cached ``ParsedResume`` profile."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .chat_model import StructuredChatModel
from .config import AnalysisConfig
from .errors import AnalysisFailed, ParsingFailed
from .normalizer import as_number, as_text, as_string_list, parse_json_object
from .schemas import ExperienceEntry, ParsedResume

logger = logging.getLogger(__name__)

TRUNCATION_NOTICE = "\n\n[Text truncated due to length...]"

RESUME_PARSER_SYSTEM_PROMPT = """You are a resume parser. Extract the following JSON structure from the resume text. Also provide a 'cleanedText' field which contains the full professional resume text, formatted cleanly without headers/footers/page numbers.

You MUST return a valid JSON object with this exact structure:
{
  "fullName": "String - The person's full name",
  "currentRole": "String - Current or most recent job title",
  "yearsOfExperience": "Number - Estimated total years of professional experience",
  "skills": ["Array of normalized skill strings"],
  "summary": "String - A professional summary in 2-3 sentences max",
  "experiences": [
    {
      "company": "String - Company name",
      "role": "String - Job title",
      "highlights": "String - Key achievements or responsibilities"
    }
  ],
  "cleanedText": "String - The full clean text for future vectorization"
}

Guidelines:
- Normalize skills to common industry terms (e.g., "JavaScript" not "JS", "React.js" not "reactjs")
- For yearsOfExperience, calculate from work history dates if available, or estimate from context
- Keep summary concise and professional
- For experiences, include the 3-5 most relevant positions
- cleanedText should be a clean, readable version of the entire resume without page numbers, headers, or formatting artifacts"""


def truncate_resume_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_NOTICE


def _dedupe(skills: List[str]) -> List[str]:
    seen = set()
    out = []
    for skill in skills:
        key = skill.lower()
        if key not in seen:
            seen.add(key)
            out.append(skill)
    return out


def _experiences(value: Any) -> List[ExperienceEntry]:
    if not isinstance(value, list):
        return []
    entries = []
    for item in value:
        if not isinstance(item, dict):
            continue
        entries.append(
            ExperienceEntry(
                company=as_text(item.get("company")),
                role=as_text(item.get("role") or item.get("title")),
                highlights=as_text(item.get("highlights")),
            )
        )
    return entries


def build_parsed_resume(payload: Dict[str, Any], fallback_text: str) -> ParsedResume:
    full_name = as_text(payload.get("fullName") or payload.get("full_name"))
    if not full_name:
        raise ParsingFailed("Could not extract name from resume")
    return ParsedResume(
        full_name=full_name,
        current_role=as_text(payload.get("currentRole")),
        years_of_experience=as_number(payload.get("yearsOfExperience")),
        skills=_dedupe(as_string_list(payload.get("skills"))),
        summary=as_text(payload.get("summary")),
        experiences=_experiences(payload.get("experiences")),
        cleaned_text=as_text(payload.get("cleanedText")) or fallback_text,
    )


class ResumeParser:
    """Extract name, role, skills and experiences from resume text."""

    def __init__(
        self,
        chat_model: StructuredChatModel,
        analysis_config: Optional[AnalysisConfig] = None,
    ):
        self.chat_model = chat_model
        self.config = analysis_config or AnalysisConfig()

    async def parse(self, text: str) -> ParsedResume:
        truncated = truncate_resume_text(text, self.config.parser_max_chars)
        try:
            content = await self.chat_model.chat(
                system=RESUME_PARSER_SYSTEM_PROMPT,
                user=f"Parse this resume and return JSON:\n\n{truncated}",
                temperature=self.config.temperature,
                json_object_response=True,
                max_tokens=self.config.parser_max_tokens,
            )
            payload = parse_json_object(content)
        except AnalysisFailed as exc:
            raise ParsingFailed(exc.message) from exc

        parsed = build_parsed_resume(payload, truncated)
        logger.info(
            f"Parsed resume skills={len(parsed.skills)} experiences={len(parsed.experiences)}"
        )
        return parsed
