"""
Structured resume analysis over retrieved chunks.

Retrieval picks the resume sections relevant to a query (and job description),
the reviewer prompt asks the chat model for a JSON ``ResumeProfile`` and the
normalizer folds whatever comes back into the canonical schema. Source
citations always come from retrieval metadata, never from the model.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.prompts import PromptTemplate

from .config import AnalysisConfig, RetrievalConfig
from .errors import NoContext
from .chat_model import StructuredChatModel
from .normalizer import normalize_profile, parse_json_object
from .retriever import RetrievedChunk, Retriever, format_context
from .schemas import JobFitAnalysis, ResumeProfile, SourceCitation

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_QUERY = "Provide a comprehensive analysis of this candidate"
JOB_REQUIREMENTS_PREVIEW = 500
FALLBACK_RECOMMENDATION = "Unable to generate fit analysis"

REVIEWER_SYSTEM_PROMPT = """You are an expert Technical Recruiter and Engineering Manager with 15+ years of experience reviewing resumes for top tech companies.

## Your Role
Analyze resumes critically but fairly. Extract key information and provide actionable insights.

## Analysis Guidelines
1. **Skills Assessment**: Identify both technical and soft skills. Note proficiency levels when evident.
2. **Experience Evaluation**: Look at career progression, company quality, and scope of responsibilities.
3. **Project Analysis**: Assess impact, complexity, and relevance of key projects.
4. **Red Flags Detection**: Identify concerns like:
   - Employment gaps > 6 months without explanation
   - Vague or unquantified achievements
   - Job hopping (< 1 year at multiple positions)
   - Skills/experience mismatch
   - Overly generic descriptions
5. **Source Citation**: For EVERY conclusion, cite which section of the resume led to it.

## Output Requirements
- Be specific and cite evidence from the resume
- Quantify when possible (e.g., "5 years Python experience")
- For red_flags, always explain the evidence and set severity to low, medium or high
- If information is missing or unclear, note it explicitly

Respond with a valid JSON object using these keys: candidate_name, years_of_experience,
current_role, top_skills, key_projects (name, tech_stack, impact, source_chunk),
education (degree, institution, year, highlights), strengths,
red_flags (flag, severity, evidence), job_fit_analysis (fit_score, matching_skills,
missing_skills, recommendation) and summary."""

ANALYSIS_PROMPT = PromptTemplate.from_template(
    """Analyze the following resume content and extract structured information.

## Retrieved Resume Sections:
{context}

## Task:
{task}

## Additional Instructions:
- For each key finding, cite which section (source_chunk) it came from
- If analyzing against a job description, evaluate fit score and identify gaps
- Be critical but fair in identifying red flags
- If information seems missing or unclear, note it in the analysis

Respond with a JSON object following the ResumeProfile schema."""
)

JOB_FIT_TASK_SUFFIX = """

## Job Description to Evaluate Against:
{job_description}

Please include a detailed job_fit_analysis with:
- fit_score (0-100)
- matching_skills (skills the candidate has)
- missing_skills (required skills the candidate lacks)
- recommendation (hire/consider/pass with reasoning)"""


def build_filter(
    user_id: Optional[str] = None, doc_id: Optional[str] = None
) -> Dict[str, Any]:
    where: Dict[str, Any] = {}
    if user_id:
        where["userId"] = {"$eq": user_id}
    if doc_id:
        where["docId"] = {"$eq": doc_id}
    return where


def build_retrieval_query(query: str, job_description: Optional[str] = None) -> str:
    if not job_description:
        return query
    return f"{query}\n\nJob Requirements: {job_description[:JOB_REQUIREMENTS_PREVIEW]}"


def build_task(query: str, job_description: Optional[str] = None) -> str:
    if not job_description:
        return query
    return query + JOB_FIT_TASK_SUFFIX.format(job_description=job_description)


def build_sources(chunks: Sequence[RetrievedChunk]) -> List[SourceCitation]:
    return [
        SourceCitation(
            section=chunk.section,
            relevance=f"{chunk.score * 100:.1f}%",
            key_info=chunk.content[:100] + "...",
        )
        for chunk in chunks
    ]


def extract_skill_snippet(text: str, skill: str, radius: int = 50) -> str:
    index = text.lower().find(skill.lower())
    if index == -1:
        return ""
    start = max(0, index - radius)
    end = min(len(text), index + len(skill) + radius)
    return "..." + text[start:end] + "..."


class StructuredAnalyzer:
    def __init__(
        self,
        retriever: Retriever,
        chat_model: StructuredChatModel,
        analysis_config: Optional[AnalysisConfig] = None,
        retrieval_config: Optional[RetrievalConfig] = None,
    ):
        self.retriever = retriever
        self.chat_model = chat_model
        self.config = analysis_config or AnalysisConfig()
        self.retrieval_config = retrieval_config or RetrievalConfig()

    async def analyze_resume(
        self,
        query: Optional[str] = None,
        job_description: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        doc_id: Optional[str] = None,
        top_k: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Run a retrieval-augmented analysis.

        Args:
            query: Analysis request; defaults to a comprehensive review.
            job_description: Optional JD to score the candidate against.
            user_id: Restrict retrieval to this owner.
            doc_id: Restrict retrieval to this document.
            top_k: Chunks to retrieve (default from config).

        Returns:
            ``{"success": True, "data": <ResumeProfile dict>, "metadata": {...}}``

        Raises:
            NoContext: when retrieval returns nothing.
            AnalysisFailed: when the model call fails or returns non-JSON.
        """
        query = query or DEFAULT_ANALYSIS_QUERY
        top_k = top_k or self.retrieval_config.default_top_k

        chunks = await self.retriever.retrieve_context(
            build_retrieval_query(query, job_description),
            top_k=top_k,
            where=build_filter(user_id, doc_id),
        )
        if not chunks:
            raise NoContext()

        user_prompt = ANALYSIS_PROMPT.format(
            context=format_context(chunks), task=build_task(query, job_description)
        )

        started = time.perf_counter()
        content = await self.chat_model.chat(
            system=REVIEWER_SYSTEM_PROMPT,
            user=user_prompt,
            temperature=self.config.temperature,
            json_object_response=True,
            max_tokens=self.config.max_tokens,
        )
        analyze_ms = (time.perf_counter() - started) * 1000

        profile = normalize_profile(parse_json_object(content))
        if job_description and profile.job_fit_analysis is None:
            logger.warning("Model omitted job_fit_analysis; substituting an empty one")
            profile.job_fit_analysis = JobFitAnalysis(
                recommendation=FALLBACK_RECOMMENDATION
            )
        profile.sources = build_sources(chunks)

        logger.info(
            f"Analysis complete doc_id={doc_id} user_id={user_id} "
            f"chunks={len(chunks)} analyze_ms={analyze_ms:.0f}"
        )
        return {
            "success": True,
            "data": profile.model_dump(),
            "metadata": {
                "chunksAnalyzed": len(chunks),
                "queryUsed": query,
                "hasJobFitAnalysis": bool(job_description),
            },
        }

    async def analyze_skill_match(
        self,
        required_skills: Sequence[str],
        *,
        where: Optional[Dict[str, Any]] = None,
        top_k: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Check which required skills appear in the most relevant chunks."""
        skills = [s for s in required_skills if isinstance(s, str) and s.strip()]
        if not skills:
            raise ValueError("required_skills must contain at least one skill")

        chunks = await self.retriever.retrieve_context(
            "Find experience with: " + ", ".join(skills),
            top_k=top_k or self.retrieval_config.skill_match_top_k,
            where=where,
        )

        found: List[str] = []
        missing: List[str] = []
        details: Dict[str, Any] = {}
        for skill in skills:
            needle = skill.lower()
            evidence = [
                {
                    "section": chunk.section,
                    "relevance": chunk.score,
                    "snippet": extract_skill_snippet(chunk.content, skill),
                }
                for chunk in chunks
                if needle in chunk.content.lower()
            ]
            (found if evidence else missing).append(skill)
            details[skill] = {"found": bool(evidence), "evidence": evidence}

        return {
            "totalRequired": len(skills),
            "totalFound": len(found),
            "matchRate": f"{len(found) / len(skills) * 100:.1f}%",
            "foundSkills": found,
            "missingSkills": missing,
            "details": details,
        }
