from __future__ import annotations

import math

import pytest

from outreach_agent.services.resume_rag.errors import AnalysisFailed
from outreach_agent.services.resume_rag.normalizer import (
    as_number,
    as_string_list,
    normalize_profile,
    parse_json_object,
)
from outreach_agent.services.resume_rag.schemas import JobFitAnalysis


def test_canonical_payload_round_trips(profile_reply) -> None:
    profile = normalize_profile(profile_reply)

    assert profile.candidate_name == "Sarah Chen"
    assert profile.years_of_experience == 8
    assert profile.top_skills == ["Python", "Go", "Kubernetes"]
    assert profile.key_projects[0].tech_stack == ["Go"]
    assert profile.education[0].institution == "University of Washington"
    assert profile.job_fit_analysis is None
    assert profile.sources == []


def test_aliases_and_wrappers_are_flattened() -> None:
    payload = {
        "candidateAnalysis": {
            "fullName": "Ana Lopez",
            "yearsOfExperience": "about 6 years",
            "currentRole": "Staff Engineer",
            "technicalSkills": "Rust, Go, Kafka",
            "projects": [{"title": "Ledger", "technologies": "Go, Postgres"}],
            "concerns": ["Gap in 2019", {"issue": "Short tenure", "severity": "HIGH"}],
            "fitAnalysis": {"score": "75", "matchingSkills": ["Go"]},
        },
        "unexpected": "dropped",
    }

    profile = normalize_profile(payload)

    assert profile.candidate_name == "Ana Lopez"
    assert profile.years_of_experience == 6
    assert profile.current_role == "Staff Engineer"
    assert profile.top_skills == ["Rust", "Go", "Kafka"]
    assert profile.key_projects[0].name == "Ledger"
    assert profile.key_projects[0].tech_stack == ["Go", "Postgres"]
    assert [f.flag for f in profile.red_flags] == ["Gap in 2019", "Short tenure"]
    assert profile.red_flags[0].severity == "medium"
    assert profile.red_flags[1].severity == "high"
    assert profile.job_fit_analysis.fit_score == 75
    assert profile.job_fit_analysis.matching_skills == ["Go"]
    assert not hasattr(profile, "unexpected")


def test_missing_name_defaults_to_unknown() -> None:
    assert normalize_profile({}).candidate_name == "Unknown"


def test_loose_fit_fields_are_collected() -> None:
    profile = normalize_profile(
        {"name": "Ana", "fit_score": 140, "recommendation": "consider"}
    )

    assert profile.job_fit_analysis.fit_score == 100
    assert profile.job_fit_analysis.recommendation == "consider"


def test_summary_falls_back_to_analysis_text() -> None:
    assert normalize_profile({"analysis": "Strong backend profile."}).summary == (
        "Strong backend profile."
    )


@pytest.mark.parametrize(
    "raw, expected",
    [(-5, 0), (55.5, 55.5), (250, 100), ("n/a", 0), (None, 0), (math.nan, 0)],
)
def test_fit_score_is_clamped(raw, expected) -> None:
    assert JobFitAnalysis(fit_score=raw).fit_score == expected


def test_value_coercions() -> None:
    assert as_number("7+ years") == 7
    assert as_number("2.5 yrs") == 2.5
    assert as_number(True) == 0
    assert as_string_list({"Python": 5, "Go": 3}) == ["Python", "Go"]
    assert as_string_list([{"name": "Docker"}, "  ", "Helm"]) == ["Docker", "Helm"]
    assert as_string_list(None) == []


@pytest.mark.parametrize("content", ["not json", "[1, 2]", ""])
def test_parse_json_object_rejects_non_objects(content) -> None:
    with pytest.raises(AnalysisFailed):
        parse_json_object(content)
