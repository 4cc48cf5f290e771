from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from outreach_agent.services.resume_rag.chat_model import StructuredChatModel
from outreach_agent.services.resume_rag.config import (
    AnalysisConfig,
    EmbeddingConfig,
    ResumeRAGConfig,
    VectorStoreConfig,
)
from outreach_agent.services.resume_rag.embeddings import Embedder, HashingEmbeddings
from outreach_agent.services.resume_rag.service import ResumeRAGService
from outreach_agent.services.resume_rag.user_store import InMemoryUserStore
from outreach_agent.services.resume_rag.vector_store import InMemoryVectorStore

TEST_DIMENSIONS = 128

SAMPLE_RESUME = """Sarah Chen
Senior Software Engineer
sarah.chen@example.com | (555) 010-4477 | Seattle, WA
github.com/sarahchen-dev

SUMMARY
Backend-focused software professional with 8 years of experience designing
distributed systems and data platforms. Career highlights include leading a
team of six engineers and cutting infrastructure spend by 30%. Strong skills in
Python, Go and cloud-native tooling.

EDUCATION
M.S. Computer Science, University of Washington, 2016
Thesis on fault-tolerant consensus in geo-replicated databases.
B.S. Computer Engineering, Oregon State University, 2014

WORK EXPERIENCE
Senior Software Engineer, Northwind Analytics (2020 - Present)
- Led migration of 40 services to Kubernetes, reducing deploy time from hours to minutes.
- Designed an event pipeline in Python and Kafka processing 2B events per day.
- Mentored four engineers and ran the backend hiring loop.

Software Engineer, Contoso Cloud (2016 - 2020)
- Built Go microservices for billing with 99.99% availability.
- Introduced PostgreSQL partitioning that cut query latency by 60%.

TECHNICAL SKILLS
Programming: Python, Go, Java, SQL
Infrastructure: Kubernetes, Docker, Terraform, AWS, GCP
Data: Kafka, Spark, PostgreSQL, Redis

KEY PROJECTS
Streamline - open source workflow engine written in Go with 2k GitHub stars.
Beacon - anomaly detection service for payment traffic using Python and scikit-learn.

CERTIFICATIONS
Certified Kubernetes Administrator (CKA), 2021
AWS Certified Solutions Architect - Associate, 2019
"""

COOKBOOK_TEXT = """Chapter 1: Introduction to Cooking

Welcome to the kitchen. This book walks through simple recipes for every day.

Ingredients
2 cups flour, 1 cup sugar, 3 eggs, a pinch of salt and 200 ml milk.

Instructions
Whisk the eggs with the sugar, fold in the flour and salt, then add the milk
slowly. Bake at 180 degrees for 25 minutes until golden.
"""

SAMPLE_PROFILE_REPLY = {
    "candidate_name": "Sarah Chen",
    "years_of_experience": 8,
    "current_role": "Senior Software Engineer",
    "top_skills": ["Python", "Go", "Kubernetes"],
    "key_projects": [
        {
            "name": "Streamline",
            "tech_stack": ["Go"],
            "impact": "2k GitHub stars",
            "source_chunk": "projects",
        }
    ],
    "education": [
        {
            "degree": "M.S. Computer Science",
            "institution": "University of Washington",
            "year": "2016",
            "highlights": "Consensus thesis",
        }
    ],
    "strengths": ["Distributed systems"],
    "red_flags": [],
    "summary": "Seasoned backend engineer.",
}

SAMPLE_JOB_FIT_REPLY = {
    **SAMPLE_PROFILE_REPLY,
    "job_fit_analysis": {
        "fit_score": 82,
        "matching_skills": ["Kubernetes", "distributed systems"],
        "missing_skills": [],
        "recommendation": "hire - strong platform background",
    },
}

SAMPLE_PARSER_REPLY = {
    "fullName": "Sarah Chen",
    "currentRole": "Senior Software Engineer",
    "yearsOfExperience": 8,
    "skills": ["Python", "Go", "Kubernetes", "python"],
    "summary": "Backend engineer focused on distributed systems.",
    "experiences": [
        {
            "company": "Northwind Analytics",
            "role": "Senior Software Engineer",
            "highlights": "Kubernetes migration",
        }
    ],
    "cleanedText": "Sarah Chen ...",
}


class CountingEmbeddings(HashingEmbeddings):
    """Offline hashing embeddings that record the size of every batch."""

    def __init__(self, size: int = TEST_DIMENSIONS):
        super().__init__(size=size)
        self.calls: List[int] = []

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(len(texts))
        return super().embed_documents(texts)


class RecordingChatModel(FakeListChatModel):
    """FakeListChatModel that keeps the prompts and call options it received."""

    received: List[Dict[str, Any]] = []

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        self.received.append({"messages": messages, "options": kwargs})
        return super()._call(messages, stop=stop, run_manager=run_manager, **kwargs)


def make_chat_model(*replies: Any) -> RecordingChatModel:
    return RecordingChatModel(
        responses=[r if isinstance(r, str) else json.dumps(r) for r in replies],
        received=[],
    )


def make_config(**vector_overrides: Any) -> ResumeRAGConfig:
    return ResumeRAGConfig(
        embedding=EmbeddingConfig(openai_api_key=None, dimensions=TEST_DIMENSIONS),
        vector_store=VectorStoreConfig(
            use_in_memory_store=True, batch_pause_s=0.0, **vector_overrides
        ),
        analysis=AnalysisConfig(openai_api_key=None),
    )


def make_service(
    llm: Optional[FakeListChatModel] = None,
    embeddings: Optional[Embeddings] = None,
    store: Optional[InMemoryVectorStore] = None,
    rag_config: Optional[ResumeRAGConfig] = None,
) -> ResumeRAGService:
    rag_config = rag_config or make_config()
    return ResumeRAGService(
        embedder=Embedder(embeddings or CountingEmbeddings(), rag_config.embedding),
        store=store or InMemoryVectorStore(),
        chat_model=StructuredChatModel(
            llm or make_chat_model(SAMPLE_PARSER_REPLY), rag_config.analysis
        ),
        user_store=InMemoryUserStore(),
        rag_config=rag_config,
    )


@pytest.fixture
def sample_resume() -> str:
    return SAMPLE_RESUME


@pytest.fixture
def cookbook_text() -> str:
    return COOKBOOK_TEXT


@pytest.fixture
def profile_reply() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_PROFILE_REPLY)


@pytest.fixture
def job_fit_reply() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_JOB_FIT_REPLY)


@pytest.fixture
def parser_reply() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_PARSER_REPLY)


@pytest.fixture
def embeddings() -> CountingEmbeddings:
    return CountingEmbeddings()


@pytest.fixture
def rag_config() -> ResumeRAGConfig:
    return make_config()


@pytest.fixture
def embedder(embeddings, rag_config) -> Embedder:
    return Embedder(embeddings, rag_config.embedding)


@pytest.fixture
def chat_model_factory():
    return make_chat_model


@pytest.fixture
def service_factory():
    return make_service
