"""Shared fixtures: temp database, temp storage, fake models, API client."""

import json

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cv_analyzer.agents.ai_client import AIClient
from cv_analyzer.agents.orchestrator import AnalysisPipeline
from cv_analyzer.agents.runner import AnalysisTaskRunner
from cv_analyzer.api import deps
from cv_analyzer.api.app import app
from cv_analyzer.api.auth import create_token
from cv_analyzer.api.limiter import limiter
from cv_analyzer.config import settings
from cv_analyzer.db.base import Base, engine_options, get_db
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.db.tables import User
from cv_analyzer.models import ExperienceLevel, JobContext
from cv_analyzer.tools.pdf_parser import PDFTextExtractor
from cv_analyzer.tools.storage import LocalFileStorage

CV_LINES = [
    "Jane Doe - Software Engineer",
    "Email: jane.doe@example.com  Phone: 555-0100",
    "Experience: Senior developer at Acme Corp building Python services for five years.",
    "Led a team of four engineers and reduced API latency by 40 percent.",
    "Designed event driven data pipelines processing two million records per day.",
    "Education: BSc Computer Science, State University, 2015.",
    "Skills: Python, FastAPI, PostgreSQL, Docker, Kubernetes, AWS.",
    "Projects: open source contributor to several web frameworks.",
]

ANALYSIS_PAYLOAD = {
    "overallScore": 78,
    "summary": {
        "strengths": "Strong backend experience with measurable impact.",
        "areasOfImprovement": "Few leadership examples and no cloud certifications.",
    },
    "sections": {
        "atsCompatibility": {
            "score": 82,
            "issues": ["Missing a summary section"],
            "recommendations": ["Add a professional summary"],
            "details": {"formatScore": 85, "keywordDensity": 70, "structureScore": 80, "readabilityScore": 90},
        },
        "skillsAlignment": {
            "score": 75,
            "missing": [{"skill": "Terraform", "importance": "medium"}],
            "present": [{"skill": "Python", "proficiency": "expert"}, {"skill": "Docker", "proficiency": "advanced"}],
            "suggestions": ["Learn infrastructure as code"],
        },
        "experienceRelevance": {
            "score": 80,
            "strengths": ["Five years of Python"],
            "weaknesses": ["Limited management"],
            "careerProgression": "good",
        },
        "achievementQuantification": {
            "score": 70,
            "quantifiedAchievements": ["Reduced API latency by 40 percent"],
            "improvements": [{"section": "Experience", "suggestion": "Quantify team outcomes", "example": "Shipped 12 releases"}],
        },
        "marketPositioning": {
            "score": 76,
            "competitiveAnalysis": {
                "salaryRange": {"min": 90000, "max": 130000, "currency": "USD"},
                "demandLevel": "high",
                "competitionLevel": "moderate",
            },
        },
    },
    "recommendations": [
        {
            "priority": "high",
            "category": "skills",
            "suggestion": "Add Terraform projects",
            "impact": "Better DevOps alignment",
            "difficulty": "medium",
            "estimatedTimeToImplement": "weeks",
        }
    ],
    "jobMatching": {
        "overallMatch": 74,
        "skillsMatch": 72,
        "experienceMatch": 80,
        "educationMatch": 90,
        "missingSkills": ["Terraform", "Go"],
        "bestMatches": [],
        "improvementPotential": "Could reach 85 with infrastructure skills",
    },
    "marketInsights": {
        "salaryRange": {"min": 90000, "max": 130000, "currency": "USD", "confidence": "medium"},
        "demandLevel": "high",
        "competitionLevel": "moderate",
        "growthProjection": "growing",
        "keyTrends": ["Platform engineering"],
    },
}


def build_pdf(lines: list[str] | None = None, pages: int = 1) -> bytes:
    """PDF whose pages each show one Helvetica text line per entry (no text if empty)."""
    if lines:
        ops = ["BT", "/F1 11 Tf", "14 TL", "72 760 Td"]
        for line in lines:
            escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
            ops.append(f"({escaped}) Tj T*")
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")
    else:
        stream = b""

    # 1 catalog, 2 page tree, 3.. pages, then the shared content stream and font
    content_ref = 3 + pages
    font_ref = content_ref + 1
    kids = b" ".join(b"%d 0 R" % (3 + i) for i in range(pages))
    page = (
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents %d 0 R "
        b"/Resources << /Font << /F1 %d 0 R >> >> >>" % (content_ref, font_ref)
    )
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [" + kids + b"] /Count %d >>" % pages,
        *[page] * pages,
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)


class StaticChatModel:
    """Chat model stand-in that always replies with the same content."""

    def __init__(self, content: str, usage: dict | None = None):
        self.content = content
        self.usage = usage or {"input_tokens": 1200, "output_tokens": 600, "total_tokens": 1800}
        self.calls = 0

    def invoke(self, messages, **kwargs):
        self.calls += 1
        return AIMessage(content=self.content, usage_metadata=self.usage)


class FailingChatModel:
    """Chat model stand-in that raises the same error on every call."""

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    def invoke(self, messages, **kwargs):
        self.calls += 1
        raise self.error


@pytest.fixture
def cv_pdf() -> bytes:
    return build_pdf(CV_LINES)


@pytest.fixture
def image_only_pdf() -> bytes:
    return build_pdf(None)


@pytest.fixture
def session_factory(tmp_path):
    url = f"sqlite:///{tmp_path / 'test.db'}"
    engine = create_engine(url, **engine_options(url))
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> AnalysisStore:
    return AnalysisStore(session_factory)


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "uploads")


@pytest.fixture
def users(session_factory) -> dict[str, str]:
    """Ids of an owner, a second user and a deactivated user."""
    with session_factory() as db:
        owner = User(email="owner@example.com", full_name="Owner")
        other = User(email="other@example.com", full_name="Other")
        inactive = User(email="inactive@example.com", full_name="Inactive", is_active=False)
        db.add_all([owner, other, inactive])
        db.commit()
        return {"owner": owner.id, "other": other.id, "inactive": inactive.id}


@pytest.fixture
def context() -> JobContext:
    return JobContext(experience_level=ExperienceLevel.MID, major="Computer Science")


@pytest.fixture
def chat_model() -> StaticChatModel:
    return StaticChatModel(json.dumps(ANALYSIS_PAYLOAD))


@pytest.fixture
def ai_client(chat_model) -> AIClient:
    return AIClient(chat_model, model_name="gpt-4o", max_attempts=3, base_delay=0.01, sleep=lambda s: None)


@pytest.fixture
def pipeline(store, storage, ai_client) -> AnalysisPipeline:
    return AnalysisPipeline(store, storage, PDFTextExtractor(timeout=10), ai_client)


@pytest.fixture
def runner():
    runner = AnalysisTaskRunner(max_workers=2)
    yield runner
    runner.shutdown(wait=True)


@pytest.fixture
def client(monkeypatch, session_factory, store, storage, runner, pipeline):
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    monkeypatch.setattr(settings, "upload_rate_limit", "5/minute")
    limiter.reset()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_runner] = lambda: runner
    app.dependency_overrides[deps.get_pipeline] = lambda: pipeline

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.reset()


@pytest.fixture
def auth_headers(client, users):
    """Factory: Authorization header for one of the `users` fixtures."""

    def make(who: str = "owner") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_token(users[who])}"}

    return make
