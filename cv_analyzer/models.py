"""
Domain models for CV analysis.

Job context submitted with an upload, and the typed report produced by the
language model. Report models are lenient on input (unknown keys ignored,
scores clamped, scalars coerced into lists) so they can sit directly at the
AI-response boundary, while their dumps form the persisted schema.
"""

import math
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ExperienceLevel(str, Enum):
    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    EXECUTIVE = "executive"


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (AnalysisStatus.COMPLETED.value, AnalysisStatus.FAILED.value)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Lower bound of each band, highest first
SCORE_BANDS: list[tuple[int, str]] = [
    (90, "exceptional"),
    (80, "strong"),
    (70, "good"),
    (60, "fair"),
    (0, "poor"),
]


def score_label(score: int) -> str:
    """Map a 0-100 score to its rubric label."""
    for lower, label in SCORE_BANDS:
        if score >= lower:
            return label
    return SCORE_BANDS[-1][1]


def clamp_score(value: Any) -> int | None:
    """Coerce a model-supplied score into [0, 100]; None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if not match:
            return None
        value = match.group()
    elif isinstance(value, int):
        return max(0, min(100, value))
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    if math.isinf(number):
        return 100 if number > 0 else 0
    return max(0, min(100, int(round(number))))


def _as_amount(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^\d.]", "", str(value))
    if not digits:
        return None
    try:
        amount = float(digits)
    except ValueError:
        return None
    if str(value).strip().lower().endswith("k"):
        amount *= 1000
    if not math.isfinite(amount):
        return None
    return int(amount)


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return [str(value)]

    items = []
    for item in value:
        if isinstance(item, dict):
            item = next((v for v in item.values() if isinstance(v, str)), None)
        if item is None:
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items


def _object_list(key: str | None):
    """Build a validator accepting objects, or bare strings mapped onto `key`."""

    def coerce(value: Any) -> list:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        items = []
        for item in value:
            if isinstance(item, (dict, BaseModel)):
                items.append(item)
            elif key and isinstance(item, str) and item.strip():
                items.append({key: item.strip()})
        return items

    return coerce


def _coerce_priority(value: Any) -> str:
    if isinstance(value, Priority):
        return value.value
    text = str(value or "").strip().lower()
    return text if text in Priority._value2member_map_ else Priority.MEDIUM.value


Score = Annotated[int | None, BeforeValidator(clamp_score)]
Amount = Annotated[int | None, BeforeValidator(_as_amount)]
StrList = Annotated[list[str], BeforeValidator(_as_str_list)]


class CamelModel(BaseModel):
    """Base model: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _coerce_mapping(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._from_text(data)
        if data is None or isinstance(data, (list, tuple, int, float, bool)):
            return {}
        return data

    @classmethod
    def _from_text(cls, text: str) -> dict:
        return {}


# Job context

class TargetJob(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    company: str | None = Field(default=None, max_length=200)
    description: str = Field(default="", max_length=10000)
    requirements: StrList = Field(default_factory=list)


class JobContext(CamelModel):
    experience_level: ExperienceLevel
    major: str = Field(min_length=2, max_length=100)
    target_job_title: str | None = Field(default=None, max_length=200)
    target_job_descriptions: list[TargetJob] = Field(default_factory=list)


# Report sections

class Summary(CamelModel):
    strengths: str | None = ""
    areas_of_improvement: str | None = ""
    key_findings: str | None = None

    @classmethod
    def _from_text(cls, text: str) -> dict:
        return {"keyFindings": text}


class AtsDetails(CamelModel):
    format_score: Score = None
    keyword_density: Score = None
    structure_score: Score = None
    readability_score: Score = None


class AtsCompatibility(CamelModel):
    score: Score = None
    issues: StrList = Field(default_factory=list)
    recommendations: StrList = Field(default_factory=list)
    details: AtsDetails = Field(default_factory=AtsDetails)


class MissingSkill(CamelModel):
    skill: str = ""
    importance: str | None = None


class PresentSkill(CamelModel):
    skill: str = ""
    proficiency: str | None = None


class SkillsAlignment(CamelModel):
    score: Score = None
    missing: Annotated[list[MissingSkill], BeforeValidator(_object_list("skill"))] = Field(default_factory=list)
    present: Annotated[list[PresentSkill], BeforeValidator(_object_list("skill"))] = Field(default_factory=list)
    suggestions: StrList = Field(default_factory=list)


class ExperienceRelevance(CamelModel):
    score: Score = None
    strengths: StrList = Field(default_factory=list)
    weaknesses: StrList = Field(default_factory=list)
    career_progression: str | None = None


class QuantificationImprovement(CamelModel):
    section: str | None = None
    suggestion: str = ""
    example: str | None = None


class AchievementQuantification(CamelModel):
    score: Score = None
    quantified_achievements: StrList = Field(default_factory=list)
    improvements: Annotated[
        list[QuantificationImprovement], BeforeValidator(_object_list("suggestion"))
    ] = Field(default_factory=list)


class SalaryRange(CamelModel):
    min: Amount = None
    max: Amount = None
    currency: str | None = "USD"
    confidence: str | None = None


class CompetitiveAnalysis(CamelModel):
    salary_range: SalaryRange = Field(default_factory=SalaryRange)
    demand_level: str | None = None
    competition_level: str | None = None


class MarketPositioning(CamelModel):
    score: Score = None
    competitive_analysis: CompetitiveAnalysis = Field(default_factory=CompetitiveAnalysis)


class Sections(CamelModel):
    ats_compatibility: AtsCompatibility = Field(default_factory=AtsCompatibility)
    skills_alignment: SkillsAlignment = Field(default_factory=SkillsAlignment)
    experience_relevance: ExperienceRelevance = Field(default_factory=ExperienceRelevance)
    achievement_quantification: AchievementQuantification = Field(default_factory=AchievementQuantification)
    market_positioning: MarketPositioning = Field(default_factory=MarketPositioning)

    def scored(self) -> list:
        return [
            self.ats_compatibility,
            self.skills_alignment,
            self.experience_relevance,
            self.achievement_quantification,
            self.market_positioning,
        ]


SECTION_NAMES = tuple(to_camel(name) for name in Sections.model_fields)


def _drop_empty_suggestions(items: list) -> list:
    return [item for item in items if item.suggestion.strip()]


class Recommendation(CamelModel):
    priority: Annotated[Priority, BeforeValidator(_coerce_priority)] = Priority.MEDIUM
    category: str | None = "general"
    suggestion: str = ""
    impact: str | None = None
    difficulty: str | None = None
    estimated_time_to_implement: str | None = None


class JobMatch(CamelModel):
    job_index: int | None = None
    compatibility_score: Score = None
    matching_skills: StrList = Field(default_factory=list)
    missing_skills: StrList = Field(default_factory=list)
    recommendations: StrList = Field(default_factory=list)


class JobMatching(CamelModel):
    overall_match: Score = None
    skills_match: Score = None
    experience_match: Score = None
    education_match: Score = None
    missing_skills: StrList = Field(default_factory=list)
    best_matches: Annotated[list[JobMatch], BeforeValidator(_object_list(None))] = Field(default_factory=list)
    improvement_potential: str | None = None


class MarketInsights(CamelModel):
    salary_range: SalaryRange = Field(default_factory=SalaryRange)
    demand_level: str | None = None
    competition_level: str | None = None
    growth_projection: str | None = None
    key_trends: StrList = Field(default_factory=list)


class AIAnalysis(CamelModel):
    """Structured CV report as returned by the model."""

    overall_score: Score = None
    summary: Summary = Field(default_factory=Summary)
    sections: Sections = Field(default_factory=Sections)
    recommendations: Annotated[
        list[Recommendation],
        BeforeValidator(_object_list("suggestion")),
        AfterValidator(_drop_empty_suggestions),
    ] = Field(default_factory=list)
    job_matching: JobMatching = Field(default_factory=JobMatching)
    market_insights: MarketInsights = Field(default_factory=MarketInsights)

    def with_defaults(self, default_score: int) -> "AIAnalysis":
        """Fill missing overall/section scores so every score is set."""
        overall = self.overall_score if self.overall_score is not None else clamp_score(default_score)
        self.overall_score = overall
        for section in self.sections.scored():
            if section.score is None:
                section.score = overall
        return self


class AIUsage(CamelModel):
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    tokens_used: int = 0
    processing_time_ms: int = 0
    cost: float = 0.0
    attempts: int = 0
    degraded: bool = False


class ProcessingStage(CamelModel):
    stage: str
    status: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None
