"""API request/response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from cv_analyzer.models import ExperienceLevel


def ok(data: Any = None, message: str | None = None) -> dict:
    """Success envelope shared by every endpoint."""
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


# Analysis schemas
class AnalysisSummary(BaseModel):
    """Analysis as listed in history (no extracted text)."""

    id: str
    original_filename: str
    file_size: int
    experience_level: str
    major: str
    target_job_title: str | None
    target_jobs: list[dict] = Field(default_factory=list)
    status: str
    overall_score: int | None
    summary: dict | None
    sections: dict | None
    recommendations: list[dict] = Field(default_factory=list)
    job_matching: dict | None
    market_insights: dict | None
    ai_usage: dict | None
    processing_stages: list[dict] = Field(default_factory=list)
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class AnalysisDetail(AnalysisSummary):
    """Full analysis returned by the results endpoint."""

    extracted_text: str | None


def dump_analysis(record, include_text: bool = False) -> dict:
    schema = AnalysisDetail if include_text else AnalysisSummary
    return schema.model_validate(record).model_dump(by_alias=True, mode="json")


class UploadAccepted(BaseModel):
    analysis_id: str
    status: str = "processing"
    estimated_completion_time: str = "2-3 minutes"

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# Reanalysis
class ReanalyzeRequest(BaseModel):
    """Optional overrides for a rerun. Empty targetJobTitle clears it."""

    experience_level: ExperienceLevel | None = None
    major: str | None = Field(default=None, min_length=2, max_length=100)
    target_job_title: str | None = Field(default=None, max_length=200)
    job_id: str | None = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"
