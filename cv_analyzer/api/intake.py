"""Upload intake validation: file checks and job context resolution."""

import uuid
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from cv_analyzer.config import settings
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.errors import ValidationError
from cv_analyzer.models import ExperienceLevel, JobContext, TargetJob

ALLOWED_EXTENSION = ".pdf"
ALLOWED_CONTENT_TYPE = "application/pdf"
MAX_DESCRIPTION_LENGTH = 10000


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_upload(filename: str | None, content_type: str | None, content: bytes | None) -> None:
    """Reject anything that is not a non-empty PDF within the size ceiling."""
    if not filename or content is None:
        raise ValidationError("CV file is required", field="cv")
    if Path(filename).suffix.lower() != ALLOWED_EXTENSION:
        raise ValidationError("Only PDF files are allowed", field="cv")
    if (content_type or "").split(";")[0].strip().lower() != ALLOWED_CONTENT_TYPE:
        raise ValidationError("Only PDF files are allowed (content type must be application/pdf)", field="cv")
    if len(content) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes / (1024 * 1024)
        raise ValidationError(f"File too large. Maximum size is {limit_mb:g}MB", field="cv")
    if not content:
        raise ValidationError("Uploaded file is empty", field="cv")


def parse_experience_level(value: str | None) -> ExperienceLevel:
    value = _blank_to_none(value)
    if value is None:
        raise ValidationError("Experience level is required", field="experienceLevel")
    try:
        return ExperienceLevel(value.lower())
    except ValueError:
        allowed = ", ".join(level.value for level in ExperienceLevel)
        raise ValidationError(f"Experience level must be one of: {allowed}", field="experienceLevel")


def parse_major(value: str | None) -> str:
    value = _blank_to_none(value)
    if value is None:
        raise ValidationError("Major/field of study is required", field="major")
    if not 2 <= len(value) <= 100:
        raise ValidationError("Major must be between 2 and 100 characters", field="major")
    return value


def parse_target_job_title(value: str | None) -> str | None:
    value = _blank_to_none(value)
    if value is not None and len(value) > 200:
        raise ValidationError("Target job title must be at most 200 characters", field="targetJobTitle")
    return value


def resolve_job(store: AnalysisStore, job_id: str | None) -> TargetJob | None:
    """Look up an active job posting to use as the analysis target."""
    job_id = _blank_to_none(job_id)
    if job_id is None:
        return None
    try:
        job_id = str(uuid.UUID(job_id))
    except ValueError:
        raise ValidationError("Invalid job ID format", field="jobId")

    job = store.get_active_job(job_id)
    if job is None:
        raise ValidationError("Job not found or no longer active", field="jobId")

    try:
        return TargetJob(
            title=job.title,
            company=job.company,
            description=(job.description or "")[:MAX_DESCRIPTION_LENGTH],
            requirements=job.requirements or [],
        )
    except PydanticValidationError:
        raise ValidationError("Job posting cannot be used as an analysis target", field="jobId")


def build_context(
    store: AnalysisStore,
    experience_level: str | None,
    major: str | None,
    job_id: str | None = None,
    target_job_title: str | None = None,
) -> JobContext:
    """Validate form fields into a JobContext."""
    level = parse_experience_level(experience_level)
    major = parse_major(major)
    title = parse_target_job_title(target_job_title)
    job = resolve_job(store, job_id)

    return JobContext(
        experience_level=level,
        major=major,
        target_job_title=title,
        target_job_descriptions=[job] if job else [],
    )
