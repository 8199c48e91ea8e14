"""CV analyzer endpoints."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from cv_analyzer.agents.orchestrator import AnalysisPipeline, context_from_record
from cv_analyzer.agents.runner import AnalysisTaskRunner
from cv_analyzer.api.auth import get_current_user
from cv_analyzer.api.deps import get_pipeline, get_runner, get_storage, get_store
from cv_analyzer.api.intake import (
    build_context,
    parse_major,
    parse_target_job_title,
    resolve_job,
    validate_upload,
)
from cv_analyzer.api.limiter import limiter, upload_rate_limit
from cv_analyzer.api.schemas import ReanalyzeRequest, UploadAccepted, dump_analysis, ok
from cv_analyzer.config import settings
from cv_analyzer.db.store import TIMEFRAMES, AnalysisStore
from cv_analyzer.db.tables import User
from cv_analyzer.errors import ConflictError, NotFoundError, SchedulingError, ValidationError
from cv_analyzer.models import AnalysisStatus
from cv_analyzer.tools.storage import LocalFileStorage

logger = logging.getLogger(__name__)

router = APIRouter()


def _remove_file(storage: LocalFileStorage, reference: str) -> None:
    try:
        storage.delete(reference)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to delete stored file {reference}: {e}")


@router.post("/upload", status_code=202)
@limiter.limit(upload_rate_limit)
async def upload_cv(
    request: Request,
    cv: UploadFile | None = File(default=None),
    experience_level: str | None = Form(default=None, alias="experienceLevel"),
    major: str | None = Form(default=None),
    job_id: str | None = Form(default=None, alias="jobId"),
    target_job_title: str | None = Form(default=None, alias="targetJobTitle"),
    user: User = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
    storage: LocalFileStorage = Depends(get_storage),
    runner: AnalysisTaskRunner = Depends(get_runner),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    """Accept a CV for analysis. The analysis runs in the background."""
    # Read one byte past the ceiling so oversize is detectable without buffering more
    content = await cv.read(settings.max_upload_bytes + 1) if cv is not None else None
    validate_upload(cv.filename if cv else None, cv.content_type if cv else None, content)
    context = build_context(store, experience_level, major, job_id, target_job_title)

    stored = storage.save(content)
    try:
        record = store.create(user.id, cv.filename, stored.reference, stored.size, context)
    except Exception:
        _remove_file(storage, stored.reference)
        raise

    try:
        runner.submit(record.id, pipeline.run, record.id, record.version)
    except SchedulingError:
        logger.error(f"[{record.id}] Could not schedule analysis; rolling back upload")
        store.discard(record.id)
        _remove_file(storage, stored.reference)
        raise

    accepted = UploadAccepted(analysis_id=record.id)
    return ok(accepted.model_dump(by_alias=True), "CV uploaded successfully. Analysis in progress.")


@router.get("/results/{analysis_id}")
def get_results(
    analysis_id: str,
    user: User = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    """Current state of one analysis, including the report once completed."""
    record = store.find_by_id_and_owner(analysis_id, user.id)
    if record is None:
        raise NotFoundError("Analysis not found")
    data = dump_analysis(record, include_text=True)
    data["user"] = {"fullName": user.full_name, "email": user.email}
    return ok(data)


@router.get("/history")
def get_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    status: AnalysisStatus | None = Query(default=None),
    user: User = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    """Newest-first page of the caller's analyses."""
    result = store.list_by_owner(user.id, page=page, limit=limit, status=status.value if status else None)
    result["docs"] = [dump_analysis(doc) for doc in result["docs"]]
    return ok(result)


@router.post("/reanalyze/{analysis_id}")
def reanalyze(
    analysis_id: str,
    data: ReanalyzeRequest | None = None,
    user: User = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
    runner: AnalysisTaskRunner = Depends(get_runner),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    """Rerun a finished analysis, optionally with new context."""
    record = store.find_by_id_and_owner(analysis_id, user.id)
    if record is None:
        raise NotFoundError("Analysis not found")
    if runner.is_running(analysis_id):
        raise ConflictError("Analysis is already being processed")

    context = context_from_record(record)
    if data is not None:
        if data.experience_level is not None:
            context.experience_level = data.experience_level
        if data.major is not None:
            context.major = parse_major(data.major)
        if data.target_job_title is not None:
            context.target_job_title = parse_target_job_title(data.target_job_title)
        if data.job_id is not None:
            job = resolve_job(store, data.job_id)
            context.target_job_descriptions = [job] if job else []

    record = store.reset_for_reanalysis(analysis_id, user.id, context)
    try:
        runner.submit(record.id, pipeline.run, record.id, record.version)
    except SchedulingError as e:
        store.mark_failed(record.id, record.version, str(e))
        raise

    return ok(
        {"analysisId": record.id, "status": record.status},
        "CV reanalysis started successfully",
    )


@router.delete("/{analysis_id}")
def delete_analysis(
    analysis_id: str,
    user: User = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Soft-delete an analysis and remove its stored file."""
    record = store.soft_delete(analysis_id, user.id)
    _remove_file(storage, record.file_ref)
    return ok(message="Analysis deleted successfully")


@router.get("/analytics")
def get_analytics(
    timeframe: str = Query(default="30d"),
    user: User = Depends(get_current_user),
    store: AnalysisStore = Depends(get_store),
):
    """Score distribution, trend and recurring skills over a time window."""
    if timeframe not in TIMEFRAMES:
        allowed = ", ".join(TIMEFRAMES)
        raise ValidationError(f"Invalid timeframe. Use one of: {allowed}", field="timeframe")
    return ok(store.analytics(user.id, timeframe))


@router.get("/health")
def health(
    store: AnalysisStore = Depends(get_store),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Service health. No authentication required."""
    try:
        database = "connected" if store.ping() else "disconnected"
    except Exception as e:  # noqa: BLE001 - reported, not raised
        logger.warning(f"Health check database ping failed: {e}")
        database = "disconnected"

    return {
        "success": True,
        "message": "CV Analyzer service is running",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": {
            "ai": "configured" if settings.openai_api_key else "not configured",
            "storage": storage.kind,
            "database": database,
        },
    }
