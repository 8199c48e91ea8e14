"""
Analysis record store.

Persistence and query layer for CV analyses plus the status state machine.
Every write made on behalf of a run is a conditional UPDATE guarded by the
record's `version`, so a stale run can never overwrite a newer one and
terminal states are never written twice.
"""

import logging
import math
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import defer

from cv_analyzer.db.base import get_session_factory
from cv_analyzer.db.tables import CVAnalysis, Job
from cv_analyzer.errors import ConflictError, NotFoundError
from cv_analyzer.models import (
    SCORE_BANDS,
    TERMINAL_STATUSES,
    AIAnalysis,
    AIUsage,
    AnalysisStatus,
    JobContext,
    ProcessingStage,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
MAX_ERROR_LENGTH = 500
TOP_SKILLS_LIMIT = 10

TIMEFRAMES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}

STAGE_EXTRACTION = "extraction"
STAGE_ANALYSIS = "analysis"
STAGE_COMPLETION = "completion"

STAGE_IN_PROGRESS = "in-progress"
STAGE_COMPLETED = "completed"
STAGE_FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(UTC)


def _report_columns(analysis: AIAnalysis) -> dict[str, Any]:
    """Canonical camelCase dumps of the report, keyed by column."""
    return {
        "overall_score": analysis.overall_score,
        "summary": analysis.summary.model_dump(by_alias=True, mode="json"),
        "sections": analysis.sections.model_dump(by_alias=True, mode="json"),
        "recommendations": [r.model_dump(by_alias=True, mode="json") for r in analysis.recommendations],
        "job_matching": analysis.job_matching.model_dump(by_alias=True, mode="json"),
        "market_insights": analysis.market_insights.model_dump(by_alias=True, mode="json"),
    }


CLEARED_REPORT = {
    "overall_score": None,
    "summary": None,
    "sections": None,
    "recommendations": [],
    "job_matching": None,
    "market_insights": None,
    "ai_usage": None,
    "error_message": None,
    "completed_at": None,
    "processing_stages": [],
}


def _with_stage(stages: list | None, stage: str, status: str, error: str | None = None) -> list:
    """Return a new stage list with `stage` started, finished or failed."""
    now = utcnow()
    stages = [dict(s) for s in (stages or [])]
    current = next((s for s in reversed(stages) if s.get("stage") == stage), None)

    if status == STAGE_IN_PROGRESS or current is None:
        entry = ProcessingStage(stage=stage, status=status, started_at=now)
        if status != STAGE_IN_PROGRESS:
            entry.ended_at = now
            entry.error = error
        stages.append(entry.model_dump(by_alias=True, mode="json"))
        return stages

    current["status"] = status
    current["endedAt"] = now.isoformat()
    if error:
        current["error"] = error[:MAX_ERROR_LENGTH]
    return stages


def _utc_day(moment: datetime) -> str:
    """ISO date of `moment` in UTC; naive values (SQLite) are already UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return moment.date().isoformat()


def _skill_names(items: Any) -> list[str]:
    names = []
    for item in items or []:
        if isinstance(item, dict):
            item = item.get("skill")
        if isinstance(item, str) and item.strip():
            names.append(item.strip())
    return names


class AnalysisStore:
    """Query and state-transition operations on `cv_analyses`."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _session(self):
        factory = self._session_factory or get_session_factory()
        return factory()

    # Creation and reads

    def create(
        self,
        user_id: str,
        original_filename: str,
        file_ref: str,
        file_size: int,
        context: JobContext,
    ) -> CVAnalysis:
        """Insert a new `pending` record."""
        with self._session() as db:
            record = CVAnalysis(
                user_id=user_id,
                original_filename=original_filename[:255],
                file_ref=file_ref,
                file_size=file_size,
                experience_level=context.experience_level.value,
                major=context.major,
                target_job_title=context.target_job_title,
                target_jobs=[j.model_dump(by_alias=True) for j in context.target_job_descriptions],
                status=AnalysisStatus.PENDING.value,
                version=1,
            )
            db.add(record)
            db.commit()
            db.refresh(record)
            logger.info(f"[{record.id}] Created analysis for user {user_id}")
            return record

    def get(self, analysis_id: str) -> CVAnalysis | None:
        with self._session() as db:
            return db.get(CVAnalysis, analysis_id)

    def find_by_id_and_owner(self, analysis_id: str, user_id: str) -> CVAnalysis | None:
        """Active record owned by `user_id`; None for missing or foreign ids."""
        with self._session() as db:
            return (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.user_id == user_id,
                    CVAnalysis.is_active.is_(True),
                )
                .first()
            )

    def list_by_owner(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
    ) -> dict[str, Any]:
        """Newest-first page of a user's analyses, without extracted text."""
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        with self._session() as db:
            query = db.query(CVAnalysis).filter(
                CVAnalysis.user_id == user_id,
                CVAnalysis.is_active.is_(True),
            )
            if status:
                query = query.filter(CVAnalysis.status == status)

            total = query.count()
            docs = (
                query.options(defer(CVAnalysis.extracted_text))
                .order_by(CVAnalysis.created_at.desc(), CVAnalysis.id)
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )

        total_pages = math.ceil(total / limit) if total else 0
        return {
            "docs": docs,
            "totalDocs": total,
            "limit": limit,
            "page": page,
            "totalPages": total_pages,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        }

    def get_active_job(self, job_id: str) -> Job | None:
        with self._session() as db:
            return db.query(Job).filter(Job.id == job_id, Job.is_active.is_(True)).first()

    # Run transitions (version guarded)

    def begin_processing(self, analysis_id: str, version: int) -> bool:
        """Claim the record for a run: pending/processing -> processing."""
        with self._session() as db:
            updated = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.version == version,
                    CVAnalysis.status.in_([AnalysisStatus.PENDING.value, AnalysisStatus.PROCESSING.value]),
                )
                .update(
                    {"status": AnalysisStatus.PROCESSING.value, "updated_at": utcnow()},
                    synchronize_session=False,
                )
            )
            db.commit()
        return updated == 1

    def update_stage(
        self,
        analysis_id: str,
        version: int,
        stage: str,
        stage_status: str,
        error: str | None = None,
        **fields: Any,
    ) -> bool:
        """Record stage progress and attach partial results to a processing record."""
        with self._session() as db:
            record = db.get(CVAnalysis, analysis_id)
            if record is None or record.version != version or record.status != AnalysisStatus.PROCESSING.value:
                return False

            values = dict(fields)
            values["processing_stages"] = _with_stage(record.processing_stages, stage, stage_status, error)
            values["updated_at"] = utcnow()
            updated = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.version == version,
                    CVAnalysis.status == AnalysisStatus.PROCESSING.value,
                )
                .update(values, synchronize_session=False)
            )
            db.commit()
        return updated == 1

    def mark_completed(self, analysis_id: str, version: int, analysis: AIAnalysis, usage: AIUsage) -> bool:
        """
        processing -> completed with the full report.

        Returns:
            False (and writes nothing) if the record is already terminal or
            belongs to a newer run
        """
        with self._session() as db:
            record = db.get(CVAnalysis, analysis_id)
            if record is None or record.version != version or record.status != AnalysisStatus.PROCESSING.value:
                logger.warning(f"[{analysis_id}] Skipping completion: record is not processing at version {version}")
                return False

            now = utcnow()
            values = _report_columns(analysis)
            values.update(
                status=AnalysisStatus.COMPLETED.value,
                ai_usage=usage.model_dump(by_alias=True, mode="json"),
                error_message=None,
                processing_stages=_with_stage(record.processing_stages, STAGE_COMPLETION, STAGE_COMPLETED),
                completed_at=now,
                updated_at=now,
            )
            updated = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.version == version,
                    CVAnalysis.status == AnalysisStatus.PROCESSING.value,
                )
                .update(values, synchronize_session=False)
            )
            db.commit()
        return updated == 1

    def mark_failed(self, analysis_id: str, version: int, reason: str, stage: str | None = None) -> bool:
        """Move a non-terminal record to failed with the reason recorded verbatim."""
        reason = (reason or "Analysis failed")[:MAX_ERROR_LENGTH]
        with self._session() as db:
            record = db.get(CVAnalysis, analysis_id)
            if record is None or record.version != version or record.status in TERMINAL_STATUSES:
                logger.warning(f"[{analysis_id}] Skipping failure: record is terminal or not at version {version}")
                return False

            now = utcnow()
            values: dict[str, Any] = {
                "status": AnalysisStatus.FAILED.value,
                "error_message": reason,
                "overall_score": None,
                "updated_at": now,
                "completed_at": now,
            }
            if stage:
                values["processing_stages"] = _with_stage(record.processing_stages, stage, STAGE_FAILED, reason)
            updated = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.version == version,
                    CVAnalysis.status.notin_(TERMINAL_STATUSES),
                )
                .update(values, synchronize_session=False)
            )
            db.commit()
        return updated == 1

    # User actions

    def reset_for_reanalysis(self, analysis_id: str, user_id: str, context: JobContext) -> CVAnalysis:
        """
        Reset a terminal record to processing under a new version.

        Raises:
            NotFoundError: record missing, deleted, or owned by someone else
            ConflictError: the record is already being analyzed
        """
        with self._session() as db:
            record = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.user_id == user_id,
                    CVAnalysis.is_active.is_(True),
                )
                .first()
            )
            if record is None:
                raise NotFoundError("Analysis not found")
            if record.status not in TERMINAL_STATUSES:
                raise ConflictError("Analysis is already being processed")

            values = dict(CLEARED_REPORT)
            values.update(
                status=AnalysisStatus.PROCESSING.value,
                version=record.version + 1,
                experience_level=context.experience_level.value,
                major=context.major,
                target_job_title=context.target_job_title,
                target_jobs=[j.model_dump(by_alias=True) for j in context.target_job_descriptions],
                updated_at=utcnow(),
            )
            updated = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.version == record.version,
                    CVAnalysis.status.in_(TERMINAL_STATUSES),
                )
                .update(values, synchronize_session=False)
            )
            db.commit()
            if updated != 1:
                raise ConflictError("Analysis is already being processed")

            db.expire(record)
            db.refresh(record)
            logger.info(f"[{analysis_id}] Reset for reanalysis (version {record.version})")
            return record

    def soft_delete(self, analysis_id: str, user_id: str) -> CVAnalysis:
        """Hide a record from every read. Returns the record for file cleanup."""
        with self._session() as db:
            record = (
                db.query(CVAnalysis)
                .filter(
                    CVAnalysis.id == analysis_id,
                    CVAnalysis.user_id == user_id,
                    CVAnalysis.is_active.is_(True),
                )
                .first()
            )
            if record is None:
                raise NotFoundError("Analysis not found")

            now = utcnow()
            record.is_active = False
            record.deleted_at = now
            record.updated_at = now
            db.commit()
            db.refresh(record)
            logger.info(f"[{analysis_id}] Soft-deleted by user {user_id}")
            return record

    def discard(self, analysis_id: str) -> None:
        """Hard-delete a record whose run was never scheduled."""
        with self._session() as db:
            db.query(CVAnalysis).filter(CVAnalysis.id == analysis_id).delete(synchronize_session=False)
            db.commit()

    def find_stuck(self, cutoff: datetime) -> list[CVAnalysis]:
        """Records still processing with no update since `cutoff`."""
        with self._session() as db:
            return (
                db.query(CVAnalysis)
                .options(defer(CVAnalysis.extracted_text))
                .filter(
                    CVAnalysis.status == AnalysisStatus.PROCESSING.value,
                    CVAnalysis.updated_at < cutoff,
                )
                .all()
            )

    def ping(self) -> bool:
        with self._session() as db:
            db.execute(text("SELECT 1"))
        return True

    # Analytics

    def analytics(self, user_id: str, timeframe: str = "30d") -> dict[str, Any]:
        """
        Aggregate a user's analyses over a time window.

        Args:
            user_id: Owner
            timeframe: One of 7d, 30d, 90d, 1y

        Returns:
            Totals, average score, score distribution by rubric band,
            a per-day trend, and the most frequent present/missing skills
        """
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unsupported timeframe: {timeframe}")
        since = utcnow() - TIMEFRAMES[timeframe]

        with self._session() as db:
            rows = (
                db.query(
                    CVAnalysis.status,
                    CVAnalysis.overall_score,
                    CVAnalysis.created_at,
                    CVAnalysis.sections,
                    CVAnalysis.job_matching,
                )
                .filter(
                    CVAnalysis.user_id == user_id,
                    CVAnalysis.is_active.is_(True),
                    CVAnalysis.created_at >= since,
                )
                .order_by(CVAnalysis.created_at)
                .all()
            )

        distribution = {label: 0 for _, label in SCORE_BANDS}
        per_day: dict[str, list[int]] = {}
        present = Counter()
        missing = Counter()
        scores = []
        completed = failed = 0

        for status, score, created_at, sections, job_matching in rows:
            day = _utc_day(created_at)
            per_day.setdefault(day, [])
            if status == AnalysisStatus.FAILED.value:
                failed += 1
            if status != AnalysisStatus.COMPLETED.value or score is None:
                continue

            completed += 1
            scores.append(score)
            per_day[day].append(score)
            for lower, label in SCORE_BANDS:
                if score >= lower:
                    distribution[label] += 1
                    break

            skills = (sections or {}).get("skillsAlignment") or {}
            present.update(set(_skill_names(skills.get("present"))))
            missing_names = _skill_names(skills.get("missing"))
            missing_names += _skill_names((job_matching or {}).get("missingSkills"))
            missing.update(set(missing_names))

        trend = [
            {
                "date": day,
                "count": len(day_scores),
                "averageScore": round(sum(day_scores) / len(day_scores), 1) if day_scores else None,
            }
            for day, day_scores in per_day.items()
        ]

        return {
            "timeframe": timeframe,
            "totalAnalyses": len(rows),
            "completedAnalyses": completed,
            "failedAnalyses": failed,
            "averageScore": round(sum(scores) / len(scores), 1) if scores else None,
            "scoreDistribution": distribution,
            "trend": trend,
            "topSkills": [{"skill": s, "count": c} for s, c in present.most_common(TOP_SKILLS_LIMIT)],
            "topMissingSkills": [{"skill": s, "count": c} for s, c in missing.most_common(TOP_SKILLS_LIMIT)],
        }
