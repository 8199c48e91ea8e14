"""
Analysis pipeline.

Runs one analysis: extraction, prompt, AI call, then the terminal write.
Each stage feeds the next, so they run strictly in sequence.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from cv_analyzer.agents.ai_client import AIClient
from cv_analyzer.agents.prompts import build_analysis_prompt
from cv_analyzer.db.store import (
    STAGE_ANALYSIS,
    STAGE_COMPLETED,
    STAGE_EXTRACTION,
    STAGE_IN_PROGRESS,
    AnalysisStore,
)
from cv_analyzer.db.tables import CVAnalysis
from cv_analyzer.errors import AIServiceError, ExtractionError
from cv_analyzer.models import ExperienceLevel, JobContext, TargetJob
from cv_analyzer.tools.pdf_parser import PDFTextExtractor
from cv_analyzer.tools.storage import LocalFileStorage

logger = logging.getLogger(__name__)

EXPECTED_FAILURES = (ExtractionError, TimeoutError, AIServiceError)


def context_from_record(record: CVAnalysis) -> JobContext:
    """Rebuild the job context stored on a record."""
    return JobContext(
        experience_level=ExperienceLevel(record.experience_level),
        major=record.major,
        target_job_title=record.target_job_title,
        target_job_descriptions=[TargetJob.model_validate(job) for job in record.target_jobs or []],
    )


class AnalysisPipeline:
    """Sequences extractor, prompt builder and AI client for one record."""

    def __init__(
        self,
        store: AnalysisStore,
        storage: LocalFileStorage,
        extractor: PDFTextExtractor | None = None,
        ai_client: AIClient | None = None,
    ):
        self.store = store
        self.storage = storage
        self.extractor = extractor or PDFTextExtractor()
        self.ai_client = ai_client or AIClient()

    def run(self, analysis_id: str, version: int) -> str | None:
        """
        Execute one run of `analysis_id` at `version`.

        Returns:
            Final status written by this run, or None if the run was stale

        Raises:
            SQLAlchemyError: the terminal state could not be persisted; the
                record stays processing until the reconciliation sweep
        """
        if not self.store.begin_processing(analysis_id, version):
            logger.warning(f"[{analysis_id}] Run v{version} is stale or already terminal; skipping")
            return None

        record = self.store.get(analysis_id)
        stage = STAGE_EXTRACTION
        try:
            logger.info(f"[{analysis_id}] Extracting text from {record.file_ref}")
            self.store.update_stage(analysis_id, version, STAGE_EXTRACTION, STAGE_IN_PROGRESS)
            extraction = self.extractor.extract(self.storage.path(record.file_ref))
            self.store.update_stage(
                analysis_id,
                version,
                STAGE_EXTRACTION,
                STAGE_COMPLETED,
                extracted_text=extraction.text,
            )
            logger.info(f"[{analysis_id}] Extracted {extraction.word_count} words")

            stage = STAGE_ANALYSIS
            prompt = build_analysis_prompt(extraction.text, context_from_record(record))
            self.store.update_stage(analysis_id, version, STAGE_ANALYSIS, STAGE_IN_PROGRESS)
            outcome = self.ai_client.analyze(prompt)
            self.store.update_stage(analysis_id, version, STAGE_ANALYSIS, STAGE_COMPLETED)
        except SQLAlchemyError:
            logger.exception(f"[{analysis_id}] Database error during {stage}")
            raise
        except EXPECTED_FAILURES as e:
            logger.warning(f"[{analysis_id}] {stage} failed: {e}")
            return self._fail(analysis_id, version, str(e), stage)
        except Exception as e:
            logger.exception(f"[{analysis_id}] Unexpected error during {stage}")
            return self._fail(analysis_id, version, str(e) or type(e).__name__, stage)

        try:
            written = self.store.mark_completed(analysis_id, version, outcome.analysis, outcome.usage)
        except SQLAlchemyError:
            logger.exception(f"[{analysis_id}] Failed to persist completion; needs reconciliation")
            raise

        if not written:
            return None
        logger.info(f"[{analysis_id}] Completed with score {outcome.analysis.overall_score}")
        return "completed"

    def _fail(self, analysis_id: str, version: int, reason: str, stage: str) -> str | None:
        try:
            written = self.store.mark_failed(analysis_id, version, reason, stage)
        except SQLAlchemyError:
            logger.exception(f"[{analysis_id}] Failed to persist failure; needs reconciliation")
            raise
        return "failed" if written else None
