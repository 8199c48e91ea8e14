"""FastAPI dependencies wiring the analysis components."""

from fastapi import Depends

from cv_analyzer.agents.orchestrator import AnalysisPipeline
from cv_analyzer.agents.runner import AnalysisTaskRunner
from cv_analyzer.agents.runner import get_runner as get_active_runner
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.tools.storage import LocalFileStorage


def get_store() -> AnalysisStore:
    return AnalysisStore()


def get_storage() -> LocalFileStorage:
    return LocalFileStorage()


def get_runner() -> AnalysisTaskRunner:
    return get_active_runner()


def get_pipeline(
    store: AnalysisStore = Depends(get_store),
    storage: LocalFileStorage = Depends(get_storage),
) -> AnalysisPipeline:
    return AnalysisPipeline(store, storage)
