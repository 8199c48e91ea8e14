"""Database package."""

from cv_analyzer.db.base import Base, get_db, init_db
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.db.tables import CVAnalysis, Job, User

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "AnalysisStore",
    "CVAnalysis",
    "Job",
    "User",
]
