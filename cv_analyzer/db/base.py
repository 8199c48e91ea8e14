"""Engine, sessions and declarative base for the analysis database."""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from cv_analyzer.config import settings


class Base(DeclarativeBase):
    pass


# Built on first use so the package imports without DATABASE_URL
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def engine_options(url: str) -> dict:
    """create_engine() keyword arguments for a database URL."""
    if url.startswith("sqlite"):
        # Pipeline runs write from worker threads, not the thread that opened the connection
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        if not settings.database_url:
            raise ValueError("DATABASE_URL not configured")
        _engine = create_engine(settings.database_url, **engine_options(settings.database_url))
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, used for auth lookups."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create users, jobs and cv_analyses if they do not exist yet."""
    from cv_analyzer.db import tables  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def dispose_engine() -> None:
    """Close pooled connections at shutdown; the next use builds a new engine."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
