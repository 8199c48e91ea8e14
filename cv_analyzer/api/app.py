"""FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cv_analyzer.agents.runner import close_runner, init_runner, reconcile_stuck_analyses
from cv_analyzer.api.limiter import limiter
from cv_analyzer.config import settings
from cv_analyzer.db.base import dispose_engine, init_db
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.errors import AnalyzerError
from cv_analyzer.utils.logger import configure_logging

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/cv-analyzer"
ALLOWED_ORIGINS = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and task runner on startup."""
    configure_logging(settings.log_level)
    runner = init_runner()
    try:
        init_db()
        reconcile_stuck_analyses(AnalysisStore(), runner)
    except ValueError:
        logger.warning("DATABASE_URL not configured; skipping database init")
    yield
    close_runner(wait=False)
    dispose_engine()


app = FastAPI(
    title="CV Analyzer API",
    description="AI-powered CV analysis for the job portal",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter


def _error_body(message: str, **extra) -> dict:
    body = {"success": False, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


@app.exception_handler(AnalyzerError)
async def analyzer_error_handler(request: Request, exc: AnalyzerError):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, field=getattr(exc, "field", None)),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request fields are client errors (400), not 422."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
    return JSONResponse(
        status_code=400,
        content=_error_body(first.get("msg", "Invalid request"), field=".".join(loc) or None),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Return 429 with a clear message when rate limit is exceeded."""
    retry_after = 60
    view_limit = getattr(request.state, "view_rate_limit", None)
    if view_limit:
        reset_at, _ = limiter.limiter.get_window_stats(view_limit[0], *view_limit[1])
        retry_after = max(1, int(reset_at - time.time()))
    return JSONResponse(
        status_code=429,
        content=_error_body(
            f"Too many upload requests. Rate limit exceeded: {exc.detail}",
            retryAfter=retry_after,
        ),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_error_body("Database error", error=str(exc) if settings.is_development else None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", error=str(exc) if settings.is_development else None),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


# Import and include routers
from cv_analyzer.api.routes import analyzer  # noqa: E402

app.include_router(analyzer.router, prefix=API_PREFIX, tags=["CV Analyzer"])
