"""Database table models."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cv_analyzer.db.base import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """Portal user account. Owned by the accounts service; read-only here."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Job(Base):
    """Job posting. Owned by the jobs service; read-only here."""

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(200))
    company: Mapped[str | None] = mapped_column(String(200), default=None)
    description: Mapped[str] = mapped_column(Text, default="")
    requirements: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CVAnalysis(Base):
    """One CV analysis run and its report."""

    __tablename__ = "cv_analyses"
    __table_args__ = (
        Index("ix_cv_analyses_user_created", "user_id", "created_at"),
        Index("ix_cv_analyses_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)

    # Input
    original_filename: Mapped[str] = mapped_column(String(255))
    file_ref: Mapped[str] = mapped_column(String(255))
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    extracted_text: Mapped[str | None] = mapped_column(Text, default=None)  # set by extraction only

    # Context
    experience_level: Mapped[str] = mapped_column(String(20))  # entry/mid/senior/executive
    major: Mapped[str] = mapped_column(String(100))
    target_job_title: Mapped[str | None] = mapped_column(String(200), default=None)
    target_jobs: Mapped[list] = mapped_column(JSON, default=list)

    # State
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending/processing/completed/failed
    version: Mapped[int] = mapped_column(Integer, default=1)

    # Report
    overall_score: Mapped[int | None] = mapped_column(Integer, default=None)
    summary: Mapped[dict | None] = mapped_column(JSON, default=None)
    sections: Mapped[dict | None] = mapped_column(JSON, default=None)
    recommendations: Mapped[list] = mapped_column(JSON, default=list)
    job_matching: Mapped[dict | None] = mapped_column(JSON, default=None)
    market_insights: Mapped[dict | None] = mapped_column(JSON, default=None)

    # Processing metadata
    ai_usage: Mapped[dict | None] = mapped_column(JSON, default=None)
    processing_stages: Mapped[list] = mapped_column(JSON, default=list)
    error_message: Mapped[str | None] = mapped_column(String(500), default=None)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
