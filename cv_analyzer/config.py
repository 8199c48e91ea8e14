"""
Configuration management for the CV Analyzer service.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # LLM
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible host (e.g. DeepSeek)
    ai_model: str = "gpt-4o"
    ai_max_tokens: int = 4000
    ai_temperature: float = 0.2
    ai_timeout: float = 90.0
    ai_max_attempts: int = 3
    ai_retry_base_delay: float = 1.0
    ai_retry_max_delay: float = 30.0

    # Database
    database_url: str = ""

    # Auth
    jwt_secret: str = ""

    # Uploads
    upload_dir: str = "uploads/cv-analyzer"
    max_upload_bytes: int = 10 * 1024 * 1024

    # Extraction
    extraction_timeout: float = 30.0
    max_pdf_pages: int = 20
    max_text_length: int = 50000
    min_text_length: int = 50
    min_word_ratio: float = 0.5

    # Rate limiting ("memory://" or "redis://host:6379/0")
    upload_rate_limit: str = "5/minute"
    rate_limit_storage_uri: str = "memory://"

    # Background analysis
    analysis_workers: int = 4
    stuck_analysis_minutes: int = 30

    # HTTP
    cors_origins: str = "http://localhost:5173"

    # Runtime
    environment: str = "production"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()
