# python
# app/core/config.py
"""Configuration settings for the TaxChat backend.

Uses Pydantic BaseSettings for environment variable management.
"""
import secrets
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentEnum(str, Enum):
    development = "development"
    testing = "testing"
    staging = "staging"
    production = "production"


class LogLevelEnum(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="TaxChat API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    # ===== Security Settings =====
    access_secret: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Secret used to verify access tokens",
    )
    algorithm: str = Field(default="HS256", description="JWT algorithm")

    # ===== Database Settings =====
    database_url: str | None = Field(default=None, description="Database connection URL")
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(default=0, description="Database max overflow connections")

    # Test database URL
    test_database_url: str | None = Field(default=None, description="Test database URL")

    # ===== AI Assistant (Gemini) =====
    gemini_api_key: str | None = Field(default=None, description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model to use")
    gemini_max_tokens: int = Field(default=800, description="Maximum tokens for Gemini")
    ai_request_timeout: int = Field(default=30, description="AI request timeout in seconds")
    ai_max_retry_attempts: int = Field(default=3, description="Attempts for rate-limited AI calls")
    ai_retry_min_wait: int = Field(default=1, description="Minimum retry backoff in seconds")
    ai_retry_max_wait: int = Field(default=10, description="Maximum retry backoff in seconds")
    chat_assistant_enabled: bool = Field(
        default=True, description="Reply to text messages with the AI assistant"
    )
    chat_bot_id: int = Field(default=2, description="User id the assistant posts as")

    # ===== Chat Settings =====
    chat_page_size: int = Field(default=30, description="Default message page size")
    chat_max_page_size: int = Field(default=100, description="Maximum message page size")

    # ===== File Upload Settings =====
    upload_dir: str = Field(default="public/uploads", description="Directory for stored uploads")
    uploads_url_prefix: str = Field(default="/uploads", description="Public URL path for uploads")
    max_upload_size: int = Field(
        default=10 * 1024 * 1024, description="Maximum file size in bytes (10MB)"
    )
    max_files_per_upload: int = Field(default=5, description="Maximum files per upload request")

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=7777, description="Port to bind the server")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def has_ai_enabled(self) -> bool:
        return bool(self.gemini_api_key)

    # ===== Validation Methods =====
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        if v and isinstance(v, str):
            lv = v.lower()
            if lv in ["dev", "develop"]:
                return "development"
            if lv in ["prod"]:
                return "production"
        return v

    @field_validator("max_upload_size")
    @classmethod
    def validate_upload_size(cls, v):
        if v > 100 * 1024 * 1024:
            raise ValueError("Maximum upload size cannot exceed 100MB")
        return v

    @field_validator("uploads_url_prefix")
    @classmethod
    def validate_uploads_prefix(cls, v):
        return "/" + v.strip("/")


settings = Settings()


__all__ = [
    "settings",
    "Settings",
    "EnvironmentEnum",
    "LogLevelEnum",
]
