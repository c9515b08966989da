# python
# app/core/config.py
"""Configuration settings for the Local Claude Chat API.

Uses Pydantic BaseSettings for environment variable management.
"""
import json
import logging
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


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


class LogFormatEnum(str, Enum):
    simple = "simple"
    json = "json"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="Local Claude Chat API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    # ===== Database Settings =====
    database_url: str = Field(
        default="sqlite+aiosqlite:///./chat.db", description="Database connection URL"
    )
    test_database_url: str | None = Field(default=None, description="Test database URL")

    # ===== Provider (Anthropic) =====
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    openrouter_api_key: str | None = Field(
        default=None, description="OpenRouter API key for live pricing"
    )
    secrets_file: str | None = Field(
        default="secrets.json",
        description="JSON file holding API keys, read when the environment has none",
    )
    default_model: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model used when a request names none"
    )
    default_temperature: float = Field(default=1.0, description="Default sampling temperature")
    default_max_tokens: int = Field(default=8192, description="Default max output tokens")
    thinking_max_tokens: int = Field(
        default=16384, description="Max output tokens when extended thinking is enabled"
    )
    thinking_budget_tokens: int = Field(default=10000, description="Extended thinking budget")
    cache_threshold: int = Field(
        default=2, description="History length above which older turns are cache-annotated"
    )
    ai_request_timeout: int = Field(default=600, description="Provider request timeout in seconds")

    # ===== Title Generation =====
    title_model: str | None = Field(
        default=None, description="Model for title generation (cheapest when unset)"
    )
    title_max_tokens: int = Field(default=50, description="Max tokens for generated titles")
    title_temperature: float = Field(default=0.7, description="Temperature for title generation")

    # ===== Streaming =====
    generation_lease_seconds: int = Field(
        default=600, description="Seconds after which an unreleased generation lease expires"
    )

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if isinstance(self.allowed_origins, str):
            return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return self.allowed_origins if isinstance(self.allowed_origins, list) else []

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")
    log_format: LogFormatEnum = Field(default=LogFormatEnum.simple, description="Log format")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=8000, description="Port to bind the server")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def is_testing(self) -> bool:
        return self.environment == EnvironmentEnum.testing

    @property
    def has_ai_enabled(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def has_live_pricing(self) -> bool:
        return bool(self.openrouter_api_key)

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
            return lv
        return v

    @field_validator("default_temperature", "title_temperature")
    @classmethod
    def validate_temperature(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("Temperature must be between 0 and 1")
        return v

    @model_validator(mode="after")
    def validate_thinking_budget(self):
        if self.thinking_budget_tokens >= self.thinking_max_tokens:
            raise ValueError("thinking_max_tokens must be greater than thinking_budget_tokens")
        return self

    @model_validator(mode="after")
    def load_secrets_file(self):
        if (self.anthropic_api_key and self.openrouter_api_key) or not self.secrets_file:
            return self
        path = Path(self.secrets_file)
        if not path.is_file():
            return self
        try:
            secrets = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read secrets file {path}: {e}")
            return self
        if not self.anthropic_api_key:
            self.anthropic_api_key = secrets.get("anthropic_api_key") or None
        if not self.openrouter_api_key:
            self.openrouter_api_key = secrets.get("openrouter_api_key") or None
        return self


settings = Settings()


class ConfigValidator:
    @staticmethod
    def validate_required_settings():
        errors = []
        if not settings.database_url:
            errors.append("DATABASE_URL is required")
        if settings.is_production and not settings.anthropic_api_key:
            errors.append("ANTHROPIC_API_KEY is required in production")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @staticmethod
    def get_feature_status() -> dict:
        return {
            "ai_enabled": settings.has_ai_enabled,
            "live_pricing": settings.has_live_pricing,
            "environment": settings.environment,
        }


def get_config_summary() -> dict:
    return {
        "app_name": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "debug": settings.debug,
        "features": ConfigValidator.get_feature_status(),
        "database_configured": bool(settings.database_url),
        "default_model": settings.default_model,
    }


__all__ = [
    "settings",
    "Settings",
    "ConfigValidator",
    "get_config_summary",
    "EnvironmentEnum",
    "LogLevelEnum",
    "LogFormatEnum",
]
