"""Application configuration management using Pydantic Settings."""

from typing import List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./rockreach.db"

    # API
    API_V1_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = ['http://localhost:3000']

    # Environment
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json|text

    # Credential vault (unset = keys stored base64 only, dev mode)
    APP_MASTER_KEY: Optional[str] = None

    # Tenant settings resolution
    SETTINGS_CACHE_TTL_SECONDS: float = 60.0

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0
    ROCKETREACH_BASE_URL: str = "https://api.rocketreach.co"
    RESEND_BASE_URL: str = "https://api.resend.com"
    WEBSITE_FETCH_TIMEOUT_SECONDS: float = 30.0

    # Outbound email
    EMAIL_FROM_ADDRESS: str = "noreply@example.com"
    EMAIL_FROM_NAME: str = "RockReach"

    # Agent execution
    AGENT_MAX_STEPS: int = 10
    AGENT_TIMEOUT_SECONDS: float = 300.0
    AGENT_STUCK_AFTER_SECONDS: float = 900.0
    AGENT_REAPER_INTERVAL_SECONDS: float = 60.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        """Parse CORS_ORIGINS from JSON string to list."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v


# Global settings instance
settings = Settings()
