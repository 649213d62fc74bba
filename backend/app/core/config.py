import os
import logging
from typing import Annotated, Optional, List
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """
    EVA ERP Assistant application configuration
    Manages all environment variables with validation and type safety
    """

    # Basic application settings
    APP_NAME: str = "EVA ERP Assistant"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API settings
    API_PREFIX: str = "/api"
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default=["http://localhost:3000", "http://localhost:3001"],
        description="Allowed CORS origins"
    )
    FRONTEND_URL: Optional[str] = Field(
        default=None,
        description="Deployed frontend origin, appended to ALLOWED_ORIGINS"
    )

    # Multi-Provider LLM Configuration
    LLM_API_KEY: Optional[str] = Field(
        default=None,
        repr=False,
        description="LLM API key (auto-detects provider from key format)"
    )
    LLM_PROVIDER: Optional[str] = Field(
        default=None,
        description="Explicit LLM provider (groq|openai|fallback)"
    )
    LLM_MODEL: Optional[str] = Field(
        default=None,
        description="LLM model (auto-selects default if not specified)"
    )
    LLM_TEMPERATURE: float = Field(
        default=0.7,
        ge=0.0, le=2.0,
        description="Sampling temperature for chat completions"
    )
    LLM_MAX_TOKENS: int = Field(
        default=4000,
        description="Maximum tokens for LLM responses"
    )
    LLM_TOP_P: float = Field(
        default=0.9,
        ge=0.0, le=1.0,
        description="Nucleus sampling parameter"
    )
    LLM_TIMEOUT: int = Field(
        default=30,
        description="LLM request timeout in seconds"
    )

    # Conversation memory
    MAX_HISTORY_LENGTH: int = Field(
        default=50,
        ge=1,
        description="Maximum messages kept per session"
    )
    SESSION_TIMEOUT_HOURS: int = Field(
        default=24,
        ge=1,
        description="Idle hours before a session is swept"
    )
    SESSION_CLEANUP_INTERVAL_SECONDS: int = Field(
        default=3600,
        ge=1,
        description="Interval between expired-session sweeps"
    )
    CHAT_HISTORY_WINDOW: int = Field(
        default=20,
        ge=0,
        description="History messages forwarded to the model per request"
    )
    MAX_MESSAGE_LENGTH: int = Field(
        default=10000,
        description="Maximum characters accepted in a chat message"
    )

    # Redis for shared rate limiting (optional)
    REDIS_URL: Optional[str] = Field(
        default=None,
        description="Redis connection URL"
    )

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = Field(
        default=60,
        description="Default API rate limit per minute"
    )
    CHAT_RATE_LIMIT: int = Field(
        default=50,
        description="Chat requests allowed per CHAT_RATE_WINDOW_SECONDS"
    )
    CHAT_RATE_WINDOW_SECONDS: int = Field(default=60)
    UPLOAD_RATE_LIMIT: int = Field(
        default=10,
        description="Uploads allowed per UPLOAD_RATE_WINDOW_SECONDS"
    )
    UPLOAD_RATE_WINDOW_SECONDS: int = Field(default=600)

    # File uploads
    UPLOAD_DIR: str = Field(
        default="uploads",
        description="Directory where uploaded documents are stored"
    )
    MAX_UPLOAD_SIZE: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        description="Maximum file upload size in bytes"
    )
    MAX_UPLOAD_FILES: int = Field(
        default=5,
        description="Maximum files per multi-file upload"
    )
    UPLOAD_RETENTION_HOURS: int = Field(
        default=24,
        description="Hours an uploaded file is kept before cleanup"
    )
    UPLOAD_CLEANUP_INTERVAL_SECONDS: int = Field(default=3600, ge=1)

    # Demo API key gate
    REQUIRE_API_KEY: bool = Field(
        default=False,
        description="Reject requests without an X-API-Key header"
    )
    VALID_API_KEYS: Annotated[List[str], NoDecode] = Field(
        default=[],
        repr=False,
        description="Accepted API keys (comma separated in env)"
    )

    model_config = SettingsConfigDict(
        env_file=os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True
    )

    @field_validator("ALLOWED_ORIGINS", "VALID_API_KEYS", mode="before")
    @classmethod
    def parse_comma_list(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("LLM_API_KEY")
    @classmethod
    def validate_llm_api_key(cls, v):
        if not v:
            logging.warning("LLM_API_KEY not set, chat will use the fallback provider")
            return v

        from .llm_providers import LLMProviderFactory
        provider_type = LLMProviderFactory.detect_provider_from_key(v)
        if provider_type.value == "fallback" and not v.startswith("mock"):
            logging.warning("API key format not recognized, using fallback provider")
        return v

    @field_validator("LLM_PROVIDER")
    @classmethod
    def validate_llm_provider(cls, v):
        if v:
            valid_providers = ["groq", "openai", "fallback", "mock"]
            if v.lower() not in valid_providers:
                raise ValueError(f"Invalid LLM provider: {v}. Must be one of: {valid_providers}")
            return v.lower()
        return v

    @property
    def cors_origins(self) -> List[str]:
        """ALLOWED_ORIGINS plus FRONTEND_URL when configured"""
        origins = list(self.ALLOWED_ORIGINS)
        if self.FRONTEND_URL and self.FRONTEND_URL not in origins:
            origins.append(self.FRONTEND_URL)
        return origins


# Global settings instance
settings = Settings()
