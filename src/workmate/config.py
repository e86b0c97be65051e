"""Configuration settings for the application."""

from typing import (
    Any,
    Dict,
    List,
)

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # LLM Configuration
    LLM_BACKEND: str = "gemini"  # Options: openai, anthropic, gemini, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    LLM_TIMEOUT: float = 60.0
    LLM_MAX_RETRIES: int = 2

    # Orchestration
    MAX_TOOL_STEPS: int = 5
    HISTORY_WINDOW: int = 5

    # Provider executors
    GMAIL_API_BASE: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    GRAPH_API_BASE: str = "https://graph.microsoft.com/v1.0"
    PROVIDER_TIMEOUT: float = 30.0
    PROVIDER_MAX_ATTEMPTS: int = 10
    RATE_LIMIT_BACKOFF_BASE: float = 5.0
    TRANSIENT_BACKOFF_BASE: float = 1.0
    CACHE_TTL_SECONDS: float = 120.0
    BODY_CHAR_LIMIT: int = 1000
    GMAIL_DETAIL_LIMIT: int = 10

    # Tokens the interactive CLI sends with each request
    CLI_GOOGLE_ACCESS_TOKEN: str | None = None
    CLI_MICROSOFT_ACCESS_TOKEN: str | None = None

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"

    def public_dump(self) -> Dict[str, Any]:
        """Settings with API keys and tokens left out, safe to log."""
        secrets = {
            name for name in type(self).model_fields if name.endswith(("_API_KEY", "_TOKEN"))
        }
        return self.model_dump(exclude=secrets)


settings = Settings()
