"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    DATA_DIR: str = "/data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Model backend configuration
    BACKEND: str = "gemini"  # Options: gemini, openai, anthropic, tgi
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemma-3-27b-it"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    MODEL_TIMEOUT: float = 30.0

    # Agent loop configuration
    MAX_ATTEMPTS: int = 3  # model calls per decision before falling back to "clarify"
    BACKOFF_BASE: float = 0.25  # seconds; doubled after every failed attempt
    MAX_STEPS: int = 5  # non-terminal tool calls per user submission
    ENFORCE_LISTING_BEFORE_DELETE: bool = True

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
