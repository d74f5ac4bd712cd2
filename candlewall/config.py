from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./candles.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Moderation - an empty key leaves the gateway without a classifier,
    # which rejects every submission
    ANTHROPIC_API_KEY: str = ""
    MODERATION_MODEL: str = "claude-3-5-haiku-latest"
    MODERATION_TIMEOUT_SECONDS: float = 10.0
    MODERATION_MAX_TOKENS: int = 5

    # Candle wall
    CANDLES_KEY: str = "candles:messages"
    MAX_MESSAGE_LENGTH: int = 150


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()
