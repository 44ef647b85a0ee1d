"""Application configuration via pydantic-settings.

Reads from environment variables and .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    # Infrastructure
    redis_url: str = "redis://localhost:6379"
    database_url: str = "sqlite:///./data/app.db"

    # HTTP
    cors_allow_origins: list[str] = ["*"]
    sse_ping_seconds: int = 15

    # Entitlements
    free_hourly_message_limit: int = 15
    pro_status_cache_ttl: int = 300

    # Agent
    history_limit: int = 10
    max_turns: int = 8
    research_max_turns: int = 30

    # User-facing messages
    fallback_error_message: str = (
        "An error occurred while generating a response. Please try again."
    )
    rate_limit_message: str = (
        "You have reached the free plan limit for this hour. "
        "Upgrade to Pro for unlimited access."
    )
    pro_required_message: str = "Deep research mode requires an active Pro subscription."

    log_level: str = "INFO"

    @property
    def anthropic_configured(self) -> bool:
        return bool(self.anthropic_api_key)


settings = Settings()
