"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Settings are read at the edges (lifespan, dependencies) and injected inward;
      services never call get_settings() themselves

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box locally
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://assistant:assistant@db:5432/assistant"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # OpenRouter (OpenAI-compatible chat completions)
    openrouter_api_key: str = "sk-or-placeholder"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_timeout_seconds: int = 60
    openrouter_max_retries: int = 3
    openrouter_base_delay_ms: int = 1000
    openrouter_max_delay_ms: int = 10_000

    # Agent
    agent_model: str = "moonshotai/kimi-k2.5"
    title_model: str = "openrouter/auto"
    stream_max_retries: int = 2
    stream_retry_delay_ms: int = 2000

    # Tools: "package.module:factory" paths, each returning ToolHandlers
    tool_providers: list[str] = []

    # Budgets: interactive chat vs autonomous runs
    chat_max_iterations: int = 5
    chat_max_elapsed_ms: int = 10 * 60 * 1000
    autonomous_max_iterations: int = 1000
    autonomous_max_elapsed_ms: int = 30 * 60 * 1000

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
