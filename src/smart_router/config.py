"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (or a .env file in dev).
This is the single source of truth for configuration - routing constants,
rate limits and backend endpoints are not hardcoded elsewhere.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class PreferencesBackend(StrEnum):
    MEMORY = "memory"
    REDIS = "redis"


class SelectionStrategyName(StrEnum):
    LLM = "llm"
    RULES = "rules"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    environment: Environment = Environment.DEV
    debug: bool = False

    # ------------------------------------------------------------------ #
    # LLM backend (OpenRouter through LiteLLM)
    # ------------------------------------------------------------------ #
    llm_api_base: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenAI-compatible base URL all model calls are sent to",
    )
    llm_api_key: SecretStr = Field(
        default=SecretStr("sk-dev-key"),
        description="API key for the LLM backend",
    )
    llm_model_prefix: str = Field(
        default="openrouter/",
        description="LiteLLM provider prefix prepended to registry model ids",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single model call",
    )
    llm_retry_attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Transport attempts per model call (1 = no retry)",
    )

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #
    router_model_id: str = Field(
        default="mistralai/mistral-small-24b-instruct-2501:free",
        description="Registry id of the model that makes selection decisions",
    )
    router_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    router_max_tokens: int = Field(default=500, ge=1)
    response_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_response_tokens: int = Field(
        default=4000,
        ge=1,
        description="Upper bound on generated tokens (further capped at half the context window)",
    )
    selection_strategy: SelectionStrategyName = Field(
        default=SelectionStrategyName.LLM,
        description="llm = delegate selection to the router model, rules = local scoring",
    )
    default_priority: str = Field(
        default="auto",
        description="Priority of the default preference record",
    )

    # ------------------------------------------------------------------ #
    # Rate Limiting
    # ------------------------------------------------------------------ #
    rate_limit_max_requests: int = Field(
        default=20,
        ge=1,
        description="Max outbound model calls per window (global)",
    )
    rate_limit_window_ms: int = Field(default=60_000, ge=1)
    retry_after_seconds: int = Field(
        default=60,
        ge=1,
        description="Retry-After hint returned with HTTP 429",
    )

    # ------------------------------------------------------------------ #
    # API
    # ------------------------------------------------------------------ #
    max_message_length: int = Field(default=10_000, ge=1)
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins. In production, set to actual frontend URLs.",
    )

    # ------------------------------------------------------------------ #
    # Analytics
    # ------------------------------------------------------------------ #
    analytics_max_logged: int = Field(default=1000, ge=1)
    analytics_recent_count: int = Field(default=10, ge=1)
    analytics_message_preview_chars: int = Field(default=200, ge=1)

    # ------------------------------------------------------------------ #
    # Preferences storage
    # ------------------------------------------------------------------ #
    preferences_backend: PreferencesBackend = PreferencesBackend.MEMORY
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL, used when preferences_backend=redis",
    )

    # ------------------------------------------------------------------ #
    # Derived / Computed
    # ------------------------------------------------------------------ #
    @model_validator(mode="after")
    def _set_debug_from_env(self) -> Settings:
        if self.environment == Environment.DEV:
            self.debug = True
        return self

    @model_validator(mode="after")
    def _validate_production_secrets(self) -> Settings:
        """Refuse to start in production without a real LLM API key."""
        if self.environment != Environment.PROD:
            return self

        key = self.llm_api_key.get_secret_value().strip().lower()
        if not key or key in {"sk-dev-key", "changeme", "test"}:
            raise RuntimeError(
                "PRODUCTION STARTUP BLOCKED -- LLM_API_KEY is empty or an insecure "
                "default value. Set a real API key for production."
            )
        return self

    @property
    def is_dev(self) -> bool:
        return self.environment in (Environment.DEV, Environment.TEST)

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PROD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings singleton.

    Use FastAPI dependency injection via Depends(get_settings) in endpoints,
    or call directly in non-request contexts (startup, scripts).
    """
    return Settings()
