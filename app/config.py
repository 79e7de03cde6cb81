"""Application configuration loaded from environment variables.

Uses ``pydantic-settings`` for automatic env-var loading, type coercion,
and ``.env`` file support.  Validates required settings on import -- fails
fast if critical vars are missing outside of tests.
"""

VERSION = "0.1.0"

import sys

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Required var names -- checked after instantiation (not during), so tests
# that leave them blank still work.
# ---------------------------------------------------------------------------
_REQUIRED_VARS: list[str] = [
    "DATABASE_URL",
]


class Settings(BaseSettings):
    """Application settings -- sourced from environment / ``.env`` file.

    Required vars (must be set in production, may be blank in test):
      DATABASE_URL
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- required in production (default empty so tests don't fail) --
    DATABASE_URL: str = ""

    # -- optional with sensible defaults --
    FRONTEND_URL: str = "http://localhost:3000"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Code agent backend.
    #
    #   LLM_PROVIDER  "anthropic" | "openai" | "" (auto: whichever key is set)
    #   AGENT_MODEL   model id handed to the provider; blank = provider default
    # -------------------------------------------------------------------------
    LLM_PROVIDER: str = ""
    ANTHROPIC_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    AGENT_MODEL: str = ""
    AGENT_MAX_TOKENS: int = Field(default=8192, ge=256)

    # -------------------------------------------------------------------------
    # Job runtime.
    #
    # The API process only enqueues.  Set RUN_WORKER_IN_PROCESS=true to also
    # consume jobs from the API process (handy for local development);
    # otherwise run ``python -m app.jobs`` as a separate process.
    # -------------------------------------------------------------------------
    RUN_WORKER_IN_PROCESS: bool = False
    JOB_POLL_INTERVAL: float = Field(default=1.0, gt=0)
    JOB_CONCURRENCY: int = Field(default=4, ge=1)
    JOB_MAX_ATTEMPTS: int = Field(default=4, ge=1)
    JOB_LEASE_SECONDS: int = Field(default=600, ge=10)
    JOB_RETRY_BASE_SECONDS: float = Field(default=2.0, ge=0)
    JOB_RETRY_MAX_SECONDS: float = Field(default=300.0, ge=0)

    @model_validator(mode="after")
    def _resolve_provider(self) -> "Settings":
        """Pick a provider from the available API keys when none is set."""
        if not self.LLM_PROVIDER:
            if self.ANTHROPIC_API_KEY:
                self.LLM_PROVIDER = "anthropic"
            elif self.OPENAI_API_KEY:
                self.LLM_PROVIDER = "openai"
            else:
                self.LLM_PROVIDER = "anthropic"
        return self


settings = Settings()

# ---------------------------------------------------------------------------
# Model resolution
# ---------------------------------------------------------------------------
_DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-haiku-4-5",
    "openai": "gpt-4o-mini",
}


def get_agent_model() -> str:
    """Return the model ID the code agent should use.

    Resolution order:
      1. AGENT_MODEL (explicit override)
      2. Provider default from ``_DEFAULT_MODELS``
    """
    if settings.AGENT_MODEL:
        return settings.AGENT_MODEL
    return _DEFAULT_MODELS.get(settings.LLM_PROVIDER, _DEFAULT_MODELS["anthropic"])


def get_provider_api_key() -> str:
    """Return the API key for the configured provider (may be blank)."""
    if settings.LLM_PROVIDER == "openai":
        return settings.OPENAI_API_KEY
    return settings.ANTHROPIC_API_KEY


# Validate at import time -- but only when NOT running under pytest.
if "pytest" not in sys.modules:
    _missing = [v for v in _REQUIRED_VARS if not getattr(settings, v)]
    if _missing:
        print(
            f"[config] FATAL: missing required environment variables: "
            f"{', '.join(_missing)}",
            file=sys.stderr,
        )
        sys.exit(1)
